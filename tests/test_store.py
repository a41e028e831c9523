from __future__ import annotations

import asyncio
from datetime import date, timedelta

import pytest

from scholarbridge.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryValidationError,
)
from scholarbridge.services.store import InMemoryRepository
from tests.factories import future_deadline, make_candidate


def test_insert_rejects_second_record_with_same_identity() -> None:
    store = InMemoryRepository()

    async def run() -> None:
        await store.insert_scholarship(make_candidate(), source="grok-web-search-batch-1")
        await store.insert_scholarship(
            make_candidate(title="clarendon fund scholarship", organization="UNIVERSITY OF OXFORD"),
            source="grok-web-search-batch-1",
        )

    with pytest.raises(RepositoryConflictError):
        asyncio.run(run())


def test_update_rejects_untrusted_link_and_unknown_fields() -> None:
    store = InMemoryRepository()

    async def run() -> str:
        return await store.insert_scholarship(make_candidate(), source="grok-web-search-batch-1")

    record_id = asyncio.run(run())

    with pytest.raises(RepositoryValidationError):
        asyncio.run(store.update_scholarship(record_id, {"link": "https://medium.com/@someone/scholarship"}))
    with pytest.raises(RepositoryValidationError):
        asyncio.run(store.update_scholarship(record_id, {"is_verified": True}))
    assert store.scholarships[record_id].link == "https://www.ox.ac.uk/clarendon"


def test_listing_hides_expired_and_untrusted_records() -> None:
    store = InMemoryRepository()

    async def run():
        soon = await store.insert_scholarship(
            make_candidate(title="Soonest Deadline Scholarship", deadline=future_deadline(10)),
            source="s",
        )
        later = await store.insert_scholarship(
            make_candidate(title="Later Deadline Scholarship", deadline=future_deadline(200)),
            source="s",
        )
        expired = await store.insert_scholarship(
            make_candidate(title="Expired Deadline Scholarship", deadline=future_deadline(5)),
            source="s",
        )
        store.scholarships[expired] = store.scholarships[expired].model_copy(
            update={"deadline": date.today() - timedelta(days=1)}
        )
        # Written before the blocked-domain list grew.
        legacy = await store.insert_scholarship(
            make_candidate(title="Legacy Listing Scholarship", deadline=future_deadline(50)),
            source="s",
        )
        store.scholarships[legacy] = store.scholarships[legacy].model_copy(
            update={"link": "https://www.scholarships.com/legacy"}
        )
        return soon, later, await store.list_scholarships(limit=10, offset=0), await store.count_scholarships()

    soon, later, listed, count = asyncio.run(run())

    assert [record.id for record in listed] == [soon, later]
    assert count == 2


def test_fetch_run_transitions_only_from_running() -> None:
    store = InMemoryRepository()

    async def run():
        run_id = await store.create_fetch_run(["q1", "q2"])
        await store.complete_fetch_run(run_id, found=3, added=1)
        return run_id

    run_id = asyncio.run(run())
    completed = asyncio.run(store.get_fetch_run(run_id))
    assert completed.status == "completed"
    assert (completed.scholarships_found, completed.scholarships_added) == (3, 1)
    assert completed.completed_at is not None

    with pytest.raises(RepositoryConflictError):
        asyncio.run(store.fail_fetch_run(run_id, error="late failure"))
    with pytest.raises(RepositoryNotFoundError):
        asyncio.run(store.complete_fetch_run("missing", found=0, added=0))


def test_stats_reflect_latest_completed_run() -> None:
    store = InMemoryRepository()

    async def run():
        await store.insert_scholarship(make_candidate(), source="s")
        await store.insert_scholarship(
            make_candidate(title="Gates Cambridge Scholarship", organization="University of Cambridge"),
            source="s",
        )
        run_id = await store.create_fetch_run(["q"])
        await store.complete_fetch_run(run_id, found=4, added=2)
        failed = await store.create_fetch_run(["q"])
        await store.fail_fetch_run(failed, error="provider down")
        return await store.get_stats()

    stats = asyncio.run(run())

    assert stats.total_scholarships == 2
    assert stats.total_countries == 1
    assert stats.total_organizations == 2
    assert stats.last_fetch_added == 2
    assert stats.last_fetched_at is not None


def test_manual_verification_flag_is_recorded() -> None:
    store = InMemoryRepository()

    async def run():
        record_id = await store.insert_scholarship(make_candidate(), source="grok-web-search-batch-1")
        return await store.set_scholarship_verified(record_id, verified=True, notes="checked against the official page")

    record = asyncio.run(run())
    assert record.is_verified is True
    assert record.verification_notes == "checked against the official page"

    with pytest.raises(RepositoryNotFoundError):
        asyncio.run(store.set_scholarship_verified("missing", verified=True))


def test_pages_stay_full_when_an_untrusted_record_sorts_first() -> None:
    store = InMemoryRepository()

    async def run():
        legacy = await store.insert_scholarship(
            make_candidate(title="Legacy Listing Scholarship", deadline=future_deadline(5)),
            source="s",
        )
        store.scholarships[legacy] = store.scholarships[legacy].model_copy(
            update={"link": "https://www.scholarships.com/legacy"}
        )
        ids = []
        for days in (10, 20, 30):
            ids.append(
                await store.insert_scholarship(
                    make_candidate(title=f"Scholarship Closing In {days} Days", deadline=future_deadline(days)),
                    source="s",
                )
            )
        first = await store.list_scholarships(limit=2, offset=0)
        second = await store.list_scholarships(limit=2, offset=2)
        return ids, first, second, await store.count_scholarships()

    ids, first, second, count = asyncio.run(run())

    assert [record.id for record in first] == ids[:2]
    assert [record.id for record in second] == ids[2:]
    assert count == 3


def test_delete_frees_the_identity_for_reinsertion() -> None:
    store = InMemoryRepository()

    async def run():
        record_id = await store.insert_scholarship(make_candidate(), source="s")
        await store.delete_scholarship(record_id)
        return record_id, await store.insert_scholarship(make_candidate(), source="manual")

    deleted_id, new_id = asyncio.run(run())

    assert deleted_id not in store.scholarships
    assert new_id in store.scholarships
    with pytest.raises(RepositoryNotFoundError):
        asyncio.run(store.delete_scholarship(deleted_id))
