from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable
from typing import TypeVar

import asyncpg  # type: ignore[import-untyped]
import pytest

from scholarbridge.services.dedupe import merge_candidates
from scholarbridge.services.repository import (
    PostgresRepository,
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryValidationError,
)
from tests.factories import future_deadline, make_candidate

T = TypeVar("T")


@pytest.fixture(scope="session")
def database_url() -> str:
    url = os.getenv("SB_DATABASE_URL")
    if not url:
        pytest.skip("integration tests require SB_DATABASE_URL")
    return url


@pytest.fixture(autouse=True)
def reset_tables(database_url: str) -> None:
    async def reset() -> None:
        repository = PostgresRepository(database_url, min_pool_size=1, max_pool_size=2)
        try:
            await repository.ensure_schema()
        finally:
            await repository.close()
        conn = await asyncpg.connect(database_url)
        try:
            await conn.execute("truncate table scholarships, fetch_runs")
        finally:
            await conn.close()

    asyncio.run(reset())


def _with_repository(database_url: str, func: Callable[[PostgresRepository], Awaitable[T]]) -> T:
    async def run() -> T:
        repository = PostgresRepository(database_url, min_pool_size=1, max_pool_size=2)
        try:
            return await func(repository)
        finally:
            await repository.close()

    return asyncio.run(run())


def test_unique_identity_index_turns_race_into_conflict(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        await repository.insert_scholarship(make_candidate(), source="grok-web-search-batch-1")
        await repository.insert_scholarship(
            make_candidate(title="CLARENDON FUND SCHOLARSHIP"),
            source="grok-web-search-batch-1",
        )

    with pytest.raises(RepositoryConflictError):
        _with_repository(database_url, scenario)


def test_merge_round_trip_against_postgres(database_url: str) -> None:
    async def scenario(repository: PostgresRepository):
        await merge_candidates([make_candidate(deadline=future_deadline(20))], repository, source="s")
        result = await merge_candidates([make_candidate(deadline=future_deadline(40))], repository, source="s")
        listed = await repository.list_scholarships(limit=10, offset=0)
        return result, listed, await repository.count_scholarships()

    result, listed, count = _with_repository(database_url, scenario)

    assert result.updated == 1
    assert count == 1
    assert listed[0].deadline.isoformat() == future_deadline(40)


def test_untrusted_link_update_is_refused(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> None:
        record_id = await repository.insert_scholarship(make_candidate(), source="s")
        await repository.update_scholarship(record_id, {"link": "https://twitter.com/oxford"})

    with pytest.raises(RepositoryValidationError):
        _with_repository(database_url, scenario)


def test_fetch_run_lifecycle(database_url: str) -> None:
    async def scenario(repository: PostgresRepository):
        run_id = await repository.create_fetch_run(["q1", "q2"])
        await repository.fail_fetch_run(run_id, error="provider unavailable")
        try:
            await repository.complete_fetch_run(run_id, found=1, added=1)
        except RepositoryConflictError:
            conflict = True
        else:
            conflict = False
        runs = await repository.list_fetch_runs(limit=5)
        return conflict, runs

    conflict, runs = _with_repository(database_url, scenario)

    assert conflict is True
    assert runs[0].status == "failed"
    assert runs[0].search_queries == ["q1", "q2"]
    assert runs[0].error == "provider unavailable"


def test_missing_records_raise_not_found(database_url: str) -> None:
    with pytest.raises(RepositoryNotFoundError):
        _with_repository(database_url, lambda repository: repository.get_scholarship("not-a-uuid"))
    with pytest.raises(RepositoryNotFoundError):
        _with_repository(
            database_url,
            lambda repository: repository.complete_fetch_run(
                "00000000-0000-0000-0000-000000000000", found=0, added=0
            ),
        )


def test_listing_pages_skip_untrusted_rows_before_slicing(database_url: str) -> None:
    async def scenario(repository: PostgresRepository):
        legacy = await repository.insert_scholarship(
            make_candidate(title="Legacy Listing Scholarship", deadline=future_deadline(5)),
            source="s",
        )
        conn = await asyncpg.connect(database_url)
        try:
            await conn.execute(
                "update scholarships set link = 'https://www.scholarships.com/legacy' where id = $1::uuid",
                legacy,
            )
        finally:
            await conn.close()
        kept = await repository.insert_scholarship(
            make_candidate(title="Trusted Listing Scholarship", deadline=future_deadline(30)),
            source="s",
        )
        page = await repository.list_scholarships(limit=1, offset=0)
        return kept, page, await repository.count_scholarships()

    kept, page, count = _with_repository(database_url, scenario)

    assert [record.id for record in page] == [kept]
    assert count == 1


def test_delete_removes_record_and_reports_missing(database_url: str) -> None:
    async def scenario(repository: PostgresRepository) -> str:
        record_id = await repository.insert_scholarship(make_candidate(), source="s")
        await repository.delete_scholarship(record_id)
        return record_id

    record_id = _with_repository(database_url, scenario)

    with pytest.raises(RepositoryNotFoundError):
        _with_repository(database_url, lambda repository: repository.get_scholarship(record_id))
    with pytest.raises(RepositoryNotFoundError):
        _with_repository(database_url, lambda repository: repository.delete_scholarship("not-a-uuid"))
