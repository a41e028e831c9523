from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from scholarbridge.jobs.fetch_cycle import FetchCycleOutcome, get_fetch_cycle_controller
from scholarbridge.main import app
from scholarbridge.services.repository import RepositoryUnavailableError, get_repository
from scholarbridge.services.store import InMemoryRepository
from tests.factories import candidate_payload, make_candidate


class FakeController:
    def __init__(self, store: InMemoryRepository) -> None:
        self.store = store
        self.calls = 0

    async def run_fetch_cycle(self) -> FetchCycleOutcome:
        self.calls += 1
        run_id = await self.store.create_fetch_run(["manual trigger"])
        await self.store.complete_fetch_run(run_id, found=0, added=0)
        return FetchCycleOutcome(run_id=run_id, status="completed", run_index=0)


def _client(store: InMemoryRepository, controller: FakeController | None = None) -> TestClient:
    app.dependency_overrides[get_repository] = lambda: store
    app.dependency_overrides[get_fetch_cycle_controller] = lambda: controller or FakeController(store)
    return TestClient(app)


def teardown_function() -> None:
    app.dependency_overrides.clear()


def test_healthz() -> None:
    client = _client(InMemoryRepository())
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_list_and_get_scholarships() -> None:
    store = InMemoryRepository()
    record_id = asyncio.run(store.insert_scholarship(make_candidate(), source="grok-web-search-batch-1"))
    client = _client(store)

    listed = client.get("/scholarships", params={"limit": 5})
    assert listed.status_code == 200
    body = listed.json()
    assert body["total"] == 1
    assert body["limit"] == 5
    assert [item["id"] for item in body["data"]] == [record_id]

    detail = client.get(f"/scholarships/{record_id}")
    assert detail.status_code == 200
    assert detail.json()["organization"] == "University of Oxford"

    missing = client.get("/scholarships/does-not-exist")
    assert missing.status_code == 404


def test_trigger_fetch_run_is_accepted_and_recorded() -> None:
    store = InMemoryRepository()
    controller = FakeController(store)
    client = _client(store, controller)

    response = client.post("/fetch-runs")
    assert response.status_code == 202
    assert response.json() == {"message": "fetch cycle started"}
    assert controller.calls == 1

    runs = client.get("/fetch-runs", params={"limit": 5})
    assert runs.status_code == 200
    assert [run["status"] for run in runs.json()] == ["completed"]


def test_stats_endpoint() -> None:
    store = InMemoryRepository()
    asyncio.run(store.insert_scholarship(make_candidate(), source="grok-web-search-batch-1"))
    client = _client(store)

    response = client.get("/stats")
    assert response.status_code == 200
    assert response.json()["total_scholarships"] == 1
    assert response.json()["last_fetched_at"] is None


def test_limit_is_bounded() -> None:
    client = _client(InMemoryRepository())
    assert client.get("/scholarships", params={"limit": 0}).status_code == 422
    assert client.get("/fetch-runs", params={"limit": 1000}).status_code == 422


def test_admin_patch_rejects_untrusted_link() -> None:
    store = InMemoryRepository()
    record_id = asyncio.run(store.insert_scholarship(make_candidate(), source="grok-web-search-batch-1"))
    client = _client(store)

    rejected = client.patch(
        f"/admin/scholarships/{record_id}",
        json={"link": "https://www.scholarships.com/clarendon"},
    )
    assert rejected.status_code == 422
    assert store.scholarships[record_id].link == "https://www.ox.ac.uk/clarendon"

    accepted = client.patch(f"/admin/scholarships/{record_id}", json={"amount": "GBP 18,000 stipend"})
    assert accepted.status_code == 200
    assert accepted.json()["amount"] == "GBP 18,000 stipend"

    assert client.patch(f"/admin/scholarships/{record_id}", json={"is_verified": True}).status_code == 422
    assert client.patch("/admin/scholarships/missing", json={"amount": "Full"}).status_code == 404


def test_admin_verification_and_delete() -> None:
    store = InMemoryRepository()
    record_id = asyncio.run(store.insert_scholarship(make_candidate(), source="grok-web-search-batch-1"))
    client = _client(store)

    verified = client.post(
        f"/admin/scholarships/{record_id}/verification",
        json={"verified": True, "notes": "matched the official page"},
    )
    assert verified.status_code == 200
    assert verified.json()["is_verified"] is True
    assert store.scholarships[record_id].verification_notes == "matched the official page"

    deleted = client.delete(f"/admin/scholarships/{record_id}")
    assert deleted.status_code == 204
    assert client.get(f"/scholarships/{record_id}").status_code == 404
    assert client.delete(f"/admin/scholarships/{record_id}").status_code == 404


def test_admin_create_applies_trust_and_deadline_rules() -> None:
    store = InMemoryRepository()
    client = _client(store)

    created = client.post("/admin/scholarships", json=candidate_payload())
    assert created.status_code == 201
    record = store.scholarships[created.json()["id"]]
    assert record.source == "manual"
    assert record.is_verified is False

    assert client.post("/admin/scholarships", json=candidate_payload()).status_code == 409
    untrusted = candidate_payload(title="Aggregator Listed Scholarship", link="https://www.fastweb.com/x")
    assert client.post("/admin/scholarships", json=untrusted).status_code == 422
    expired = candidate_payload(title="Long Closed Scholarship Fund", deadline="2020-01-31")
    assert client.post("/admin/scholarships", json=expired).status_code == 422


def test_root_reports_storage_and_provider_lineup() -> None:
    client = _client(InMemoryRepository())
    body = client.get("/").json()
    assert body["storage"] == "memory"
    assert [entry["provider"] for entry in body["providers"]] == ["openai", "gemini", "grok"]
    assert sum(entry["current"] for entry in body["providers"]) == 1


def test_storage_outage_maps_to_service_unavailable() -> None:
    class OfflineStore(InMemoryRepository):
        async def count_scholarships(self) -> int:
            raise RepositoryUnavailableError("database unavailable")

    client = _client(OfflineStore())
    response = client.get("/readyz")
    assert response.status_code == 503
    assert response.json() == {"detail": "database unavailable"}
    assert client.get("/healthz").status_code == 200

    ready = _client(InMemoryRepository()).get("/readyz")
    assert ready.json() == {"status": "ready", "storage": "memory", "listed": 0}
