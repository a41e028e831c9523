from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from scholarbridge.schemas.scholarships import ValidatedCandidate, VerifiedCandidate
from scholarbridge.services.batch import BatchOrchestrator
from scholarbridge.services.providers.base import ProviderNotConfiguredError
from scholarbridge.services.validation import Rejection, ValidationReport
from tests.factories import make_candidate


class FakeProvider:
    def __init__(self, replies: dict[str, ValidationReport], *, configured: bool = True) -> None:
        self.replies = replies
        self.configured = configured
        self.queries: list[str] = []

    def name(self) -> str:
        return "Fake"

    def is_configured(self) -> bool:
        return self.configured

    async def search_report(self, query: str) -> ValidationReport:
        self.queries.append(query)
        return self.replies.get(query, ValidationReport())


class RecordingVerifier:
    def __init__(self) -> None:
        self.calls: list[list[ValidatedCandidate]] = []

    async def verify(self, candidates: list[ValidatedCandidate]) -> list[VerifiedCandidate]:
        self.calls.append(list(candidates))
        return [
            VerifiedCandidate(
                **candidate.model_dump(),
                link_status_code=200,
                link_checked_at=datetime.now(timezone.utc),
            )
            for candidate in candidates
        ]


def test_run_batch_queries_sequentially_with_delay_and_verifies_once() -> None:
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    first = make_candidate(title="Erasmus Mundus Joint Master", organization="European Commission")
    second = make_candidate(title="DAAD Study Scholarship Award", organization="DAAD")
    provider = FakeProvider(
        {
            "q1": ValidationReport(found=2, accepted=[first], rejected=[Rejection(stage="trust", reason="blocked")]),
            "q3": ValidationReport(found=1, accepted=[second]),
        }
    )
    verifier = RecordingVerifier()
    orchestrator = BatchOrchestrator(verifier=verifier, query_delay_seconds=2.0, sleep=fake_sleep)

    result = asyncio.run(orchestrator.run_batch(["q1", "q2", "q3"], provider))

    assert provider.queries == ["q1", "q2", "q3"]
    assert sleeps == [2.0, 2.0]
    assert len(verifier.calls) == 1
    assert [candidate.title for candidate in verifier.calls[0]] == [first.title, second.title]
    assert result.found == 3
    assert len(result.verified) == 2
    assert len(result.rejected) == 1
    assert result.provider_name == "Fake"


def test_run_batch_with_no_candidates_still_completes() -> None:
    async def fake_sleep(seconds: float) -> None:
        return None

    verifier = RecordingVerifier()
    result = asyncio.run(
        BatchOrchestrator(verifier=verifier, sleep=fake_sleep).run_batch(["q1"], FakeProvider({}))
    )
    assert result.found == 0
    assert result.verified == []


def test_run_batch_refuses_unconfigured_provider() -> None:
    orchestrator = BatchOrchestrator(verifier=RecordingVerifier())
    with pytest.raises(ProviderNotConfiguredError):
        asyncio.run(orchestrator.run_batch(["q1"], FakeProvider({}, configured=False)))
