from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
import logging

from opentelemetry import trace

from scholarbridge.schemas.scholarships import ValidatedCandidate, VerifiedCandidate
from scholarbridge.services.link_verifier import LinkVerifier
from scholarbridge.services.providers.base import ProviderNotConfiguredError, SearchProvider
from scholarbridge.services.validation import Rejection

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(slots=True)
class BatchResult:
    provider_name: str
    queries: list[str]
    found: int = 0
    validated: list[ValidatedCandidate] = field(default_factory=list)
    verified: list[VerifiedCandidate] = field(default_factory=list)
    rejected: list[Rejection] = field(default_factory=list)


class BatchOrchestrator:
    """Issue queries one after another, then verify every accepted link once."""

    def __init__(
        self,
        *,
        verifier: LinkVerifier,
        query_delay_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._verifier = verifier
        self.query_delay_seconds = max(0.0, query_delay_seconds)
        self._sleep = sleep

    async def run_batch(self, queries: Sequence[str], provider: SearchProvider) -> BatchResult:
        if not provider.is_configured():
            raise ProviderNotConfiguredError(f"{provider.name()} provider is not configured")

        result = BatchResult(provider_name=provider.name(), queries=list(queries))
        for index, query in enumerate(queries):
            if index and self.query_delay_seconds:
                await self._sleep(self.query_delay_seconds)
            with tracer.start_as_current_span("batch.query") as span:
                span.set_attribute("provider.name", provider.name())
                span.set_attribute("query.index", index)
                report = await provider.search_report(query)
                span.set_attribute("candidates.found", report.found)
                span.set_attribute("candidates.accepted", len(report.accepted))
            result.found += report.found
            result.validated.extend(report.accepted)
            result.rejected.extend(report.rejected)

        logger.info(
            "[%s] batch collected %s validated candidates (%s found) from %s queries",
            provider.name(),
            len(result.validated),
            result.found,
            len(queries),
        )
        result.verified = await self._verifier.verify(result.validated)
        return result
