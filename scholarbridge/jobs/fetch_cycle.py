"""One scheduled pass of the ingestion pipeline, bounded by a fetch-run record.

A run moves from ``running`` to exactly one of ``completed`` or ``failed``.
``run_fetch_cycle`` never raises; callers only have to trigger it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache, partial
import logging
from typing import Any

from opentelemetry import trace

from scholarbridge.core.config import Settings, get_settings
from scholarbridge.schemas.fetch_runs import FetchRunStatus
from scholarbridge.services.batch import BatchOrchestrator
from scholarbridge.services.dedupe import merge_candidates
from scholarbridge.services.link_verifier import LinkVerifier
from scholarbridge.services.providers.base import SearchProvider
from scholarbridge.services.providers.registry import ProviderConfig, build_provider
from scholarbridge.services.queries import batch_number, get_search_queries, total_batches
from scholarbridge.services.repository import get_repository

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(slots=True)
class RunCounter:
    """Monotonic run index used to rotate through the query batches."""

    value: int = 0

    def advance(self) -> int:
        current = self.value
        self.value += 1
        return current


@dataclass(slots=True)
class FetchCycleOutcome:
    run_id: str | None
    status: FetchRunStatus
    run_index: int
    found: int = 0
    verified: int = 0
    added: int = 0
    updated: int = 0
    duplicates: int = 0
    error: str | None = None


class FetchCycleController:
    def __init__(
        self,
        *,
        repository: Any,
        provider_factory: Callable[[], SearchProvider],
        orchestrator: BatchOrchestrator,
        counter: RunCounter | None = None,
        queries_for: Callable[[int], list[str]] = get_search_queries,
    ) -> None:
        self._repository = repository
        self._provider_factory = provider_factory
        self._orchestrator = orchestrator
        self.counter = counter or RunCounter()
        self._queries_for = queries_for

    async def run_fetch_cycle(self) -> FetchCycleOutcome:
        run_index = self.counter.advance()
        queries = self._queries_for(run_index)
        with tracer.start_as_current_span("fetch_cycle.run") as span:
            span.set_attribute("fetch_cycle.run_index", run_index)
            span.set_attribute("fetch_cycle.query_count", len(queries))
            outcome = await self._run(run_index, queries)
            span.set_attribute("fetch_cycle.status", outcome.status)
            return outcome

    async def _run(self, run_index: int, queries: list[str]) -> FetchCycleOutcome:
        batch_no = batch_number(run_index)
        try:
            run_id = await self._repository.create_fetch_run(queries)
        except Exception as exc:  # pragma: no cover - storage outage
            logger.exception("could not open fetch run #%s", run_index + 1)
            return FetchCycleOutcome(run_id=None, status="failed", run_index=run_index, error=str(exc))

        logger.info(
            "fetch cycle #%s started run_id=%s batch=%s/%s queries=%s",
            run_index + 1,
            run_id,
            batch_no,
            total_batches(),
            len(queries),
        )

        try:
            provider = self._provider_factory()
            batch = await self._orchestrator.run_batch(queries, provider)
            merge = await merge_candidates(
                batch.verified,
                self._repository,
                source=f"{provider.name().lower()}-web-search-batch-{batch_no}",
            )
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            logger.error("fetch cycle #%s failed run_id=%s: %s", run_index + 1, run_id, error)
            await self._finish(run_id, failed_with=error)
            return FetchCycleOutcome(run_id=run_id, status="failed", run_index=run_index, error=error)

        finish_error = await self._finish(run_id, found=batch.found, added=merge.added)
        if finish_error is not None:
            error = f"could not record run completion: {finish_error}"
            await self._finish(run_id, failed_with=error)
            return FetchCycleOutcome(
                run_id=run_id,
                status="failed",
                run_index=run_index,
                found=batch.found,
                verified=len(batch.verified),
                added=merge.added,
                updated=merge.updated,
                duplicates=merge.duplicates,
                error=error,
            )
        logger.info(
            "fetch cycle #%s completed run_id=%s found=%s verified=%s added=%s updated=%s duplicates=%s",
            run_index + 1,
            run_id,
            batch.found,
            len(batch.verified),
            merge.added,
            merge.updated,
            merge.duplicates,
        )
        return FetchCycleOutcome(
            run_id=run_id,
            status="completed",
            run_index=run_index,
            found=batch.found,
            verified=len(batch.verified),
            added=merge.added,
            updated=merge.updated,
            duplicates=merge.duplicates,
        )

    async def _finish(
        self,
        run_id: str,
        *,
        found: int = 0,
        added: int = 0,
        failed_with: str | None = None,
    ) -> str | None:
        """Finalize the run record; return the storage error, if any."""
        try:
            if failed_with is not None:
                await self._repository.fail_fetch_run(run_id, error=failed_with)
            else:
                await self._repository.complete_fetch_run(run_id, found=found, added=added)
        except Exception as exc:
            logger.exception("could not finalize fetch run run_id=%s", run_id)
            return str(exc) or type(exc).__name__
        return None


def build_fetch_cycle_controller(settings: Settings, repository: Any) -> FetchCycleController:
    verifier = LinkVerifier(
        timeout_seconds=settings.link_check_timeout_seconds,
        concurrency=settings.link_check_concurrency,
        user_agent=settings.link_check_user_agent,
    )
    orchestrator = BatchOrchestrator(verifier=verifier, query_delay_seconds=settings.query_delay_seconds)
    return FetchCycleController(
        repository=repository,
        provider_factory=partial(build_provider, ProviderConfig.from_settings(settings)),
        orchestrator=orchestrator,
    )


@lru_cache
def get_fetch_cycle_controller() -> FetchCycleController:
    return build_fetch_cycle_controller(get_settings(), get_repository())


async def run_fetch_cycle() -> FetchCycleOutcome:
    return await get_fetch_cycle_controller().run_fetch_cycle()
