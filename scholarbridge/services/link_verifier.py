from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import TypeVar

import httpx
from opentelemetry import trace

from scholarbridge.schemas.scholarships import ValidatedCandidate, VerifiedCandidate

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; ScholarBridge/1.0; +https://scholarbridge.com)"
HEAD_REJECTED_STATUS_CODES = {403, 405}

T = TypeVar("T")
R = TypeVar("R")


@dataclass(slots=True)
class LinkCheckResult:
    url: str
    alive: bool
    status_code: int | None
    method: str
    reason: str


class WindowedPool:
    """Run an async function over items, at most ``size`` at a time.

    Items are split into consecutive windows; a window is awaited to
    completion before the next one starts, so results keep input order.
    """

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ValueError("window size must be at least 1")
        self.size = size

    async def map(self, func: Callable[[T], Awaitable[R]], items: Sequence[T]) -> list[R]:
        results: list[R] = []
        for start in range(0, len(items), self.size):
            window = items[start : start + self.size]
            with tracer.start_as_current_span("link_check.window") as span:
                span.set_attribute("window.start", start)
                span.set_attribute("window.size", len(window))
                results.extend(await asyncio.gather(*(func(item) for item in window)))
        return results


class LinkVerifier:
    def __init__(
        self,
        *,
        timeout_seconds: float = 8.0,
        concurrency: int = 5,
        user_agent: str = DEFAULT_USER_AGENT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent
        self._pool = WindowedPool(concurrency)
        self._client = client

    async def verify(self, candidates: Sequence[ValidatedCandidate]) -> list[VerifiedCandidate]:
        if not candidates:
            return []

        logger.info("verifying %s scholarship links", len(candidates))
        if self._client is not None:
            results = await self._check_all(self._client, candidates)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, follow_redirects=True) as client:
                results = await self._check_all(client, candidates)

        checked_at = datetime.now(timezone.utc)
        verified: list[VerifiedCandidate] = []
        for candidate, result in zip(candidates, results):
            if not result.alive:
                logger.warning(
                    "dead link url=%s title=%r status=%s reason=%s",
                    candidate.link,
                    candidate.title,
                    result.status_code,
                    result.reason,
                )
                continue
            verified.append(
                VerifiedCandidate(
                    **candidate.model_dump(),
                    link_status_code=result.status_code,
                    link_checked_at=checked_at,
                )
            )

        logger.info("%s/%s links verified ok", len(verified), len(candidates))
        return verified

    async def check_link(self, url: str) -> LinkCheckResult:
        if self._client is not None:
            return await self._check(self._client, url)
        async with httpx.AsyncClient(timeout=self.timeout_seconds, follow_redirects=True) as client:
            return await self._check(client, url)

    async def check_links(self, urls: Sequence[str]) -> list[LinkCheckResult]:
        if self._client is not None:
            return await self._pool.map(lambda url: self._check(self._client, url), urls)
        async with httpx.AsyncClient(timeout=self.timeout_seconds, follow_redirects=True) as client:
            return await self._pool.map(lambda url: self._check(client, url), urls)

    async def _check_all(
        self,
        client: httpx.AsyncClient,
        candidates: Sequence[ValidatedCandidate],
    ) -> list[LinkCheckResult]:
        return await self._pool.map(lambda candidate: self._check(client, candidate.link), candidates)

    async def _check(self, client: httpx.AsyncClient, url: str) -> LinkCheckResult:
        status_code, failure = await self._attempt(client, "HEAD", url)
        if status_code is None:
            return LinkCheckResult(url=url, alive=False, status_code=None, method="HEAD", reason=failure)
        if 200 <= status_code < 400:
            return LinkCheckResult(url=url, alive=True, status_code=status_code, method="HEAD", reason="ok")
        if status_code not in HEAD_REJECTED_STATUS_CODES:
            return LinkCheckResult(url=url, alive=False, status_code=status_code, method="HEAD", reason="bad_status")

        status_code, failure = await self._attempt(client, "GET", url)
        if status_code is None:
            return LinkCheckResult(url=url, alive=False, status_code=None, method="GET", reason=failure)
        alive = 200 <= status_code < 300
        return LinkCheckResult(
            url=url,
            alive=alive,
            status_code=status_code,
            method="GET",
            reason="ok" if alive else "bad_status",
        )

    async def _attempt(self, client: httpx.AsyncClient, method: str, url: str) -> tuple[int | None, str]:
        """Return the status code, or None and a failure reason. One bad link never fails the batch."""
        try:
            return await self._status_code(client, method, url), "ok"
        except TimeoutError:
            return None, "timeout"
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            # ValueError covers IDNA and other hostname encoding failures.
            return None, type(exc).__name__
        except Exception as exc:
            logger.warning("%s %s failed unexpectedly: %r", method, url, exc)
            return None, type(exc).__name__

    async def _status_code(self, client: httpx.AsyncClient, method: str, url: str) -> int:
        async def send() -> int:
            # Body is never read; closing the stream discards it.
            async with client.stream(method, url, headers={"User-Agent": self.user_agent}) as response:
                return response.status_code

        return await asyncio.wait_for(send(), timeout=self.timeout_seconds)
