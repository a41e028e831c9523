from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
import logging
from typing import Any

import httpx

from scholarbridge.schemas.scholarships import ValidatedCandidate
from scholarbridge.services.validation import ValidationReport, validate_candidates

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a scholarship data extractor with web search capabilities. You MUST search the web to find real scholarship pages and extract data ONLY from what you find on those pages.

Rules; an entry that breaks any of them must be left out:
1. Every field MUST come from an official page you found via web search. Do not guess or invent details.
2. "link" MUST be the official scholarship or application page on the university or organisation's own website. Never an aggregator, social media post, blog, news article, or PDF.
3. "deadline" MUST be the exact date stated on the official page. If the page has no specific deadline, use "{fallback_deadline}" and add "(rolling/unconfirmed)" to the description.
4. "description" MUST contain ONLY facts from the official page: coverage, eligibility requirements, required documents, selection criteria.
5. "amount" MUST be the exact figure or range from the official page, or "Varies" when the page states none.
6. Leave out anything you are not certain is real and currently accepting applications.
7. Leave out scholarships whose deadlines have already passed.
8. Return 3-6 scholarships at most; accuracy matters more than quantity.

For "level": Bachelor | Master | PhD | Postdoctoral | Any
For "category": Merit-Based | Need-Based | Research | Sports | Women in STEM | International | Government | Private"""

USER_PROMPT = """Search the web for: "{query}"

For each real scholarship found on an OFFICIAL page, return one object in a JSON array:
[
  {{
    "title": "exact scholarship name from the official page",
    "organization": "exact university / organisation name",
    "country": "country",
    "level": "Bachelor|Master|PhD|Postdoctoral|Any",
    "field": "field of study or Any",
    "category": "one of the allowed categories",
    "deadline": "YYYY-MM-DD exactly as stated on the page",
    "description": "ONLY facts from the official page: coverage, eligibility, required documents, selection criteria",
    "link": "the official page URL you found (NOT an aggregator)",
    "amount": "exact value from the page",
    "currency": "USD|EUR|GBP|AUD|CAD|JPY|CNY|KRW|TRY|SEK|NOK|DKK|CHF|NZD|SGD|HKD|INR|Other"
  }}
]

Return ONLY the JSON array. No commentary. If nothing qualifies, return []."""


class ProviderError(Exception):
    """Base search provider error."""


class ProviderNotConfiguredError(ProviderError):
    """Raised when no usable search provider is configured."""


class ProviderResponseError(ProviderError):
    """Raised when an upstream reply carries no extractable text."""


def build_system_prompt(*, now: datetime | None = None) -> str:
    year = (now or datetime.now()).year
    return SYSTEM_PROMPT.format(fallback_deadline=f"{year}-12-31")


def build_user_prompt(query: str) -> str:
    return USER_PROMPT.format(query=query)


class SearchProvider(ABC):
    """One upstream model with web search.

    Subclasses only describe the request envelope and where the reply text
    lives; fetching, error containment and validation are shared here.
    """

    provider_name: str = "provider"

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        base_url: str,
        timeout_seconds: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client

    def name(self) -> str:
        return self.provider_name

    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    async def search(self, query: str) -> list[ValidatedCandidate]:
        report = await self.search_report(query)
        return report.accepted

    async def search_report(self, query: str, *, now: datetime | None = None) -> ValidationReport:
        if not self.is_configured():
            raise ProviderNotConfiguredError(f"{self.name()} provider has no API key")

        try:
            raw_text = await self._complete(query)
        except (httpx.HTTPError, ProviderResponseError, ValueError) as exc:
            logger.warning("[%s] search failed for query=%r: %s", self.name(), query, exc)
            return ValidationReport()

        if not raw_text.strip():
            logger.warning("[%s] empty response for query=%r", self.name(), query)
            return ValidationReport()

        report = validate_candidates(raw_text, now=now, source=self.name())
        logger.info(
            "[%s] %s/%s passed validation for query=%r",
            self.name(),
            len(report.accepted),
            report.found,
            query[:60],
        )
        return report

    async def _complete(self, query: str) -> str:
        url = self._endpoint()
        payload = self._build_payload(query)
        headers = {"Content-Type": "application/json", **self._headers()}
        if self._client is not None:
            response = await self._client.post(url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(url, json=payload, headers=headers)
        response.raise_for_status()
        payload = response.json()
        try:
            return self._extract_text(payload)
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise ProviderResponseError(f"unexpected response envelope: {type(exc).__name__}: {exc}") from exc

    @abstractmethod
    def _endpoint(self) -> str:
        """URL the search request is posted to."""

    @abstractmethod
    def _headers(self) -> dict[str, str]:
        """Authentication headers for the upstream API."""

    @abstractmethod
    def _build_payload(self, query: str) -> dict[str, Any]:
        """Request body asking the model to search the web for ``query``."""

    @abstractmethod
    def _extract_text(self, payload: Any) -> str:
        """Pull the model's text out of the response envelope."""
