from __future__ import annotations

from datetime import date, timedelta
from typing import Any

from scholarbridge.schemas.scholarships import ValidatedCandidate


def future_deadline(days: int = 90) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


def candidate_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "title": "Clarendon Fund Scholarship",
        "organization": "University of Oxford",
        "country": "United Kingdom",
        "level": "PhD",
        "field": "Any",
        "category": "Merit-Based",
        "deadline": future_deadline(),
        "description": "Covers course fees and a living grant; applicants must hold an offer for a graduate course.",
        "link": "https://www.ox.ac.uk/clarendon",
        "amount": "Full funding",
        "currency": "GBP",
    }
    payload.update(overrides)
    return payload


def make_candidate(**overrides: Any) -> ValidatedCandidate:
    return ValidatedCandidate.model_validate(candidate_payload(**overrides))
