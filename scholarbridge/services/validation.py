"""Turn untrusted provider text into validated scholarship candidates.

Every provider variant hands its raw model output to ``validate_candidates``.
Parsing problems never raise: an unparseable reply is an empty batch, and a
bad element only costs that element.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
import json
import logging
import re
from typing import Any, Literal

from pydantic import ValidationError

from scholarbridge.core.trust import is_trusted_link
from scholarbridge.schemas.scholarships import ValidatedCandidate

logger = logging.getLogger(__name__)

MAX_DEADLINE_YEARS_AHEAD = 3
_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)

RejectionStage = Literal["schema", "trust", "deadline"]


@dataclass(slots=True)
class Rejection:
    stage: RejectionStage
    reason: str
    title: str | None = None


@dataclass(slots=True)
class ValidationReport:
    found: int = 0
    accepted: list[ValidatedCandidate] = field(default_factory=list)
    rejected: list[Rejection] = field(default_factory=list)
    parse_failed: bool = False


def extract_json_items(raw_text: str | None) -> list[Any] | None:
    """Return the list of JSON elements in ``raw_text``, or None if nothing parses."""
    if not raw_text or not raw_text.strip():
        return None

    match = _FENCED_BLOCK_RE.search(raw_text)
    payload = match.group(1).strip() if match else raw_text.strip()

    decoded = _loads(payload)
    if decoded is None and not match:
        start = payload.find("[")
        end = payload.rfind("]")
        if 0 <= start < end:
            decoded = _loads(payload[start : end + 1])

    if isinstance(decoded, list):
        return decoded
    if isinstance(decoded, dict):
        return [decoded]
    return None


def validate_candidates(
    raw_text: str | None,
    *,
    now: datetime | None = None,
    source: str = "provider",
) -> ValidationReport:
    current = now or datetime.now(timezone.utc)
    items = extract_json_items(raw_text)
    if items is None:
        preview = (raw_text or "")[:400]
        logger.warning("[%s] json parse failed; treating reply as empty batch; raw=%r", source, preview)
        return ValidationReport(parse_failed=True)

    report = ValidationReport(found=len(items))
    for item in items:
        outcome = validate_candidate(item, now=current)
        if isinstance(outcome, Rejection):
            logger.warning(
                "[%s] rejected candidate stage=%s title=%r reason=%s",
                source,
                outcome.stage,
                outcome.title,
                outcome.reason,
            )
            report.rejected.append(outcome)
            continue
        report.accepted.append(outcome)
    return report


def validate_candidate(item: Any, *, now: datetime) -> ValidatedCandidate | Rejection:
    title = _title_hint(item)
    if not isinstance(item, dict):
        return Rejection(stage="schema", reason="candidate is not a JSON object", title=None)

    try:
        candidate = ValidatedCandidate.model_validate(item)
    except ValidationError as exc:
        return Rejection(stage="schema", reason=_format_validation_error(exc), title=title)

    if not is_trusted_link(candidate.link):
        return Rejection(stage="trust", reason=f"blocked link: {candidate.link}", title=candidate.title)

    violation = deadline_window_violation(candidate.deadline, now=now)
    if violation is not None:
        return Rejection(stage="deadline", reason=violation, title=candidate.title)

    return candidate


def deadline_window_violation(deadline: str, *, now: datetime) -> str | None:
    try:
        deadline_day = date.fromisoformat(deadline)
    except ValueError:
        return f"unparseable deadline: {deadline}"

    current = now if now.tzinfo is not None else now.replace(tzinfo=timezone.utc)
    deadline_at = datetime.combine(deadline_day, time.min, tzinfo=timezone.utc)
    if deadline_at < current:
        return f"deadline in the past: {deadline}"
    if deadline_at > _add_years(current, MAX_DEADLINE_YEARS_AHEAD):
        return f"deadline too far in the future: {deadline}"
    return None


def _add_years(value: datetime, years: int) -> datetime:
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        # 29 February
        return value.replace(year=value.year + years, day=28)


def _loads(payload: str) -> Any:
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        return None


def _title_hint(item: Any) -> str | None:
    if isinstance(item, dict):
        title = item.get("title")
        if isinstance(title, str):
            return title.strip() or None
    return None


def _format_validation_error(exc: ValidationError) -> str:
    issues = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "candidate"
        issues.append(f"{location}: {error.get('msg', 'invalid')}")
    return "; ".join(issues)
