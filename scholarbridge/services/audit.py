"""Audits of stored scholarships: thin or boilerplate descriptions and dead links."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from scholarbridge.schemas.scholarships import ScholarshipRecord
from scholarbridge.services.link_verifier import LinkCheckResult, LinkVerifier

SHORT_DESCRIPTION_LENGTH = 100
GENERIC_DESCRIPTION_LENGTH = 150
ELIGIBILITY_MARKERS = ("eligib", "requir", "must")
GENERIC_PHRASES = (
    "provides scholarships",
    "offers funding",
    "supports students",
    "comprehensive funding",
)


@dataclass(slots=True)
class AuditFinding:
    record: ScholarshipRecord
    issues: list[str]


@dataclass(slots=True)
class AuditReport:
    total: int = 0
    verified: int = 0
    findings: list[AuditFinding] = field(default_factory=list)


def audit_description(text: str | None) -> list[str]:
    description = text or ""
    lowered = description.lower()
    issues: list[str] = []
    if len(description) < SHORT_DESCRIPTION_LENGTH:
        issues.append(f"short description ({len(description)} chars)")
    if not any(marker in lowered for marker in ELIGIBILITY_MARKERS):
        issues.append("no eligibility criteria mentioned")
    if len(description) < GENERIC_DESCRIPTION_LENGTH and any(phrase in lowered for phrase in GENERIC_PHRASES):
        issues.append("generic wording")
    return issues


def audit_records(records: Iterable[ScholarshipRecord]) -> AuditReport:
    report = AuditReport()
    for record in records:
        report.total += 1
        if record.is_verified:
            report.verified += 1
        issues = audit_description(record.description)
        if issues:
            report.findings.append(AuditFinding(record=record, issues=issues))
    return report


@dataclass(slots=True)
class DeadLink:
    record: ScholarshipRecord
    result: LinkCheckResult


async def find_dead_links(records: Sequence[ScholarshipRecord], verifier: LinkVerifier) -> list[DeadLink]:
    """Re-check stored links; a listing can go stale long after it was verified."""
    results = await verifier.check_links([record.link for record in records])
    return [DeadLink(record=record, result=result) for record, result in zip(records, results) if not result.alive]
