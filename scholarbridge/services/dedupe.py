from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
import logging
from typing import Any, Literal

from scholarbridge.core.trust import is_trusted_link
from scholarbridge.schemas.scholarships import ScholarshipRecord, ValidatedCandidate
from scholarbridge.services.repository import (
    RecordStore,
    RepositoryConflictError,
    RepositoryValidationError,
)

logger = logging.getLogger(__name__)

UNSPECIFIED_AMOUNT = "varies"

MergeDecision = Literal["insert", "update", "duplicate"]


@dataclass(slots=True)
class MergePolicyDecision:
    decision: MergeDecision
    record_id: str | None = None
    changes: dict[str, Any] = field(default_factory=dict)
    reasons: list[str] = field(default_factory=list)


@dataclass(slots=True)
class MergeResult:
    added: int = 0
    updated: int = 0
    duplicates: int = 0
    rejected: int = 0

    @property
    def processed(self) -> int:
        return self.added + self.updated + self.duplicates + self.rejected


def evaluate_merge_policy(
    *,
    incoming: ValidatedCandidate,
    existing: ScholarshipRecord | None,
) -> MergePolicyDecision:
    """Decide how an incoming candidate reconciles with the stored record sharing its identity key."""
    if existing is None:
        return MergePolicyDecision(decision="insert", reasons=["no_existing_record"])

    deadline_extended = incoming.deadline_date > existing.deadline
    description_longer = len(incoming.description.strip()) > len((existing.description or "").strip())
    if not deadline_extended and not description_longer:
        return MergePolicyDecision(decision="duplicate", record_id=existing.id, reasons=["no_better_fields"])

    changes: dict[str, Any] = {}
    reasons: list[str] = []
    if deadline_extended:
        changes["deadline"] = incoming.deadline_date
        reasons.append("deadline_extended")
    if description_longer:
        changes["description"] = incoming.description.strip()
        reasons.append("description_longer")
    if incoming.link.strip() != existing.link and is_trusted_link(incoming.link):
        changes["link"] = incoming.link.strip()
        reasons.append("link_replaced")
    if _amount_is_better(incoming.amount, existing.amount):
        changes["amount"] = incoming.amount.strip()
        reasons.append("amount_replaced")

    return MergePolicyDecision(decision="update", record_id=existing.id, changes=changes, reasons=reasons)


async def merge_candidates(
    incoming: Sequence[ValidatedCandidate],
    store: RecordStore,
    *,
    source: str,
) -> MergeResult:
    """Reconcile verified candidates with the stored corpus, one at a time."""
    result = MergeResult()
    for candidate in incoming:
        existing = await store.find_scholarship_by_identity(candidate.title, candidate.organization)
        decision = evaluate_merge_policy(incoming=candidate, existing=existing)

        if decision.decision == "duplicate":
            result.duplicates += 1
            continue

        if decision.decision == "update" and decision.record_id is not None:
            await store.update_scholarship(decision.record_id, decision.changes)
            result.updated += 1
            logger.info("updated existing scholarship title=%r reasons=%s", candidate.title, decision.reasons)
            continue

        try:
            await store.insert_scholarship(candidate, source=source, is_verified=False)
        except RepositoryConflictError:
            # Another cycle inserted the same identity first.
            result.duplicates += 1
            logger.info("insert lost uniqueness race; counted as duplicate title=%r", candidate.title)
            continue
        except RepositoryValidationError as exc:
            result.rejected += 1
            logger.warning("store rejected scholarship title=%r: %s", candidate.title, exc)
            continue
        result.added += 1
        logger.info("added scholarship title=%r organization=%r", candidate.title, candidate.organization)

    logger.info(
        "merge done processed=%s added=%s updated=%s duplicates=%s rejected=%s",
        result.processed,
        result.added,
        result.updated,
        result.duplicates,
        result.rejected,
    )
    return result


def _amount_is_better(incoming: str | None, stored: str | None) -> bool:
    candidate = (incoming or "").strip()
    if not candidate or candidate == (stored or "").strip():
        return False
    if candidate.lower() == UNSPECIFIED_AMOUNT:
        return not (stored or "").strip()
    return True
