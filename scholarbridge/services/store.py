from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any
from uuid import uuid4

from scholarbridge.core.trust import is_trusted_link
from scholarbridge.schemas.fetch_runs import FetchRunOut, StatsOut
from scholarbridge.schemas.scholarships import ScholarshipRecord, ValidatedCandidate
from scholarbridge.services.repository import (
    DISTINCT_FIELDS,
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryValidationError,
    ensure_trusted_link,
    identity_key,
    prepare_changes,
)


class InMemoryRepository:
    """Process-local store with the same contract as ``PostgresRepository``.

    Used by tests and as the development fallback when no database URL is
    configured. The identity index mirrors the unique index in Postgres.
    """

    backend = "memory"

    def __init__(self) -> None:
        self.scholarships: dict[str, ScholarshipRecord] = {}
        self.identity_index: dict[tuple[str, str], str] = {}
        self.fetch_runs: dict[str, FetchRunOut] = {}

    async def close(self) -> None:
        return None

    async def ensure_schema(self) -> None:
        return None

    async def find_scholarship_by_identity(self, title: str, organization: str) -> ScholarshipRecord | None:
        record_id = self.identity_index.get(identity_key(title, organization))
        return self.scholarships.get(record_id) if record_id else None

    async def get_scholarship(self, record_id: str) -> ScholarshipRecord:
        record = self.scholarships.get(record_id)
        if record is None:
            raise RepositoryNotFoundError("scholarship not found")
        return record

    async def insert_scholarship(
        self,
        candidate: ValidatedCandidate,
        *,
        source: str,
        is_verified: bool = False,
    ) -> str:
        link = ensure_trusted_link(candidate.link)
        key = identity_key(candidate.title, candidate.organization)
        if key in self.identity_index:
            raise RepositoryConflictError("scholarship with this title and organization already exists")

        now = datetime.now(timezone.utc)
        record = ScholarshipRecord(
            id=str(uuid4()),
            title=candidate.title,
            organization=candidate.organization,
            country=candidate.country,
            level=candidate.level,
            field=candidate.field,
            category=candidate.category,
            deadline=candidate.deadline_date,
            description=candidate.description,
            link=link,
            amount=candidate.amount or "Varies",
            currency=candidate.currency or "USD",
            is_verified=is_verified,
            source=source,
            created_at=now,
            updated_at=now,
        )
        self.scholarships[record.id] = record
        self.identity_index[key] = record.id
        return record.id

    async def update_scholarship(self, record_id: str, changes: dict[str, Any]) -> ScholarshipRecord:
        prepared = prepare_changes(changes)
        current = await self.get_scholarship(record_id)
        if not prepared:
            return current

        updated = current.model_copy(update={**prepared, "updated_at": datetime.now(timezone.utc)})
        old_key = identity_key(current.title, current.organization)
        new_key = identity_key(updated.title, updated.organization)
        if new_key != old_key:
            if new_key in self.identity_index:
                raise RepositoryConflictError("scholarship with this title and organization already exists")
            del self.identity_index[old_key]
            self.identity_index[new_key] = record_id
        self.scholarships[record_id] = updated
        return updated

    async def set_scholarship_verified(
        self,
        record_id: str,
        *,
        verified: bool,
        notes: str | None = None,
    ) -> ScholarshipRecord:
        current = await self.get_scholarship(record_id)
        updated = current.model_copy(
            update={
                "is_verified": verified,
                "verification_notes": notes,
                "updated_at": datetime.now(timezone.utc),
            }
        )
        self.scholarships[record_id] = updated
        return updated

    async def delete_scholarship(self, record_id: str) -> None:
        record = await self.get_scholarship(record_id)
        del self.scholarships[record_id]
        self.identity_index.pop(identity_key(record.title, record.organization), None)

    async def list_scholarships(self, *, limit: int, offset: int) -> list[ScholarshipRecord]:
        listed = sorted(self._listed(), key=lambda record: (record.deadline, record.id))
        return listed[offset : offset + limit]

    async def list_all_scholarships(self) -> list[ScholarshipRecord]:
        return sorted(self.scholarships.values(), key=lambda record: record.deadline)

    async def count_scholarships(self) -> int:
        return len(self._listed())

    async def distinct_values(self, field: str) -> list[str]:
        if field not in DISTINCT_FIELDS:
            raise RepositoryValidationError(f"field must be one of: {', '.join(sorted(DISTINCT_FIELDS))}")
        return sorted({getattr(record, field) for record in self._active()})

    async def get_stats(self) -> StatsOut:
        completed = [run for run in self.fetch_runs.values() if run.status == "completed" and run.completed_at]
        last_run = max(completed, key=lambda run: run.completed_at, default=None)
        return StatsOut(
            total_scholarships=await self.count_scholarships(),
            total_countries=len(await self.distinct_values("country")),
            total_organizations=len(await self.distinct_values("organization")),
            last_fetched_at=last_run.completed_at if last_run else None,
            last_fetch_added=last_run.scholarships_added if last_run else 0,
        )

    async def create_fetch_run(self, queries: list[str]) -> str:
        run = FetchRunOut(
            id=str(uuid4()),
            search_queries=list(queries),
            status="running",
            started_at=datetime.now(timezone.utc),
        )
        self.fetch_runs[run.id] = run
        return run.id

    async def complete_fetch_run(self, run_id: str, *, found: int, added: int) -> None:
        run = self._running_fetch_run(run_id)
        self.fetch_runs[run_id] = run.model_copy(
            update={
                "status": "completed",
                "scholarships_found": found,
                "scholarships_added": added,
                "completed_at": datetime.now(timezone.utc),
            }
        )

    async def fail_fetch_run(self, run_id: str, *, error: str) -> None:
        run = self._running_fetch_run(run_id)
        self.fetch_runs[run_id] = run.model_copy(
            update={
                "status": "failed",
                "error": error,
                "completed_at": datetime.now(timezone.utc),
            }
        )

    async def list_fetch_runs(self, *, limit: int = 20) -> list[FetchRunOut]:
        runs = sorted(self.fetch_runs.values(), key=lambda run: run.started_at, reverse=True)
        return runs[:limit]

    async def get_fetch_run(self, run_id: str) -> FetchRunOut:
        run = self.fetch_runs.get(run_id)
        if run is None:
            raise RepositoryNotFoundError("fetch run not found")
        return run

    def _running_fetch_run(self, run_id: str) -> FetchRunOut:
        run = self.fetch_runs.get(run_id)
        if run is None:
            raise RepositoryNotFoundError("fetch run not found")
        if run.status != "running":
            raise RepositoryConflictError("fetch run is not running")
        return run

    def _active(self) -> list[ScholarshipRecord]:
        today = date.today()
        return [record for record in self.scholarships.values() if record.deadline >= today]

    def _listed(self) -> list[ScholarshipRecord]:
        return [record for record in self._active() if is_trusted_link(record.link)]
