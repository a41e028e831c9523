from __future__ import annotations

from datetime import date, datetime, timezone
from functools import lru_cache
import json
import logging
from typing import TYPE_CHECKING, Any, Protocol

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from scholarbridge.core.config import get_settings
from scholarbridge.core.trust import is_trusted_link
from scholarbridge.schemas.fetch_runs import FetchRunOut, StatsOut
from scholarbridge.schemas.scholarships import ScholarshipRecord, ValidatedCandidate

if TYPE_CHECKING:
    from scholarbridge.services.store import InMemoryRepository

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "title",
    "organization",
    "country",
    "level",
    "field",
    "category",
    "deadline",
    "description",
    "link",
    "amount",
    "currency",
}
DISTINCT_FIELDS = {"country", "level", "field", "category", "organization"}

SCHEMA_SQL = """
create table if not exists scholarships (
  id uuid primary key default gen_random_uuid(),
  title text not null,
  organization text not null,
  title_key text not null,
  organization_key text not null,
  country text not null,
  level text not null,
  field text not null,
  category text not null,
  deadline date not null,
  description text not null,
  link text not null,
  amount text,
  currency text,
  is_verified boolean not null default false,
  verification_notes text,
  source text,
  created_at timestamptz not null default now(),
  updated_at timestamptz not null default now()
);
create unique index if not exists scholarships_identity_key on scholarships (title_key, organization_key);
create index if not exists scholarships_deadline_idx on scholarships (deadline);

create table if not exists fetch_runs (
  id uuid primary key default gen_random_uuid(),
  search_queries jsonb not null default '[]'::jsonb,
  status text not null default 'running' check (status in ('running', 'completed', 'failed')),
  scholarships_found integer not null default 0,
  scholarships_added integer not null default 0,
  error text,
  started_at timestamptz not null default now(),
  completed_at timestamptz
);
create index if not exists fetch_runs_started_at_idx on fetch_runs (started_at desc);
"""

_SCHOLARSHIP_COLUMNS = """
  id::text as id,
  title,
  organization,
  country,
  level,
  field,
  category,
  deadline,
  description,
  link,
  amount,
  currency,
  is_verified,
  verification_notes,
  source,
  created_at,
  updated_at
"""

_FETCH_RUN_COLUMNS = """
  id::text as id,
  search_queries,
  status,
  scholarships_found,
  scholarships_added,
  error,
  started_at,
  completed_at
"""


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised on a uniqueness violation or an illegal run-state transition."""


class RepositoryValidationError(RepositoryError):
    """Raised when a write would store an untrusted or malformed record."""


class RecordStore(Protocol):
    async def find_scholarship_by_identity(self, title: str, organization: str) -> ScholarshipRecord | None: ...

    async def insert_scholarship(
        self,
        candidate: ValidatedCandidate,
        *,
        source: str,
        is_verified: bool = False,
    ) -> str: ...

    async def update_scholarship(self, record_id: str, changes: dict[str, Any]) -> ScholarshipRecord: ...


def identity_key(title: str, organization: str) -> tuple[str, str]:
    return title.strip().lower(), organization.strip().lower()


def ensure_trusted_link(link: Any) -> str:
    if not isinstance(link, str) or not is_trusted_link(link):
        raise RepositoryValidationError(f"untrusted application link: {link!r}")
    return link.strip()


def prepare_changes(changes: dict[str, Any]) -> dict[str, Any]:
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise RepositoryValidationError(f"fields cannot be updated: {sorted(unknown)}")

    prepared: dict[str, Any] = {}
    for key, value in changes.items():
        if key == "link":
            prepared[key] = ensure_trusted_link(value)
        elif key == "deadline":
            prepared[key] = value if isinstance(value, date) else _parse_date(value)
        elif isinstance(value, str):
            prepared[key] = value.strip()
        else:
            prepared[key] = value
    return prepared


class PostgresRepository:
    backend = "postgres"

    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def ensure_schema(self) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)

    async def find_scholarship_by_identity(self, title: str, organization: str) -> ScholarshipRecord | None:
        title_key, organization_key = identity_key(title, organization)
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            select {_SCHOLARSHIP_COLUMNS}
            from scholarships
            where title_key = $1 and organization_key = $2
            """,
            title_key,
            organization_key,
        )
        return self._scholarship_row_to_record(row) if row else None

    async def get_scholarship(self, record_id: str) -> ScholarshipRecord:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"select {_SCHOLARSHIP_COLUMNS} from scholarships where id = $1::uuid",
                record_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("scholarship not found") from exc
        if not row:
            raise RepositoryNotFoundError("scholarship not found")
        return self._scholarship_row_to_record(row)

    async def insert_scholarship(
        self,
        candidate: ValidatedCandidate,
        *,
        source: str,
        is_verified: bool = False,
    ) -> str:
        link = ensure_trusted_link(candidate.link)
        title_key, organization_key = identity_key(candidate.title, candidate.organization)
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                insert into scholarships (
                  title,
                  organization,
                  title_key,
                  organization_key,
                  country,
                  level,
                  field,
                  category,
                  deadline,
                  description,
                  link,
                  amount,
                  currency,
                  is_verified,
                  source
                )
                values ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15)
                returning id::text as id
                """,
                candidate.title,
                candidate.organization,
                title_key,
                organization_key,
                candidate.country,
                candidate.level,
                candidate.field,
                candidate.category,
                candidate.deadline_date,
                candidate.description,
                link,
                candidate.amount or "Varies",
                candidate.currency or "USD",
                is_verified,
                source,
            )
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("scholarship with this title and organization already exists") from exc
        return row["id"]

    async def update_scholarship(self, record_id: str, changes: dict[str, Any]) -> ScholarshipRecord:
        prepared = prepare_changes(changes)
        if not prepared:
            return await self.get_scholarship(record_id)

        current = await self.get_scholarship(record_id)
        if "title" in prepared or "organization" in prepared:
            title_key, organization_key = identity_key(
                prepared.get("title", current.title),
                prepared.get("organization", current.organization),
            )
            prepared["title_key"] = title_key
            prepared["organization_key"] = organization_key

        assignments = [f"{column} = ${index}" for index, column in enumerate(prepared, start=2)]
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                update scholarships
                set {", ".join(assignments)}, updated_at = now()
                where id = $1::uuid
                returning {_SCHOLARSHIP_COLUMNS}
                """,
                record_id,
                *prepared.values(),
            )
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("scholarship with this title and organization already exists") from exc
        if not row:
            raise RepositoryNotFoundError("scholarship not found")
        return self._scholarship_row_to_record(row)

    async def set_scholarship_verified(
        self,
        record_id: str,
        *,
        verified: bool,
        notes: str | None = None,
    ) -> ScholarshipRecord:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                update scholarships
                set is_verified = $2, verification_notes = $3, updated_at = now()
                where id = $1::uuid
                returning {_SCHOLARSHIP_COLUMNS}
                """,
                record_id,
                verified,
                notes,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("scholarship not found") from exc
        if not row:
            raise RepositoryNotFoundError("scholarship not found")
        return self._scholarship_row_to_record(row)

    async def delete_scholarship(self, record_id: str) -> None:
        pool = await self._get_pool()
        try:
            deleted = await pool.fetchval("delete from scholarships where id = $1::uuid returning id", record_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("scholarship not found") from exc
        if deleted is None:
            raise RepositoryNotFoundError("scholarship not found")

    async def list_scholarships(self, *, limit: int, offset: int) -> list[ScholarshipRecord]:
        # Trust rules live in Python, so the page is cut after filtering.
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {_SCHOLARSHIP_COLUMNS}
            from scholarships
            where deadline >= current_date
            order by deadline asc, id asc
            """
        )
        records = [self._scholarship_row_to_record(row) for row in rows]
        trusted = [record for record in records if is_trusted_link(record.link)]
        return trusted[offset : offset + limit]

    async def list_all_scholarships(self) -> list[ScholarshipRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(f"select {_SCHOLARSHIP_COLUMNS} from scholarships order by deadline asc")
        return [self._scholarship_row_to_record(row) for row in rows]

    async def count_scholarships(self) -> int:
        pool = await self._get_pool()
        rows = await pool.fetch("select link from scholarships where deadline >= current_date")
        return sum(1 for row in rows if is_trusted_link(row["link"]))

    async def distinct_values(self, field: str) -> list[str]:
        if field not in DISTINCT_FIELDS:
            raise RepositoryValidationError(f"field must be one of: {', '.join(sorted(DISTINCT_FIELDS))}")
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"select distinct {field} as value from scholarships where deadline >= current_date order by 1"
        )
        return [row["value"] for row in rows]

    async def get_stats(self) -> StatsOut:
        total = await self.count_scholarships()
        countries = await self.distinct_values("country")
        organizations = await self.distinct_values("organization")
        pool = await self._get_pool()
        last_run = await pool.fetchrow(
            """
            select completed_at, scholarships_added
            from fetch_runs
            where status = 'completed'
            order by completed_at desc
            limit 1
            """
        )
        return StatsOut(
            total_scholarships=total,
            total_countries=len(countries),
            total_organizations=len(organizations),
            last_fetched_at=last_run["completed_at"] if last_run else None,
            last_fetch_added=int(last_run["scholarships_added"]) if last_run else 0,
        )

    async def create_fetch_run(self, queries: list[str]) -> str:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            insert into fetch_runs (search_queries, status)
            values ($1::jsonb, 'running')
            returning id::text as id
            """,
            json.dumps(list(queries)),
        )
        return row["id"]

    async def complete_fetch_run(self, run_id: str, *, found: int, added: int) -> None:
        await self._finish_fetch_run(
            run_id,
            status="completed",
            found=found,
            added=added,
            error=None,
        )

    async def fail_fetch_run(self, run_id: str, *, error: str) -> None:
        await self._finish_fetch_run(run_id, status="failed", found=None, added=None, error=error)

    async def list_fetch_runs(self, *, limit: int = 20) -> list[FetchRunOut]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"select {_FETCH_RUN_COLUMNS} from fetch_runs order by started_at desc limit $1",
            limit,
        )
        return [self._fetch_run_row_to_model(row) for row in rows]

    async def get_fetch_run(self, run_id: str) -> FetchRunOut:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(f"select {_FETCH_RUN_COLUMNS} from fetch_runs where id = $1::uuid", run_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("fetch run not found") from exc
        if not row:
            raise RepositoryNotFoundError("fetch run not found")
        return self._fetch_run_row_to_model(row)

    async def _finish_fetch_run(
        self,
        run_id: str,
        *,
        status: str,
        found: int | None,
        added: int | None,
        error: str | None,
    ) -> None:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        """
                        update fetch_runs
                        set status = $2,
                            scholarships_found = coalesce($3, scholarships_found),
                            scholarships_added = coalesce($4, scholarships_added),
                            error = $5,
                            completed_at = now()
                        where id = $1::uuid and status = 'running'
                        returning id
                        """,
                        run_id,
                        status,
                        found,
                        added,
                        error,
                    )
                    if row:
                        return
                    exists = await conn.fetchval("select 1 from fetch_runs where id = $1::uuid", run_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("fetch run not found") from exc
        if not exists:
            raise RepositoryNotFoundError("fetch run not found")
        raise RepositoryConflictError("fetch run is not running")

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("SB_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _scholarship_row_to_record(row: asyncpg.Record) -> ScholarshipRecord:
        return ScholarshipRecord(**dict(row))

    @staticmethod
    def _fetch_run_row_to_model(row: asyncpg.Record) -> FetchRunOut:
        data = dict(row)
        queries = data.get("search_queries")
        if isinstance(queries, str):
            try:
                queries = json.loads(queries)
            except json.JSONDecodeError:
                queries = []
        data["search_queries"] = queries if isinstance(queries, list) else []
        return FetchRunOut(**data)


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).date() if value.tzinfo else value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError as exc:
            raise RepositoryValidationError(f"invalid deadline: {value!r}") from exc
    raise RepositoryValidationError(f"invalid deadline: {value!r}")


@lru_cache
def get_repository() -> PostgresRepository | InMemoryRepository:
    from scholarbridge.services.store import InMemoryRepository

    settings = get_settings()
    if not settings.database_url:
        logger.warning("SB_DATABASE_URL not set; using in-memory repository")
        return InMemoryRepository()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
