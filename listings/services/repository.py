from __future__ import annotations

import json
from datetime import datetime
from functools import lru_cache
from typing import Any, Protocol
from uuid import UUID

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from listings.core.config import get_settings
from listings.schemas.listings import ListingFilters, RawListing


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or a statement cannot be executed."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when a write violates the store's uniqueness rules."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


class ListingRepository(Protocol):
    async def close(self) -> None: ...

    async def apply_schema(self) -> None: ...

    async def upsert_external_listing(self, listing: RawListing) -> tuple[dict[str, Any], bool]: ...

    async def insert_internal_listing(self, *, employer_id: str, fields: dict[str, Any]) -> dict[str, Any]: ...

    async def delete_stale_external_listings(self, *, cutoff: datetime) -> int: ...

    async def list_listings(self, *, filters: ListingFilters, limit: int, offset: int) -> list[dict[str, Any]]: ...

    async def count_listings(self, *, filters: ListingFilters) -> int: ...

    async def get_listing(self, listing_id: str) -> dict[str, Any]: ...

    async def enqueue_review(
        self,
        *,
        listing_id: str,
        source: str,
        external_id: str | None,
        raw_title: str,
        reason: str,
    ) -> dict[str, Any]: ...

    async def list_review_items(self, *, limit: int, offset: int) -> list[dict[str, Any]]: ...


SCHEMA_SQL = """
create table if not exists listings (
  id uuid primary key default gen_random_uuid(),
  source text not null
    check (source in ('internal', 'indeed', 'glassdoor', 'linkedin', 'internshala', 'angelist')),
  external_id text,
  external_url text,
  title text not null,
  organization_name text not null,
  location text not null,
  description text not null default '',
  salary jsonb,
  experience jsonb,
  listing_kind text not null default 'full-time'
    check (listing_kind in ('full-time', 'part-time', 'contract', 'internship', 'freelance')),
  remote_mode text not null default 'on-site'
    check (remote_mode in ('on-site', 'remote', 'hybrid')),
  skills text[] not null default '{}',
  requirements text[] not null default '{}',
  tags text[] not null default '{}',
  category text,
  industry text,
  application_url text,
  status text not null default 'active'
    check (status in ('active', 'paused', 'closed', 'expired')),
  employer_id text,
  last_fetched timestamptz not null default now(),
  views integer not null default 0,
  application_count integer not null default 0,
  created_at timestamptz not null default now(),
  updated_at timestamptz not null default now(),
  constraint listings_internal_requires_employer check (source <> 'internal' or employer_id is not null),
  constraint listings_external_requires_id check (source = 'internal' or external_id is not null)
);

create unique index if not exists listings_source_external_id_key
  on listings (source, external_id)
  where source <> 'internal';

create index if not exists listings_status_created_at_idx on listings (status, created_at desc);
create index if not exists listings_source_last_fetched_idx on listings (source, last_fetched);

create table if not exists listing_reviews (
  id uuid primary key default gen_random_uuid(),
  listing_id uuid not null references listings (id) on delete cascade,
  source text not null,
  external_id text,
  raw_title text not null,
  reason text not null,
  created_at timestamptz not null default now()
);
"""

LISTING_COLUMNS_SQL = """
  id::text as id,
  source,
  external_id,
  external_url,
  title,
  organization_name,
  location,
  description,
  salary,
  experience,
  listing_kind,
  remote_mode,
  skills,
  requirements,
  tags,
  category,
  industry,
  application_url,
  status,
  employer_id,
  last_fetched,
  views,
  application_count,
  created_at,
  updated_at
"""


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def apply_schema(self) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)

    async def upsert_external_listing(self, listing: RawListing) -> tuple[dict[str, Any], bool]:
        """Insert on first sight of (source, external_id); otherwise only advance last_fetched.

        The partial unique index decides races between concurrent runs, so two writers
        inserting the same key still end up with one row.
        """
        if not listing.external_id:
            raise RepositoryValidationError("external listings require an external_id")

        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                insert into listings (
                  source,
                  external_id,
                  external_url,
                  title,
                  organization_name,
                  location,
                  description,
                  salary,
                  experience,
                  listing_kind,
                  remote_mode,
                  skills,
                  requirements,
                  tags,
                  category,
                  industry,
                  application_url,
                  status,
                  last_fetched
                )
                values (
                  $1, $2, $3, $4, $5, $6, $7, $8::jsonb, $9::jsonb, $10, $11, $12, $13, $14, $15, $16, $17,
                  'active', now()
                )
                on conflict (source, external_id) where source <> 'internal'
                do update set last_fetched = greatest(now(), listings.last_fetched + interval '1 microsecond')
                returning {LISTING_COLUMNS_SQL}, (xmax = 0) as inserted
                """,
                listing.source,
                listing.external_id,
                listing.external_url,
                listing.title,
                listing.organization_name,
                listing.location,
                listing.description,
                _dump_json(listing.salary.model_dump() if listing.salary else None),
                _dump_json(listing.experience.model_dump() if listing.experience else None),
                listing.listing_kind,
                listing.remote_mode,
                listing.skills,
                listing.requirements,
                listing.tags,
                listing.category,
                listing.industry,
                listing.application_url,
            )
        except pg_exc.CheckViolationError as exc:
            raise RepositoryValidationError(str(exc)) from exc
        except (pg_exc.PostgresError, OSError) as exc:
            raise RepositoryUnavailableError("failed to upsert listing") from exc

        if not row:
            raise RepositoryConflictError("upsert returned no row")
        return self._listing_row_to_dict(row), bool(row["inserted"])

    async def insert_internal_listing(self, *, employer_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        normalized_employer_id = self._coerce_text(employer_id)
        if not normalized_employer_id:
            raise RepositoryValidationError("internal listings require an employer_id")
        title = self._coerce_text(fields.get("title"))
        if not title:
            raise RepositoryValidationError("title must be a non-empty string")

        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                insert into listings (
                  source,
                  employer_id,
                  title,
                  organization_name,
                  location,
                  description,
                  salary,
                  experience,
                  listing_kind,
                  remote_mode,
                  skills,
                  requirements,
                  tags,
                  category,
                  industry,
                  application_url,
                  status
                )
                values ('internal', $1, $2, $3, $4, $5, $6::jsonb, $7::jsonb, $8, $9, $10, $11, $12, $13, $14, $15, $16)
                returning {LISTING_COLUMNS_SQL}
                """,
                normalized_employer_id,
                title,
                self._coerce_text(fields.get("organization_name")) or "",
                self._coerce_text(fields.get("location")) or "",
                fields.get("description") or "",
                _dump_json(fields.get("salary")),
                _dump_json(fields.get("experience")),
                fields.get("listing_kind") or "full-time",
                fields.get("remote_mode") or "on-site",
                list(fields.get("skills") or []),
                list(fields.get("requirements") or []),
                list(fields.get("tags") or []),
                fields.get("category"),
                fields.get("industry"),
                fields.get("application_url"),
                fields.get("status") or "active",
            )
        except pg_exc.CheckViolationError as exc:
            raise RepositoryValidationError(str(exc)) from exc
        except (pg_exc.PostgresError, OSError) as exc:
            raise RepositoryUnavailableError("failed to insert internal listing") from exc
        return self._listing_row_to_dict(row)

    async def delete_stale_external_listings(self, *, cutoff: datetime) -> int:
        pool = await self._get_pool()
        try:
            removed = await pool.fetchval(
                """
                with removed as (
                  delete from listings
                  where source <> 'internal'
                    and last_fetched < $1
                  returning 1
                )
                select count(*) from removed
                """,
                cutoff,
            )
        except (pg_exc.PostgresError, OSError) as exc:
            raise RepositoryUnavailableError("failed to delete stale listings") from exc
        return int(removed or 0)

    async def list_listings(self, *, filters: ListingFilters, limit: int, offset: int) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        params: list[Any] = []
        where_sql = self._build_listing_where(filters, params)
        params.extend([limit, offset])
        try:
            rows = await pool.fetch(
                f"""
                select {LISTING_COLUMNS_SQL}
                from listings l
                where {where_sql}
                order by l.created_at desc, l.id asc
                limit ${len(params) - 1}
                offset ${len(params)}
                """,
                *params,
            )
        except (pg_exc.PostgresError, OSError) as exc:
            raise RepositoryUnavailableError("failed to list listings") from exc
        return [self._listing_row_to_dict(row) for row in rows]

    async def count_listings(self, *, filters: ListingFilters) -> int:
        pool = await self._get_pool()
        params: list[Any] = []
        where_sql = self._build_listing_where(filters, params)
        try:
            total = await pool.fetchval(f"select count(*) from listings l where {where_sql}", *params)
        except (pg_exc.PostgresError, OSError) as exc:
            raise RepositoryUnavailableError("failed to count listings") from exc
        return int(total or 0)

    async def get_listing(self, listing_id: str) -> dict[str, Any]:
        try:
            UUID(listing_id)
        except ValueError as exc:
            raise RepositoryNotFoundError("listing not found") from exc

        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"select {LISTING_COLUMNS_SQL} from listings where id = $1::uuid",
                listing_id,
            )
        except (pg_exc.PostgresError, OSError) as exc:
            raise RepositoryUnavailableError("failed to load listing") from exc
        if not row:
            raise RepositoryNotFoundError("listing not found")
        return self._listing_row_to_dict(row)

    async def enqueue_review(
        self,
        *,
        listing_id: str,
        source: str,
        external_id: str | None,
        raw_title: str,
        reason: str,
    ) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                insert into listing_reviews (listing_id, source, external_id, raw_title, reason)
                values ($1::uuid, $2, $3, $4, $5)
                returning
                  id::text as id,
                  listing_id::text as listing_id,
                  source,
                  external_id,
                  raw_title,
                  reason,
                  created_at
                """,
                listing_id,
                source,
                external_id,
                raw_title,
                reason,
            )
        except pg_exc.ForeignKeyViolationError as exc:
            raise RepositoryNotFoundError("listing not found") from exc
        except (pg_exc.PostgresError, OSError) as exc:
            raise RepositoryUnavailableError("failed to queue listing for review") from exc
        return dict(row)

    async def list_review_items(self, *, limit: int, offset: int) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                """
                select
                  id::text as id,
                  listing_id::text as listing_id,
                  source,
                  external_id,
                  raw_title,
                  reason,
                  created_at
                from listing_reviews
                order by created_at desc, id asc
                limit $1
                offset $2
                """,
                limit,
                offset,
            )
        except (pg_exc.PostgresError, OSError) as exc:
            raise RepositoryUnavailableError("failed to list review items") from exc
        return [dict(row) for row in rows]

    def _build_listing_where(self, filters: ListingFilters, params: list[Any]) -> str:
        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        conditions: list[str] = ["l.status = 'active'"]

        normalized_search = self._coerce_text(filters.search)
        if normalized_search:
            token = bind(_contains_pattern(normalized_search))
            conditions.append(
                f"(l.title ilike {token} escape '\\' or l.organization_name ilike {token} escape '\\'"
                f" or l.description ilike {token} escape '\\')"
            )

        normalized_location = self._coerce_text(filters.location)
        if normalized_location:
            conditions.append(f"l.location ilike {bind(_contains_pattern(normalized_location))} escape '\\'")

        if filters.listing_kind:
            conditions.append(f"l.listing_kind = {bind(filters.listing_kind)}")
        if filters.remote_mode:
            conditions.append(f"l.remote_mode = {bind(filters.remote_mode)}")
        if filters.source:
            conditions.append(f"l.source = {bind(filters.source)}")

        return " and ".join(conditions)

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("LISTINGS_DATABASE_URL is required")

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
    def _listing_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "source": row["source"],
            "external_id": row["external_id"],
            "external_url": row["external_url"],
            "title": row["title"],
            "organization_name": row["organization_name"],
            "location": row["location"],
            "description": row["description"] or "",
            "salary": _load_json(row["salary"]),
            "experience": _load_json(row["experience"]),
            "listing_kind": row["listing_kind"],
            "remote_mode": row["remote_mode"],
            "skills": list(row["skills"] or []),
            "requirements": list(row["requirements"] or []),
            "tags": list(row["tags"] or []),
            "category": row["category"],
            "industry": row["industry"],
            "application_url": row["application_url"],
            "status": row["status"],
            "employer_id": row["employer_id"],
            "last_fetched": row["last_fetched"],
            "views": int(row["views"] or 0),
            "application_count": int(row["application_count"] or 0),
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    @staticmethod
    def _coerce_text(value: Any) -> str | None:
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return None


def _contains_pattern(value: str) -> str:
    """Case-insensitive substring pattern for `ilike ... escape '\\'`; user wildcards match literally."""
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _dump_json(value: dict[str, Any] | None) -> str | None:
    if value is None:
        return None
    return json.dumps(value)


def _load_json(value: Any) -> dict[str, Any] | None:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return None
    return value if isinstance(value, dict) else None


@lru_cache
def get_repository() -> ListingRepository:
    settings = get_settings()
    if not settings.database_url:
        from listings.services.store import InMemoryListingRepository

        return InMemoryListingRepository()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
