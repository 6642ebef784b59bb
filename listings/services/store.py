from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from listings.jobs.reaper import is_reapable
from listings.schemas.listings import INTERNAL_SOURCE, ListingFilters, RawListing
from listings.services.repository import RepositoryNotFoundError, RepositoryValidationError

_TICK = timedelta(microseconds=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryListingRepository:
    """Process-local listing store used when no database is configured, and by tests.

    Mirrors the Postgres repository's contract, including the (source, external_id)
    uniqueness rule for external listings. `clock` is injectable so callers can place
    records at a chosen point in time.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self.clock = clock
        self.listings: dict[str, dict[str, Any]] = {}
        self.reviews: list[dict[str, Any]] = []
        self._external_index: dict[tuple[str, str], str] = {}
        self._lock = asyncio.Lock()

    async def close(self) -> None:
        return None

    async def apply_schema(self) -> None:
        return None

    async def upsert_external_listing(self, listing: RawListing) -> tuple[dict[str, Any], bool]:
        if not listing.external_id:
            raise RepositoryValidationError("external listings require an external_id")

        key = (listing.source, listing.external_id)
        async with self._lock:
            now = self.clock()
            existing_id = self._external_index.get(key)
            if existing_id is not None:
                row = self.listings[existing_id]
                row["last_fetched"] = max(now, row["last_fetched"] + _TICK)
                return dict(row), False

            row = {
                "id": str(uuid4()),
                "source": listing.source,
                "external_id": listing.external_id,
                "external_url": listing.external_url,
                "title": listing.title,
                "organization_name": listing.organization_name,
                "location": listing.location,
                "description": listing.description,
                "salary": listing.salary.model_dump() if listing.salary else None,
                "experience": listing.experience.model_dump() if listing.experience else None,
                "listing_kind": listing.listing_kind,
                "remote_mode": listing.remote_mode,
                "skills": list(listing.skills),
                "requirements": list(listing.requirements),
                "tags": list(listing.tags),
                "category": listing.category,
                "industry": listing.industry,
                "application_url": listing.application_url,
                "status": "active",
                "employer_id": None,
                "last_fetched": now,
                "views": 0,
                "application_count": 0,
                "created_at": now,
                "updated_at": now,
            }
            self.listings[row["id"]] = row
            self._external_index[key] = row["id"]
            return dict(row), True

    async def insert_internal_listing(self, *, employer_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(employer_id, str) or not employer_id.strip():
            raise RepositoryValidationError("internal listings require an employer_id")
        title = fields.get("title")
        if not isinstance(title, str) or not title.strip():
            raise RepositoryValidationError("title must be a non-empty string")

        now = self.clock()
        row = {
            "id": str(uuid4()),
            "source": INTERNAL_SOURCE,
            "external_id": None,
            "external_url": None,
            "title": title.strip(),
            "organization_name": fields.get("organization_name") or "",
            "location": fields.get("location") or "",
            "description": fields.get("description") or "",
            "salary": fields.get("salary"),
            "experience": fields.get("experience"),
            "listing_kind": fields.get("listing_kind") or "full-time",
            "remote_mode": fields.get("remote_mode") or "on-site",
            "skills": list(fields.get("skills") or []),
            "requirements": list(fields.get("requirements") or []),
            "tags": list(fields.get("tags") or []),
            "category": fields.get("category"),
            "industry": fields.get("industry"),
            "application_url": fields.get("application_url"),
            "status": fields.get("status") or "active",
            "employer_id": employer_id.strip(),
            "last_fetched": now,
            "views": 0,
            "application_count": 0,
            "created_at": now,
            "updated_at": now,
        }
        self.listings[row["id"]] = row
        return dict(row)

    async def delete_stale_external_listings(self, *, cutoff: datetime) -> int:
        async with self._lock:
            stale = [listing_id for listing_id, row in self.listings.items() if is_reapable(row, cutoff=cutoff)]
            for listing_id in stale:
                row = self.listings.pop(listing_id)
                self._external_index.pop((row["source"], row["external_id"]), None)
            if stale:
                removed_ids = set(stale)
                self.reviews = [item for item in self.reviews if item["listing_id"] not in removed_ids]
            return len(stale)

    async def list_listings(self, *, filters: ListingFilters, limit: int, offset: int) -> list[dict[str, Any]]:
        rows = [row for row in self.listings.values() if _matches(row, filters)]
        rows.sort(key=lambda row: row["id"])
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return [dict(row) for row in rows[offset : offset + limit]]

    async def count_listings(self, *, filters: ListingFilters) -> int:
        return sum(1 for row in self.listings.values() if _matches(row, filters))

    async def get_listing(self, listing_id: str) -> dict[str, Any]:
        row = self.listings.get(listing_id)
        if row is None:
            raise RepositoryNotFoundError("listing not found")
        return dict(row)

    async def enqueue_review(
        self,
        *,
        listing_id: str,
        source: str,
        external_id: str | None,
        raw_title: str,
        reason: str,
    ) -> dict[str, Any]:
        item = {
            "id": str(uuid4()),
            "listing_id": listing_id,
            "source": source,
            "external_id": external_id,
            "raw_title": raw_title,
            "reason": reason,
            "created_at": self.clock(),
        }
        self.reviews.append(item)
        return dict(item)

    async def list_review_items(self, *, limit: int, offset: int) -> list[dict[str, Any]]:
        items = sorted(self.reviews, key=lambda item: item["created_at"], reverse=True)
        return [dict(item) for item in items[offset : offset + limit]]


def _matches(row: dict[str, Any], filters: ListingFilters) -> bool:
    if row["status"] != "active":
        return False

    search = (filters.search or "").strip().lower()
    if search:
        haystacks = (row["title"], row["organization_name"], row["description"])
        if not any(search in (text or "").lower() for text in haystacks):
            return False

    location = (filters.location or "").strip().lower()
    if location and location not in (row["location"] or "").lower():
        return False

    if filters.listing_kind and row["listing_kind"] != filters.listing_kind:
        return False
    if filters.remote_mode and row["remote_mode"] != filters.remote_mode:
        return False
    if filters.source and row["source"] != filters.source:
        return False
    return True
