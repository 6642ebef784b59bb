from __future__ import annotations

import math

from listings.schemas.listings import ListingFilters, ListingOut, ListingPageOut, PaginationOut
from listings.services.repository import ListingRepository

MAX_PAGE_SIZE = 100


class ListingQueryService:
    """Read-only view over stored listings for dashboards and collaborators."""

    def __init__(self, repository: ListingRepository) -> None:
        self.repository = repository

    async def query(self, filters: ListingFilters, *, page: int = 1, limit: int = 20) -> ListingPageOut:
        if page < 1:
            raise ValueError("page must be at least 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        total = await self.repository.count_listings(filters=filters)
        rows = await self.repository.list_listings(filters=filters, limit=limit, offset=(page - 1) * limit)
        return ListingPageOut(
            listings=[ListingOut.model_validate(row) for row in rows],
            pagination=PaginationOut(
                page=page,
                limit=limit,
                total=total,
                pages=math.ceil(total / limit),
            ),
        )

    async def get(self, listing_id: str) -> ListingOut:
        row = await self.repository.get_listing(listing_id)
        return ListingOut.model_validate(row)
