from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from listings.schemas.listings import ListingFilters, ListingPageOut, RawListing
from listings.services.query import ListingQueryService
from listings.services.store import InMemoryListingRepository


class SteppingClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def _seed(repository: InMemoryListingRepository, count: int) -> None:
    async def run() -> None:
        for index in range(count):
            await repository.upsert_external_listing(
                RawListing(
                    source="indeed" if index % 2 else "glassdoor",
                    external_id=f"job-{index}",
                    external_url=f"https://jobs.example.com/{index}",
                    title=f"Python Engineer {index}" if index % 3 == 0 else f"Designer {index}",
                    organization_name="Acme" if index % 5 else "Globex",
                    location="Berlin, Germany" if index % 4 == 0 else "Remote",
                    listing_kind="internship" if index % 7 == 0 else "full-time",
                    remote_mode="remote" if index % 4 else "on-site",
                )
            )

    asyncio.run(run())


def _query(service: ListingQueryService, filters: ListingFilters | None = None, **kwargs) -> ListingPageOut:
    return asyncio.run(service.query(filters or ListingFilters(), **kwargs))


def test_pagination_over_45_listings_with_limit_20() -> None:
    repository = InMemoryListingRepository(clock=SteppingClock(datetime(2024, 1, 1, tzinfo=timezone.utc)))
    _seed(repository, 45)
    service = ListingQueryService(repository)

    first = _query(service, page=1, limit=20)
    third = _query(service, page=3, limit=20)
    beyond = _query(service, page=4, limit=20)

    assert len(first.listings) == 20
    assert len(third.listings) == 5
    assert beyond.listings == []
    assert first.pagination.model_dump() == {"page": 1, "limit": 20, "total": 45, "pages": 3}
    assert third.pagination.total == 45
    assert third.pagination.pages == 3
    assert first.listings[0].external_id == "job-44"
    created = [listing.created_at for listing in first.listings]
    assert created == sorted(created, reverse=True)


def test_closed_listings_are_never_returned() -> None:
    repository = InMemoryListingRepository()
    service = ListingQueryService(repository)

    async def seed() -> None:
        await repository.insert_internal_listing(
            employer_id="employer-1",
            fields={"title": "Closed role", "organization_name": "Acme", "location": "Remote", "status": "closed"},
        )
        await repository.insert_internal_listing(
            employer_id="employer-1",
            fields={"title": "Open role", "organization_name": "Acme", "location": "Remote"},
        )

    asyncio.run(seed())

    page = _query(service)
    assert [listing.title for listing in page.listings] == ["Open role"]
    assert page.pagination.total == 1
    assert _query(service, ListingFilters(search="closed")).listings == []


def test_filters_combine() -> None:
    repository = InMemoryListingRepository(clock=SteppingClock(datetime(2024, 1, 1, tzinfo=timezone.utc)))
    _seed(repository, 45)
    service = ListingQueryService(repository)

    python_jobs = _query(service, ListingFilters(search="PYTHON"), limit=100)
    assert python_jobs.pagination.total == 15
    assert all("Python" in listing.title for listing in python_jobs.listings)

    globex = _query(service, ListingFilters(search="globex"), limit=100)
    assert globex.pagination.total == 9

    berlin_indeed = _query(service, ListingFilters(location="berlin", source="indeed"), limit=100)
    assert berlin_indeed.pagination.total == 0

    berlin = _query(service, ListingFilters(location="berlin"), limit=100)
    assert berlin.pagination.total == 12
    assert all(listing.remote_mode == "on-site" for listing in berlin.listings)

    internships = _query(service, ListingFilters(listing_kind="internship"), limit=100)
    assert internships.pagination.total == 7

    remote = _query(service, ListingFilters(remote_mode="remote"), limit=100)
    assert remote.pagination.total == 33


def test_query_rejects_out_of_range_paging() -> None:
    service = ListingQueryService(InMemoryListingRepository())

    with pytest.raises(ValueError):
        _query(service, page=0)
    with pytest.raises(ValueError):
        _query(service, limit=101)


def test_get_returns_listing_with_display_ranges() -> None:
    repository = InMemoryListingRepository()
    service = ListingQueryService(repository)

    async def run():
        row = await repository.insert_internal_listing(
            employer_id="employer-1",
            fields={
                "title": "Platform Engineer",
                "organization_name": "Acme",
                "location": "Remote",
                "salary": {"min": 90000, "max": 120000, "currency": "USD", "period": "yearly"},
                "experience": {"min": 2, "max": 5, "unit": "years"},
                "status": "paused",
            },
        )
        return await service.get(row["id"])

    listing = asyncio.run(run())

    assert listing.status == "paused"
    assert listing.salary_range == "$90K - $120K"
    assert listing.experience_range == "2-5 years"
