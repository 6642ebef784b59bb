from __future__ import annotations

import asyncio
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from listings.main import app
from listings.schemas.listings import RawListing
from listings.services.repository import RepositoryUnavailableError, get_repository
from listings.services.store import InMemoryListingRepository


class SteppingClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 3, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def repository() -> InMemoryListingRepository:
    repo = InMemoryListingRepository(clock=SteppingClock())

    async def seed() -> None:
        for index in range(25):
            await repo.upsert_external_listing(
                RawListing(
                    source="indeed",
                    external_id=f"job-{index}",
                    external_url=f"https://jobs.example.com/{index}",
                    title=f"Backend Engineer {index}" if index % 2 else f"Marketing Intern {index}",
                    organization_name="Acme",
                    location="Remote" if index % 2 else "Mumbai",
                    listing_kind="full-time" if index % 2 else "internship",
                    remote_mode="remote" if index % 2 else "on-site",
                )
            )
        await repo.insert_internal_listing(
            employer_id="employer-1",
            fields={"title": "Retired role", "organization_name": "Acme", "location": "Remote", "status": "closed"},
        )

    asyncio.run(seed())
    return repo


@pytest.fixture
def client(repository: InMemoryListingRepository) -> Iterator[TestClient]:
    app.dependency_overrides[get_repository] = lambda: repository
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_list_listings_paginates(client: TestClient) -> None:
    response = client.get("/listings", params={"page": 2, "limit": 10})

    assert response.status_code == 200
    body = response.json()
    assert body["pagination"] == {"page": 2, "limit": 10, "total": 25, "pages": 3}
    assert len(body["listings"]) == 10
    assert body["listings"][0]["external_id"] == "job-14"


def test_list_listings_applies_filters(client: TestClient) -> None:
    response = client.get(
        "/listings",
        params={"search": "engineer", "remote_mode": "remote", "listing_kind": "full-time", "limit": 100},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["pagination"]["total"] == 12
    assert all(item["remote_mode"] == "remote" for item in body["listings"])

    mumbai = client.get("/listings", params={"location": "mumbai"}).json()
    assert mumbai["pagination"]["total"] == 13


def test_list_listings_never_returns_closed(client: TestClient) -> None:
    body = client.get("/listings", params={"search": "retired"}).json()
    assert body["listings"] == []
    assert body["pagination"] == {"page": 1, "limit": 20, "total": 0, "pages": 0}


@pytest.mark.parametrize(
    "params",
    [{"limit": 0}, {"limit": 101}, {"page": 0}, {"listing_kind": "gig"}, {"source": "monster"}],
)
def test_list_listings_rejects_invalid_query(client: TestClient, params: dict) -> None:
    assert client.get("/listings", params=params).status_code == 422


def test_get_listing_and_not_found(client: TestClient, repository: InMemoryListingRepository) -> None:
    listing_id = next(iter(repository.listings))

    found = client.get(f"/listings/{listing_id}")
    assert found.status_code == 200
    assert found.json()["id"] == listing_id

    missing = client.get("/listings/00000000-0000-0000-0000-000000000000")
    assert missing.status_code == 404


def test_list_listings_maps_unavailable_repository_to_503() -> None:
    class DownRepository(InMemoryListingRepository):
        async def count_listings(self, *, filters):
            raise RepositoryUnavailableError("database unavailable")

    app.dependency_overrides[get_repository] = lambda: DownRepository()
    try:
        response = TestClient(app).get("/listings")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503
    assert response.json()["detail"] == "database unavailable"


def test_healthz() -> None:
    client = TestClient(app)
    assert client.get("/healthz").json() == {"status": "ok"}
    assert client.get("/").json() == {"status": "ok"}
