from __future__ import annotations

import asyncio
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from listings.core.config import Settings, get_settings
from listings.main import app
from listings.schemas.listings import RawListing
from listings.services.orchestrator import AggregationConfig, AggregationOrchestrator
from listings.services.repository import RepositoryUnavailableError, get_repository
from listings.services.store import InMemoryListingRepository
from listings.sources.base import SourceAdapter
from listings.sources.registry import get_orchestrator

API_KEY = "maintenance-secret"
HEADERS = {"X-API-Key": API_KEY}


class StubFeedAdapter(SourceAdapter):
    source = "indeed"
    kind = "feed"

    def __init__(self) -> None:
        self.queries: list[tuple[str, str]] = []

    async def search(self, keywords: str, location: str) -> list[RawListing]:
        self.queries.append((keywords, location))
        return [
            RawListing(
                source="indeed",
                external_url="https://jobs.example.com/1",
                title="Software Engineer",
                organization_name="Acme",
                location="Remote",
            ),
            RawListing(
                source="indeed",
                external_url="https://jobs.example.com/2",
                title="Backend Developer",
                raw_title="Backend Developer",
                extraction_confident=False,
            ),
        ]


class FailingApiAdapter(SourceAdapter):
    source = "glassdoor"
    kind = "api"

    async def search(self, keywords: str, location: str) -> list[RawListing]:
        raise RuntimeError("HTTP 500")


class IdleScrapeAdapter(SourceAdapter):
    source = "internshala"
    kind = "scrape"

    async def search(self, keywords: str, location: str) -> list[RawListing]:
        return []


@pytest.fixture
def repository() -> InMemoryListingRepository:
    return InMemoryListingRepository()


@pytest.fixture
def feed_adapter() -> StubFeedAdapter:
    return StubFeedAdapter()


@pytest.fixture
def client(repository: InMemoryListingRepository, feed_adapter: StubFeedAdapter) -> Iterator[TestClient]:
    settings = Settings(
        maintenance_api_key=API_KEY,
        default_keywords="python developer",
        default_location="Berlin",
        retention_days=30,
    )
    orchestrator = AggregationOrchestrator(
        [feed_adapter, FailingApiAdapter(), IdleScrapeAdapter()],
        AggregationConfig(
            enabled_sources=frozenset({"indeed", "glassdoor"}),
            adapter_timeout_seconds=5.0,
            scrape_timeout_seconds=30.0,
        ),
    )
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_admin_routes_require_api_key(client: TestClient) -> None:
    assert client.post("/admin/aggregate").status_code == 401
    assert client.post("/admin/reap", headers={"X-API-Key": "wrong"}).status_code == 401
    assert client.get("/admin/sources", headers={"X-API-Key": "wrong"}).status_code == 401


def test_admin_routes_unavailable_without_configured_key() -> None:
    app.dependency_overrides[get_settings] = lambda: Settings(maintenance_api_key=None)
    try:
        response = TestClient(app).get("/admin/sources", headers=HEADERS)
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503


def test_aggregate_persists_and_reports_per_source_status(
    client: TestClient,
    repository: InMemoryListingRepository,
    feed_adapter: StubFeedAdapter,
) -> None:
    response = client.post("/admin/aggregate", headers=HEADERS, json={"keywords": "golang", "location": "Remote"})

    assert response.status_code == 200
    body = response.json()
    assert feed_adapter.queries == [("golang", "Remote")]
    assert body["keywords"] == "golang"
    assert body["fetched"] == 2
    assert body["inserted"] == 2
    assert body["refreshed"] == 0
    assert body["failed"] == 0
    assert body["saved"] == 2
    assert body["review_queued"] == 1
    assert [(item["source"], item["status"]) for item in body["sources"]] == [
        ("internshala", "disabled"),
        ("indeed", "ok"),
        ("glassdoor", "error"),
    ]
    assert len(repository.listings) == 2

    again = client.post("/admin/aggregate", headers=HEADERS).json()
    assert feed_adapter.queries[-1] == ("python developer", "Berlin")
    assert again["inserted"] == 0
    assert again["refreshed"] == 2
    assert again["review_queued"] == 0
    assert len(repository.listings) == 2


def test_review_queue_lists_low_confidence_entries(client: TestClient) -> None:
    client.post("/admin/aggregate", headers=HEADERS)

    response = client.get("/admin/review-queue", headers=HEADERS)

    assert response.status_code == 200
    items = response.json()
    assert len(items) == 1
    assert items[0]["raw_title"] == "Backend Developer"
    assert items[0]["reason"] == "low_confidence_extraction"
    assert items[0]["source"] == "indeed"


def test_reap_uses_configured_retention_and_keeps_fresh_listings(
    client: TestClient,
    repository: InMemoryListingRepository,
) -> None:
    async def seed() -> None:
        repository.clock = lambda: datetime.now(timezone.utc) - timedelta(days=40)
        await repository.upsert_external_listing(
            RawListing(source="indeed", external_id="old", external_url="https://jobs.example.com/old", title="Old")
        )
        await repository.insert_internal_listing(employer_id="employer-1", fields={"title": "Evergreen"})
        repository.clock = lambda: datetime.now(timezone.utc)
        await repository.upsert_external_listing(
            RawListing(source="indeed", external_id="new", external_url="https://jobs.example.com/new", title="New")
        )

    asyncio.run(seed())

    response = client.post("/admin/reap", headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {"removed": 1, "retention_days": 30}
    assert sorted(row["title"] for row in repository.listings.values()) == ["Evergreen", "New"]


def test_reap_rejects_invalid_retention(client: TestClient) -> None:
    response = client.post("/admin/reap", headers=HEADERS, json={"retention_days": 0})
    assert response.status_code == 422


def test_reap_storage_failure_returns_503() -> None:
    class BrokenRepository(InMemoryListingRepository):
        async def delete_stale_external_listings(self, *, cutoff: datetime) -> int:
            raise RepositoryUnavailableError("database unavailable")

    app.dependency_overrides[get_settings] = lambda: Settings(maintenance_api_key=API_KEY)
    app.dependency_overrides[get_repository] = lambda: BrokenRepository()
    try:
        response = TestClient(app).post("/admin/reap", headers=HEADERS, json={"retention_days": 7})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503
    assert "7 day(s)" in response.json()["detail"]


def test_sources_lists_adapters_with_enable_flags(client: TestClient) -> None:
    response = client.get("/admin/sources", headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == [
        {"source": "indeed", "kind": "feed", "enabled": True, "timeout_seconds": 5.0},
        {"source": "glassdoor", "kind": "api", "enabled": True, "timeout_seconds": 5.0},
        {"source": "internshala", "kind": "scrape", "enabled": False, "timeout_seconds": 30.0},
    ]
