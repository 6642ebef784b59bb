from __future__ import annotations

import asyncio

import httpx
import pytest

from listings.schemas.listings import RawListing
from listings.sources.feed import FeedSourceAdapter, parse_feed_items

FEED_URL = "https://rss.example.com/rss"

RSS_DOCUMENT = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Jobs</title>
    <item>
      <title>Software Engineer at Acme - Remote</title>
      <link>https://jobs.example.com/view/1?utm_source=rss</link>
      <description><![CDATA[Requirements:
- 3+ years Python
- SQL experience]]></description>
    </item>
    <item>
      <title>Backend Developer</title>
      <link>https://jobs.example.com/view/2</link>
      <description>&lt;p&gt;Build APIs in &lt;b&gt;Go&lt;/b&gt;&lt;/p&gt;</description>
    </item>
    <item>
      <title>Orphan entry at Nowhere - Nowhere</title>
      <description>No link here</description>
    </item>
  </channel>
</rss>
"""


def _adapter(handler, **kwargs) -> tuple[FeedSourceAdapter, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    adapter = FeedSourceAdapter(source="indeed", feed_url=FEED_URL, client=client, **kwargs)
    return adapter, client


def test_feed_url_encodes_keywords_and_location() -> None:
    adapter = FeedSourceAdapter(source="indeed", feed_url=FEED_URL)
    url = adapter.build_url("software engineer", "New York")
    assert url == "https://rss.example.com/rss?q=software%20engineer&l=New%20York"


def test_feed_adapter_maps_entries_and_skips_unlinked_ones() -> None:
    seen: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=RSS_DOCUMENT, request=request)

    async def run() -> list[RawListing]:
        adapter, client = _adapter(handler)
        async with client:
            return await adapter.fetch("software engineer", "remote")

    listings = asyncio.run(run())

    assert len(seen) == 1
    assert seen[0].url.params["q"] == "software engineer"
    assert seen[0].url.params["l"] == "remote"

    assert [listing.title for listing in listings] == ["Software Engineer", "Backend Developer"]
    first, second = listings
    assert first.source == "indeed"
    assert first.organization_name == "Acme"
    assert first.location == "Remote"
    assert first.remote_mode == "remote"
    assert first.extraction_confident is True
    assert first.requirements == ["3+ years Python", "SQL experience"]
    assert first.external_url == "https://jobs.example.com/view/1?utm_source=rss"
    assert len(first.external_id or "") == 64

    assert second.organization_name == "Unknown Company"
    assert second.location == "Remote"
    assert second.extraction_confident is False
    assert second.raw_title == "Backend Developer"
    assert second.description == "Build APIs in\nGo"


def test_feed_adapter_caps_entries_at_max_items() -> None:
    items = "".join(
        f"<item><title>Role {i} at Co - Remote</title><link>https://jobs.example.com/{i}</link></item>"
        for i in range(25)
    )
    document = f"<rss><channel>{items}</channel></rss>"

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=document, request=request)

    async def run() -> list[RawListing]:
        adapter, client = _adapter(handler, max_items=20)
        async with client:
            return await adapter.fetch("role", "remote")

    assert len(asyncio.run(run())) == 20


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="upstream down"),
        httpx.Response(200, text="<rss><channel><item>"),
    ],
)
def test_feed_adapter_fetch_returns_empty_on_source_failure(response: httpx.Response) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(response.status_code, text=response.text, request=request)

    async def run() -> list[RawListing]:
        adapter, client = _adapter(handler)
        async with client:
            return await adapter.fetch("python", "remote")

    assert asyncio.run(run()) == []


def test_feed_adapter_search_raises_on_http_error() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, request=request)

    async def run() -> None:
        adapter, client = _adapter(handler)
        async with client:
            await adapter.search("python", "remote")

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(run())


def test_parse_feed_items_reads_atom_entries() -> None:
    document = """<feed xmlns="http://www.w3.org/2005/Atom">
      <entry>
        <title>Intern at Initech - Hybrid</title>
        <link href="https://jobs.example.com/atom/1"/>
        <summary>Summer role</summary>
      </entry>
    </feed>"""

    items = parse_feed_items(document)

    assert len(items) == 1
    assert items[0].title == "Intern at Initech - Hybrid"
    assert items[0].link == "https://jobs.example.com/atom/1"
    assert items[0].description == "Summer role"


def test_parse_feed_items_prefers_alternate_atom_link() -> None:
    document = """<feed xmlns="http://www.w3.org/2005/Atom">
      <entry>
        <title>Data Analyst at Hooli - Remote</title>
        <link rel="self" href="https://feeds.example.com/entries/7"/>
        <link rel="alternate" href="https://jobs.example.com/atom/7"/>
      </entry>
      <entry>
        <title>Designer at Globex - Pune</title>
        <link rel="edit" href="https://feeds.example.com/entries/8/edit"/>
        <link href="https://jobs.example.com/atom/8"/>
      </entry>
      <entry>
        <title>Self only at Nowhere - Nowhere</title>
        <link rel="self" href="https://feeds.example.com/entries/9"/>
      </entry>
    </feed>"""

    items = parse_feed_items(document)

    assert [item.link for item in items] == [
        "https://jobs.example.com/atom/7",
        "https://jobs.example.com/atom/8",
        "",
    ]
