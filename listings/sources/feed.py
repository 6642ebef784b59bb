"""Syndication feed source adapter (RSS 2.0, with Atom entries tolerated)."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from urllib.parse import quote, urlencode

import httpx

from listings.core.urls import external_id_from_url
from listings.schemas.listings import RawListing
from listings.sources.base import SourceAdapter
from listings.sources.extractors import DelimiterFieldExtractor, FieldExtractor
from listings.sources.normalize import (
    clean_text,
    extract_requirements,
    html_to_text,
    infer_listing_kind,
    infer_remote_mode,
    truncate,
)

logger = logging.getLogger(__name__)

ATOM_NS = "{http://www.w3.org/2005/Atom}"


@dataclass(slots=True)
class FeedItem:
    title: str
    link: str
    description: str


class FeedSourceAdapter(SourceAdapter):
    kind = "feed"

    def __init__(
        self,
        *,
        source: str,
        feed_url: str,
        max_items: int = 20,
        extractor: FieldExtractor | None = None,
        timeout_seconds: float = 20.0,
        user_agent: str = "listing-aggregator/1.0",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.source = source
        self.feed_url = feed_url
        self.max_items = max(0, max_items)
        self.extractor = extractor or DelimiterFieldExtractor()
        self._timeout = timeout_seconds
        self._user_agent = user_agent
        self._client = client

    def build_url(self, keywords: str, location: str) -> str:
        query = urlencode({"q": keywords, "l": location}, quote_via=quote)
        return f"{self.feed_url}?{query}"

    async def search(self, keywords: str, location: str) -> list[RawListing]:
        url = self.build_url(keywords, location)
        headers = {"User-Agent": self._user_agent}
        if self._client is not None:
            response = await self._client.get(url, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
                response = await client.get(url, headers=headers)
        response.raise_for_status()

        items = parse_feed_items(response.content)[: self.max_items]
        listings = self._map_records(items, self._to_raw_listing)
        logger.info("feed fetched source=%s entries=%s listings=%s", self.source, len(items), len(listings))
        return listings

    def _to_raw_listing(self, item: FeedItem) -> RawListing:
        if not item.link:
            raise ValueError("feed entry has no link")

        fields = self.extractor.extract(item.title)
        description = html_to_text(item.description)
        return RawListing(
            source=self.source,
            external_id=external_id_from_url(item.link),
            external_url=item.link,
            application_url=item.link,
            title=truncate(fields.title, 200),
            organization_name=truncate(fields.organization_name, 100),
            location=truncate(fields.location, 100),
            description=truncate(description, 5000),
            listing_kind=infer_listing_kind(fields.title),
            remote_mode=infer_remote_mode(fields.location, fields.title),
            requirements=extract_requirements(description),
            raw_title=item.title,
            extraction_confident=fields.confident,
        )


def parse_feed_items(content: bytes | str) -> list[FeedItem]:
    try:
        root = ET.fromstring(content)
    except ET.ParseError as exc:
        raise ValueError(f"malformed feed document: {exc}") from exc

    items: list[FeedItem] = []
    for node in root.iter("item"):
        items.append(
            FeedItem(
                title=clean_text(node.findtext("title")),
                link=clean_text(node.findtext("link")),
                description=node.findtext("description") or "",
            )
        )
    for node in root.iter(f"{ATOM_NS}entry"):
        items.append(
            FeedItem(
                title=clean_text(node.findtext(f"{ATOM_NS}title")),
                link=_atom_entry_link(node),
                description=node.findtext(f"{ATOM_NS}summary") or node.findtext(f"{ATOM_NS}content") or "",
            )
        )
    return items


def _atom_entry_link(entry: ET.Element) -> str:
    # Atom treats a link without rel as rel="alternate".
    for link_node in entry.findall(f"{ATOM_NS}link"):
        if link_node.get("rel", "alternate") == "alternate" and link_node.get("href"):
            return clean_text(link_node.get("href"))
    return ""
