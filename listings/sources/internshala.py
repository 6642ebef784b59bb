"""Internshala scrape adapter.

The search page is rendered in a headless Chromium driven by Playwright; the browser
runs as its own process, so a crash surfaces here as an exception instead of taking
the service down. Extraction reads the rendered HTML with BeautifulSoup and depends
on the current card markup (`.internship_meta`, `.profile`, `.company_name`,
`.location_link`).
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from urllib.parse import quote, urljoin

from bs4 import BeautifulSoup
from playwright.async_api import async_playwright

from listings.core.urls import external_id_from_url
from listings.schemas.listings import DEFAULT_LOCATION, UNKNOWN_ORGANIZATION, RawListing
from listings.sources.base import SourceAdapter
from listings.sources.normalize import clean_text, infer_remote_mode, truncate

logger = logging.getLogger(__name__)

PageRenderer = Callable[[str], Awaitable[str]]


@dataclass(slots=True)
class ScrapedCard:
    title: str
    organization_name: str
    location: str
    url: str | None


class InternshalaSourceAdapter(SourceAdapter):
    source = "internshala"
    kind = "scrape"

    def __init__(
        self,
        *,
        base_url: str,
        max_cards: int = 10,
        navigation_timeout_seconds: float = 30.0,
        user_agent: str = "listing-aggregator/1.0",
        renderer: PageRenderer | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.max_cards = max(0, max_cards)
        self._navigation_timeout = navigation_timeout_seconds
        self._user_agent = user_agent
        self._renderer = renderer

    def build_search_url(self, keywords: str) -> str:
        return f"{self.base_url}/internships/search?keywords={quote(keywords, safe='')}"

    async def search(self, keywords: str, location: str) -> list[RawListing]:
        url = self.build_search_url(keywords)
        if self._renderer is not None:
            html = await self._renderer(url)
        else:
            html = await render_page(
                url,
                user_agent=self._user_agent,
                timeout_seconds=self._navigation_timeout,
            )

        cards = parse_search_page(html, base_url=self.base_url)[: self.max_cards]
        listings = self._map_records(cards, self._to_raw_listing)
        logger.info("scrape finished source=%s cards=%s listings=%s", self.source, len(cards), len(listings))
        return listings

    def _to_raw_listing(self, card: ScrapedCard) -> RawListing:
        if not card.title:
            raise ValueError("card has no title")
        if not card.url:
            raise ValueError(f"card {card.title!r} has no link")

        location = card.location or DEFAULT_LOCATION
        return RawListing(
            source=self.source,
            external_id=external_id_from_url(card.url),
            external_url=card.url,
            application_url=card.url,
            title=truncate(card.title, 200),
            organization_name=truncate(card.organization_name or UNKNOWN_ORGANIZATION, 100),
            location=truncate(location, 100),
            listing_kind="internship",
            remote_mode=infer_remote_mode(location),
        )


async def render_page(url: str, *, user_agent: str, timeout_seconds: float) -> str:
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(
            headless=True,
            args=["--no-sandbox", "--disable-setuid-sandbox"],
        )
        try:
            page = await browser.new_page(user_agent=user_agent)
            await page.goto(url, wait_until="networkidle", timeout=timeout_seconds * 1000)
            return await page.content()
        finally:
            await browser.close()


def parse_search_page(html: str, *, base_url: str) -> list[ScrapedCard]:
    soup = BeautifulSoup(html, "html.parser")
    cards: list[ScrapedCard] = []
    for node in soup.select(".internship_meta"):
        title_node = node.select_one(".profile")
        link_node = None
        if title_node is not None:
            link_node = title_node if title_node.name == "a" else title_node.select_one("a[href]")
        href = link_node.get("href") if link_node is not None else None
        company_node = node.select_one(".company_name")
        location_node = node.select_one(".location_link")

        cards.append(
            ScrapedCard(
                title=clean_text(title_node.get_text()) if title_node is not None else "",
                organization_name=clean_text(company_node.get_text()) if company_node is not None else "",
                location=clean_text(location_node.get_text()) if location_node is not None else "",
                url=urljoin(f"{base_url}/", href) if isinstance(href, str) and href.strip() else None,
            )
        )
    return cards
