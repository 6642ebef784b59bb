"""Glassdoor partner API adapter.

Requires an API key and partner ID; without both the source stays silent instead of
failing the run.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from listings.core.urls import external_id_from_url
from listings.schemas.listings import DEFAULT_LOCATION, UNKNOWN_ORGANIZATION, RawListing
from listings.sources.base import SourceAdapter
from listings.sources.normalize import (
    clean_text,
    extract_requirements,
    html_to_text,
    infer_listing_kind,
    infer_remote_mode,
    truncate,
)

logger = logging.getLogger(__name__)


class GlassdoorSourceAdapter(SourceAdapter):
    source = "glassdoor"
    kind = "api"

    def __init__(
        self,
        *,
        api_url: str,
        api_key: str | None,
        partner_id: str | None,
        timeout_seconds: float = 20.0,
        user_agent: str = "listing-aggregator/1.0",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_url = api_url
        self._api_key = api_key
        self._partner_id = partner_id
        self._timeout = timeout_seconds
        self._user_agent = user_agent
        self._client = client

    @property
    def has_credentials(self) -> bool:
        return bool(self._api_key and self._partner_id)

    async def search(self, keywords: str, location: str) -> list[RawListing]:
        if not self.has_credentials:
            logger.info("glassdoor credentials not configured; skipping source")
            return []

        params = {
            "v": "1",
            "format": "json",
            "t.p": self._partner_id,
            "t.k": self._api_key,
            "action": "jobs-prog",
            "jobTitle": keywords,
            "location": location,
        }
        headers = {"User-Agent": self._user_agent}
        if self._client is not None:
            response = await self._client.get(self.api_url, params=params, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
                response = await client.get(self.api_url, params=params, headers=headers)
        response.raise_for_status()

        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError("glassdoor payload is not an object")
        body = payload.get("response")
        results = body.get("results") if isinstance(body, dict) else None
        if not isinstance(results, list):
            return []

        listings = self._map_records(results, self._to_raw_listing)
        logger.info("glassdoor fetched results=%s listings=%s", len(results), len(listings))
        return listings

    def _to_raw_listing(self, job: dict[str, Any]) -> RawListing:
        title = clean_text(job.get("jobTitle"))
        url = clean_text(job.get("jobUrl"))
        job_id = job.get("jobId")
        if job_id is None or str(job_id).strip() == "":
            if not url:
                raise ValueError("glassdoor job has neither jobId nor jobUrl")
            external_id = external_id_from_url(url)
        else:
            external_id = str(job_id).strip()

        location = clean_text(job.get("location")) or DEFAULT_LOCATION
        description = html_to_text(job.get("jobDescription"))
        return RawListing(
            source=self.source,
            external_id=external_id,
            external_url=url or None,
            application_url=url or None,
            title=truncate(title, 200),
            organization_name=truncate(clean_text(job.get("companyName")) or UNKNOWN_ORGANIZATION, 100),
            location=truncate(location, 100),
            description=truncate(description, 5000),
            listing_kind=infer_listing_kind(title),
            remote_mode=infer_remote_mode(location, title),
            requirements=extract_requirements(description),
        )
