from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from opentelemetry import trace

from listings.core.urls import external_id_from_url
from listings.schemas.listings import RawListing
from listings.services.repository import ListingRepository

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

LOW_CONFIDENCE_REASON = "low_confidence_extraction"


@dataclass(slots=True)
class PersistResult:
    listings: list[dict[str, Any]] = field(default_factory=list)
    inserted: int = 0
    refreshed: int = 0
    failed: int = 0
    review_queued: int = 0

    @property
    def saved(self) -> int:
        return self.inserted + self.refreshed


class ListingPersister:
    """Write aggregated listings into the store, one record at a time.

    A record already stored under its (source, external_id) only has its
    `last_fetched` advanced; everything else about it is left alone. A record that
    cannot be written is logged and counted, and the rest of the batch carries on.
    """

    def __init__(self, repository: ListingRepository) -> None:
        self.repository = repository

    async def persist(self, batch: Iterable[RawListing]) -> PersistResult:
        result = PersistResult()
        with tracer.start_as_current_span("persist.batch") as span:
            for listing in batch:
                try:
                    prepared = with_external_id(listing)
                    row, inserted = await self.repository.upsert_external_listing(prepared)
                except Exception:
                    result.failed += 1
                    logger.exception(
                        "failed to persist listing source=%s external_id=%s url=%s",
                        listing.source,
                        listing.external_id,
                        listing.external_url,
                    )
                    continue

                result.listings.append(row)
                if not inserted:
                    result.refreshed += 1
                    continue

                result.inserted += 1
                if not prepared.extraction_confident and await self._enqueue_review(prepared, row):
                    result.review_queued += 1

            span.set_attribute("persist.inserted", result.inserted)
            span.set_attribute("persist.refreshed", result.refreshed)
            span.set_attribute("persist.failed", result.failed)

        logger.info(
            "persisted batch inserted=%s refreshed=%s failed=%s review_queued=%s",
            result.inserted,
            result.refreshed,
            result.failed,
            result.review_queued,
        )
        return result

    async def _enqueue_review(self, listing: RawListing, row: dict[str, Any]) -> bool:
        try:
            await self.repository.enqueue_review(
                listing_id=row["id"],
                source=listing.source,
                external_id=listing.external_id,
                raw_title=listing.raw_title or listing.title,
                reason=LOW_CONFIDENCE_REASON,
            )
        except Exception:
            logger.exception("failed to queue listing for review id=%s", row["id"])
            return False
        return True


def with_external_id(listing: RawListing) -> RawListing:
    if listing.external_id:
        return listing
    if not listing.external_url:
        raise ValueError("listing has neither external_id nor external_url")
    return listing.model_copy(update={"external_id": external_id_from_url(listing.external_url)})
