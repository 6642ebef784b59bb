from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from listings.schemas.listings import INTERNAL_SOURCE
from listings.services.repository import ListingRepository

logger = logging.getLogger(__name__)


class ReapFailedError(RuntimeError):
    """Raised when stale listings could not be removed."""


def reap_cutoff(retention_days: int, *, now: datetime | None = None) -> datetime:
    if retention_days < 1:
        raise ValueError("retention_days must be at least 1")
    current = now or datetime.now(timezone.utc)
    return current - timedelta(days=retention_days)


def is_reapable(listing: dict[str, Any], *, cutoff: datetime) -> bool:
    if listing.get("source") == INTERNAL_SOURCE:
        return False

    last_fetched = listing.get("last_fetched")
    if isinstance(last_fetched, str):
        last_fetched = datetime.fromisoformat(last_fetched.replace("Z", "+00:00"))
    if not isinstance(last_fetched, datetime):
        return False
    if last_fetched.tzinfo is None:
        last_fetched = last_fetched.replace(tzinfo=timezone.utc)
    return last_fetched < cutoff


async def reap_stale_listings(
    repository: ListingRepository,
    retention_days: int,
    *,
    now: datetime | None = None,
) -> int:
    """Delete external listings not seen by any aggregation run within the window.

    Internal listings are never touched. Storage failures propagate as
    `ReapFailedError` so the caller knows nothing, or only part, was removed.
    """
    cutoff = reap_cutoff(retention_days, now=now)
    try:
        removed = await repository.delete_stale_external_listings(cutoff=cutoff)
    except Exception as exc:
        logger.exception("stale listing reap failed retention_days=%s", retention_days)
        raise ReapFailedError(f"failed to reap listings older than {retention_days} day(s)") from exc

    logger.info("reaped stale listings removed=%s retention_days=%s cutoff=%s", removed, retention_days, cutoff)
    return removed
