"""Base class for source adapters."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import TypeVar

from listings.schemas.admin import SourceKind
from listings.schemas.listings import RawListing

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SourceAdapter(ABC):
    """One external source translated into RawListing records.

    `search` does the work and may raise. `fetch` is the public contract: any fault
    inside the adapter ends up as an empty result and a log line, so a broken
    source can never abort an aggregation run. The aggregation orchestrator calls
    `search` directly and does its own fault handling so it can report per-source
    status.
    """

    source: str
    kind: SourceKind

    async def fetch(self, keywords: str, location: str) -> list[RawListing]:
        try:
            return await self.search(keywords, location)
        except Exception:
            logger.exception("source fetch failed source=%s", self.source)
            return []

    @abstractmethod
    async def search(self, keywords: str, location: str) -> list[RawListing]:
        raise NotImplementedError

    def _map_records(self, records: Iterable[T], mapper: Callable[[T], RawListing | None]) -> list[RawListing]:
        out: list[RawListing] = []
        for record in records:
            try:
                listing = mapper(record)
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("skipping unparseable record source=%s error=%s", self.source, exc)
                continue
            if listing is not None:
                out.append(listing)
        return out
