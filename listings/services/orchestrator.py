from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from opentelemetry import trace

from listings.schemas.listings import RawListing
from listings.sources.base import SourceAdapter

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True, slots=True)
class AggregationConfig:
    enabled_sources: frozenset[str]
    max_concurrency: int = 3
    adapter_timeout_seconds: float = 20.0
    scrape_timeout_seconds: float = 45.0
    deadline_seconds: float | None = 90.0

    def is_enabled(self, source: str) -> bool:
        return source in self.enabled_sources

    def timeout_for(self, adapter: SourceAdapter) -> float:
        if adapter.kind == "scrape":
            return self.scrape_timeout_seconds
        return self.adapter_timeout_seconds


@dataclass(slots=True)
class SourceRunReport:
    source: str
    status: str
    result_count: int = 0
    latency_ms: int = 0
    message: str | None = None


@dataclass(slots=True)
class AggregationOutcome:
    listings: list[RawListing] = field(default_factory=list)
    reports: list[SourceRunReport] = field(default_factory=list)


class AggregationOrchestrator:
    """Fan a query out to every enabled adapter and merge what comes back.

    Adapters run concurrently up to `max_concurrency`, each under its own timeout, and
    the whole run is bounded by `deadline_seconds`. A failing or slow adapter only
    costs its own results. The merged batch keeps each adapter's records together in
    registration order; records are not deduplicated across sources here.
    """

    def __init__(self, adapters: Sequence[SourceAdapter], config: AggregationConfig) -> None:
        self.adapters = list(adapters)
        self.config = config

    async def aggregate(
        self,
        keywords: str,
        location: str,
        *,
        deadline_seconds: float | None = None,
    ) -> list[RawListing]:
        outcome = await self.aggregate_with_status(keywords, location, deadline_seconds=deadline_seconds)
        return outcome.listings

    async def aggregate_with_status(
        self,
        keywords: str,
        location: str,
        *,
        deadline_seconds: float | None = None,
    ) -> AggregationOutcome:
        deadline = deadline_seconds if deadline_seconds is not None else self.config.deadline_seconds
        enabled = [adapter for adapter in self.adapters if self.config.is_enabled(adapter.source)]
        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))
        outcome = AggregationOutcome()

        with tracer.start_as_current_span("aggregation.run") as span:
            span.set_attribute("aggregation.keywords", keywords)
            span.set_attribute("aggregation.location", location)
            span.set_attribute("aggregation.enabled_sources", len(enabled))

            tasks = [
                asyncio.create_task(self._run_adapter(adapter, keywords, location, semaphore))
                for adapter in enabled
            ]
            done: set[asyncio.Task] = set()
            try:
                if tasks:
                    done, pending = await asyncio.wait(tasks, timeout=deadline)
                    if pending:
                        logger.warning(
                            "aggregation deadline exceeded after %.1fs; cancelling %s source(s)",
                            deadline or 0.0,
                            len(pending),
                        )
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()
                if tasks:
                    await asyncio.gather(*tasks, return_exceptions=True)

            for adapter in self.adapters:
                if not self.config.is_enabled(adapter.source):
                    outcome.reports.append(SourceRunReport(source=adapter.source, status="disabled"))

            for adapter, task in zip(enabled, tasks):
                if task in done and not task.cancelled():
                    results, report = task.result()
                    outcome.listings.extend(results)
                else:
                    report = SourceRunReport(
                        source=adapter.source,
                        status="timeout",
                        message="aggregation deadline exceeded",
                    )
                outcome.reports.append(report)

            span.set_attribute("aggregation.listings", len(outcome.listings))

        logger.info(
            "aggregation finished keywords=%r location=%r listings=%s statuses=%s",
            keywords,
            location,
            len(outcome.listings),
            {report.source: report.status for report in outcome.reports},
        )
        return outcome

    async def _run_adapter(
        self,
        adapter: SourceAdapter,
        keywords: str,
        location: str,
        semaphore: asyncio.Semaphore,
    ) -> tuple[list[RawListing], SourceRunReport]:
        async with semaphore:
            timeout_seconds = self.config.timeout_for(adapter)
            started = time.monotonic()
            with tracer.start_as_current_span("aggregation.adapter") as span:
                span.set_attribute("listing.source", adapter.source)
                span.set_attribute("listing.source_kind", adapter.kind)
                try:
                    results = await asyncio.wait_for(adapter.search(keywords, location), timeout=timeout_seconds)
                except asyncio.TimeoutError:
                    logger.warning("source timed out source=%s timeout=%.1fs", adapter.source, timeout_seconds)
                    span.set_attribute("listing.source_status", "timeout")
                    return [], SourceRunReport(
                        source=adapter.source,
                        status="timeout",
                        latency_ms=_elapsed_ms(started),
                        message=f"no response within {timeout_seconds:g}s",
                    )
                except Exception as exc:
                    logger.warning("source failed source=%s error=%s", adapter.source, exc, exc_info=True)
                    span.set_attribute("listing.source_status", "error")
                    return [], SourceRunReport(
                        source=adapter.source,
                        status="error",
                        latency_ms=_elapsed_ms(started),
                        message=f"{type(exc).__name__}: {str(exc)[:100]}",
                    )

                span.set_attribute("listing.source_status", "ok")
                span.set_attribute("listing.result_count", len(results))
                return list(results), SourceRunReport(
                    source=adapter.source,
                    status="ok",
                    result_count=len(results),
                    latency_ms=_elapsed_ms(started),
                )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
