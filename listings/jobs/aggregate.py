from __future__ import annotations

import logging

from opentelemetry import trace

from listings.schemas.admin import AggregationRunOut, SourceStatusOut
from listings.services.orchestrator import AggregationOrchestrator
from listings.services.persister import ListingPersister

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


async def run_aggregation(
    orchestrator: AggregationOrchestrator,
    persister: ListingPersister,
    *,
    keywords: str,
    location: str,
    deadline_seconds: float | None = None,
) -> AggregationRunOut:
    with tracer.start_as_current_span("pipeline.aggregate") as span:
        outcome = await orchestrator.aggregate_with_status(keywords, location, deadline_seconds=deadline_seconds)
        persisted = await persister.persist(outcome.listings)
        span.set_attribute("pipeline.fetched", len(outcome.listings))
        span.set_attribute("pipeline.saved", persisted.saved)

    logger.info(
        "aggregation run complete fetched=%s saved=%s failed=%s",
        len(outcome.listings),
        persisted.saved,
        persisted.failed,
    )
    return AggregationRunOut(
        keywords=keywords,
        location=location,
        fetched=len(outcome.listings),
        inserted=persisted.inserted,
        refreshed=persisted.refreshed,
        failed=persisted.failed,
        saved=persisted.saved,
        review_queued=persisted.review_queued,
        sources=[
            SourceStatusOut(
                source=report.source,
                status=report.status,
                result_count=report.result_count,
                latency_ms=report.latency_ms,
                message=report.message,
            )
            for report in outcome.reports
        ],
    )
