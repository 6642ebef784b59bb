from __future__ import annotations

from functools import lru_cache

from listings.core.config import Settings, get_settings
from listings.services.orchestrator import AggregationConfig, AggregationOrchestrator
from listings.sources.base import SourceAdapter
from listings.sources.feed import FeedSourceAdapter
from listings.sources.glassdoor import GlassdoorSourceAdapter
from listings.sources.internshala import InternshalaSourceAdapter


def build_adapters(settings: Settings) -> list[SourceAdapter]:
    return [
        FeedSourceAdapter(
            source="indeed",
            feed_url=settings.indeed_feed_url,
            max_items=settings.feed_max_items,
            timeout_seconds=settings.adapter_timeout_seconds,
            user_agent=settings.user_agent,
        ),
        GlassdoorSourceAdapter(
            api_url=settings.glassdoor_api_url,
            api_key=settings.glassdoor_api_key,
            partner_id=settings.glassdoor_partner_id,
            timeout_seconds=settings.adapter_timeout_seconds,
            user_agent=settings.user_agent,
        ),
        InternshalaSourceAdapter(
            base_url=settings.internshala_base_url,
            max_cards=settings.scrape_max_cards,
            navigation_timeout_seconds=settings.scrape_timeout_seconds,
            user_agent=settings.user_agent,
        ),
    ]


def aggregation_config_from_settings(settings: Settings) -> AggregationConfig:
    enabled = {
        "indeed": settings.indeed_enabled,
        "glassdoor": settings.glassdoor_enabled,
        "internshala": settings.internshala_enabled,
    }
    return AggregationConfig(
        enabled_sources=frozenset(source for source, flag in enabled.items() if flag),
        max_concurrency=settings.aggregation_max_concurrency,
        adapter_timeout_seconds=settings.adapter_timeout_seconds,
        scrape_timeout_seconds=settings.scrape_timeout_seconds,
        deadline_seconds=settings.aggregation_deadline_seconds,
    )


def build_orchestrator(settings: Settings) -> AggregationOrchestrator:
    return AggregationOrchestrator(build_adapters(settings), aggregation_config_from_settings(settings))


@lru_cache
def get_orchestrator() -> AggregationOrchestrator:
    return build_orchestrator(get_settings())
