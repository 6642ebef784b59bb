from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "listing-aggregator"
    environment: str = "dev"
    api_key_header: str = "X-API-Key"
    maintenance_api_key: str | None = None
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10

    default_keywords: str = "software engineer"
    default_location: str = "remote"
    retention_days: int = 30
    aggregation_max_concurrency: int = 3
    adapter_timeout_seconds: float = 20.0
    scrape_timeout_seconds: float = 45.0
    aggregation_deadline_seconds: float = 90.0
    user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

    indeed_enabled: bool = True
    indeed_feed_url: str = "https://rss.indeed.com/rss"
    feed_max_items: int = 20
    glassdoor_enabled: bool = True
    glassdoor_api_url: str = "https://api.glassdoor.com/api/api.htm"
    glassdoor_api_key: str | None = None
    glassdoor_partner_id: str | None = None
    internshala_enabled: bool = True
    internshala_base_url: str = "https://internshala.com"
    scrape_max_cards: int = 10

    otel_enabled: bool = True
    otel_service_name: str = "listing-aggregator"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="LISTINGS_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
