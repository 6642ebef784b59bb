from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

SourceRunStatus = Literal["ok", "error", "timeout", "disabled"]
SourceKind = Literal["feed", "api", "scrape"]


class AggregationRequest(BaseModel):
    keywords: str | None = Field(default=None, min_length=1)
    location: str | None = Field(default=None, min_length=1)
    deadline_seconds: float | None = Field(default=None, gt=0, le=600)


class SourceStatusOut(BaseModel):
    source: str
    status: SourceRunStatus
    result_count: int = 0
    latency_ms: int = 0
    message: str | None = None


class AggregationRunOut(BaseModel):
    keywords: str
    location: str
    fetched: int
    inserted: int
    refreshed: int
    failed: int
    saved: int
    review_queued: int
    sources: list[SourceStatusOut] = Field(default_factory=list)


class ReapRequest(BaseModel):
    retention_days: int | None = Field(default=None, ge=1)


class ReapOut(BaseModel):
    removed: int
    retention_days: int


class SourceConfigOut(BaseModel):
    source: str
    kind: SourceKind
    enabled: bool
    timeout_seconds: float


class ReviewItemOut(BaseModel):
    id: str
    listing_id: str
    source: str
    external_id: str | None = None
    raw_title: str
    reason: str
    created_at: datetime
