from fastapi import APIRouter, Depends, HTTPException, Query, status

from listings.core.config import Settings, get_settings
from listings.core.security import get_maintenance_principal
from listings.jobs.aggregate import run_aggregation
from listings.jobs.reaper import ReapFailedError, reap_stale_listings
from listings.schemas.admin import (
    AggregationRequest,
    AggregationRunOut,
    ReapOut,
    ReapRequest,
    ReviewItemOut,
    SourceConfigOut,
)
from listings.services.persister import ListingPersister
from listings.services.repository import RepositoryUnavailableError, get_repository
from listings.sources.registry import get_orchestrator

router = APIRouter()


def _require(principal, scopes: set[str]) -> None:
    try:
        principal.require_scopes(scopes)
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


@router.post("/aggregate", response_model=AggregationRunOut)
async def trigger_aggregation(
    payload: AggregationRequest | None = None,
    principal=Depends(get_maintenance_principal),
    settings: Settings = Depends(get_settings),
    orchestrator=Depends(get_orchestrator),
    repository=Depends(get_repository),
) -> AggregationRunOut:
    _require(principal, {"pipeline:run"})
    request = payload or AggregationRequest()
    return await run_aggregation(
        orchestrator,
        ListingPersister(repository),
        keywords=request.keywords or settings.default_keywords,
        location=request.location or settings.default_location,
        deadline_seconds=request.deadline_seconds,
    )


@router.post("/reap", response_model=ReapOut)
async def trigger_reap(
    payload: ReapRequest | None = None,
    principal=Depends(get_maintenance_principal),
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
) -> ReapOut:
    _require(principal, {"pipeline:reap"})
    retention_days = (payload.retention_days if payload else None) or settings.retention_days
    try:
        removed = await reap_stale_listings(repository, retention_days)
    except ReapFailedError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    return ReapOut(removed=removed, retention_days=retention_days)


@router.get("/sources", response_model=list[SourceConfigOut])
async def list_sources(
    principal=Depends(get_maintenance_principal),
    orchestrator=Depends(get_orchestrator),
) -> list[SourceConfigOut]:
    _require(principal, {"sources:read"})
    config = orchestrator.config
    return [
        SourceConfigOut(
            source=adapter.source,
            kind=adapter.kind,
            enabled=config.is_enabled(adapter.source),
            timeout_seconds=config.timeout_for(adapter),
        )
        for adapter in orchestrator.adapters
    ]


@router.get("/review-queue", response_model=list[ReviewItemOut])
async def list_review_queue(
    principal=Depends(get_maintenance_principal),
    repository=Depends(get_repository),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[ReviewItemOut]:
    _require(principal, {"review:read"})
    try:
        rows = await repository.list_review_items(limit=limit, offset=offset)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [ReviewItemOut(**row) for row in rows]
