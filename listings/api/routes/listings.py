from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status

from listings.schemas.listings import ListingFilters, ListingKind, ListingOut, ListingPageOut, ListingSource, RemoteMode
from listings.services.query import MAX_PAGE_SIZE, ListingQueryService
from listings.services.repository import RepositoryNotFoundError, RepositoryUnavailableError, get_repository

router = APIRouter()


@router.get("", response_model=ListingPageOut)
async def list_listings(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    search: str | None = Query(default=None, min_length=1),
    location: str | None = Query(default=None, min_length=1),
    listing_kind: ListingKind | None = Query(default=None),
    remote_mode: RemoteMode | None = Query(default=None),
    source: ListingSource | None = Query(default=None),
    repository=Depends(get_repository),
) -> ListingPageOut:
    filters = ListingFilters(
        search=search,
        location=location,
        listing_kind=listing_kind,
        remote_mode=remote_mode,
        source=source,
    )
    try:
        return await ListingQueryService(repository).query(filters, page=page, limit=limit)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


@router.get("/{listing_id}", response_model=ListingOut)
async def get_listing(listing_id: str, repository=Depends(get_repository)) -> ListingOut:
    try:
        return await ListingQueryService(repository).get(listing_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
