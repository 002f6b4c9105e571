"""Coverage map API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.auth.middleware import require_admin_token
from app.config import Settings, get_settings
from app.coverage.errors import StorageUnavailable
from app.schemas.samples import (
    ClearResponse,
    CoverageResponse,
    IngestRequest,
    IngestResponse,
    LegendEntry,
)
from app.services.coverage import CoverageService, legend
from app.services.store import KeyValueStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/samples", tags=["coverage"])


def get_coverage_service(
    store: KeyValueStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> CoverageService:
    """Dependency that provides a request-scoped coverage service."""
    return CoverageService(store, settings)


@router.get("", response_model=CoverageResponse)
async def get_coverage(
    after: str | None = Query(default=None, max_length=12, description="Geohash to resume after"),
    limit: int | None = Query(default=None, ge=1, le=10000),
    service: CoverageService = Depends(get_coverage_service),
) -> CoverageResponse:
    """Get aggregated coverage cells for the map overlay."""
    try:
        return await service.list_cells(after=after, limit=limit)
    except StorageUnavailable as e:
        logger.error(f"Coverage read failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Coverage store unavailable",
        ) from e


@router.get("/legend", response_model=list[LegendEntry])
async def get_legend() -> list[LegendEntry]:
    """Get reliability tiers with their colors and success-rate ranges."""
    return legend()


@router.post("", response_model=IngestResponse)
async def submit_samples(
    body: IngestRequest,
    service: CoverageService = Depends(get_coverage_service),
) -> IngestResponse:
    """Merge a batch of probes into the coverage map."""
    response, report = await service.ingest(body.samples)
    if report.storage_outage:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=response.model_dump(),
        )
    return response


@router.delete("", response_model=ClearResponse, dependencies=[Depends(require_admin_token)])
async def clear_coverage(
    service: CoverageService = Depends(get_coverage_service),
) -> ClearResponse:
    """Delete all coverage data (requires the admin bearer token)."""
    try:
        deleted = await service.clear_all()
    except StorageUnavailable as e:
        logger.error(f"Clearing coverage failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Coverage store unavailable",
        ) from e
    return ClearResponse(success=True, message="All data cleared", deleted=deleted)
