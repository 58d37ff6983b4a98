from __future__ import annotations

from fastapi import APIRouter, HTTPException, Path, Query, Request

from src.resource_monitor.errors import ResourceNotRegisteredError
from src.resource_monitor.schemas.common import ErrorResponse
from src.resource_monitor.schemas.metrics import (
    BurnRateResponse,
    MetricSample,
    ModuleUpdateListResponse,
    SampleListResponse,
    TimeRange,
)
from src.resource_monitor.services import metrics_service, resources_service

router = APIRouter(prefix="/api/metrics", tags=["Metrics"])


def _require_registered(request: Request, resource_id: str) -> None:
    try:
        resources_service.get_resource(request, resource_id)
    except ResourceNotRegisteredError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get(
    "/{resource_id}/latest",
    response_model=MetricSample,
    responses={404: {"model": ErrorResponse}},
    summary="Get latest sample",
    description="Most recently recorded metrics sample for a resource.",
    operation_id="get_latest_sample",
)
def get_latest_sample(
    request: Request,
    resource_id: str = Path(..., description="Resource identifier"),
) -> MetricSample:
    """Return the latest sample."""
    _require_registered(request, resource_id)
    sample = metrics_service.get_latest(request, resource_id)
    if sample is None:
        raise HTTPException(status_code=404, detail="no samples recorded yet")
    return sample


@router.get(
    "/{resource_id}/window",
    response_model=SampleListResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get samples in range",
    description="Samples captured within the last 24h, 7d, 30d, or all retained samples (oldest first).",
    operation_id="get_sample_window",
)
def get_sample_window(
    request: Request,
    resource_id: str = Path(..., description="Resource identifier"),
    time_range: TimeRange = Query(TimeRange.last_24h, alias="range", description="24h|7d|30d|all"),
) -> SampleListResponse:
    """Return samples for charting."""
    _require_registered(request, resource_id)
    return metrics_service.get_window(request, resource_id, time_range)


@router.get(
    "/{resource_id}/burn-rate",
    response_model=BurnRateResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get cycle burn rate",
    description="Cycles consumed per hour between consecutive samples within the range.",
    operation_id="get_burn_rate",
)
def get_burn_rate(
    request: Request,
    resource_id: str = Path(..., description="Resource identifier"),
    time_range: TimeRange = Query(TimeRange.all, alias="range", description="24h|7d|30d|all"),
) -> BurnRateResponse:
    """Return the burn-rate series."""
    _require_registered(request, resource_id)
    return metrics_service.get_burn_rate(request, resource_id, time_range)


@router.get(
    "/{resource_id}/module-updates",
    response_model=ModuleUpdateListResponse,
    responses={404: {"model": ErrorResponse}},
    summary="List module updates",
    description="Observed module hash changes for a resource, newest first.",
    operation_id="list_module_updates",
)
def list_module_updates(
    request: Request,
    resource_id: str = Path(..., description="Resource identifier"),
) -> ModuleUpdateListResponse:
    """Return the module update log."""
    _require_registered(request, resource_id)
    return metrics_service.get_module_updates(request, resource_id)
