from __future__ import annotations

from typing import Optional

from fastapi import Request

from src.resource_monitor.schemas.metrics import (
    BurnRateResponse,
    MetricSample,
    ModuleUpdateListResponse,
    SampleListResponse,
    TimeRange,
)
from src.resource_monitor.state import get_state

# All reads here are side-effect free; history only changes through the poller.


# PUBLIC_INTERFACE
def get_latest(request: Request, resource_id: str) -> Optional[MetricSample]:
    """Latest recorded sample for a resource, or None."""
    return get_state(request.app).session.history.latest_sample(resource_id)


# PUBLIC_INTERFACE
def get_window(request: Request, resource_id: str, time_range: TimeRange) -> SampleListResponse:
    """Samples within the time range, oldest first."""
    items = get_state(request.app).session.history.window(resource_id, time_range)
    return SampleListResponse(resource_id=resource_id, range=time_range, items=items, total=len(items))


# PUBLIC_INTERFACE
def get_burn_rate(request: Request, resource_id: str, time_range: TimeRange) -> BurnRateResponse:
    """Cycles-per-hour burn rate between consecutive samples within the range."""
    points = get_state(request.app).session.history.derived_burn_rate(resource_id, time_range)
    return BurnRateResponse(resource_id=resource_id, range=time_range, points=points)


# PUBLIC_INTERFACE
def get_module_updates(request: Request, resource_id: str) -> ModuleUpdateListResponse:
    """Module update log, newest first."""
    items = get_state(request.app).session.history.list_module_updates(resource_id)
    return ModuleUpdateListResponse(resource_id=resource_id, items=items, total=len(items))
