from __future__ import annotations

from fastapi import APIRouter, HTTPException, Path, Request, status

from src.resource_monitor.errors import (
    DuplicateResourceError,
    InvalidResourceIdError,
    ResourceNotRegisteredError,
    SessionStoppedError,
)
from src.resource_monitor.schemas.common import ErrorResponse
from src.resource_monitor.schemas.metrics import RefreshListResponse, RefreshOutcome
from src.resource_monitor.schemas.resources import (
    RegisteredResource,
    ResourceCreate,
    ResourceListResponse,
    ResourceUpdate,
)
from src.resource_monitor.services import resources_service

router = APIRouter(prefix="/api/resources", tags=["Resources"])


@router.get(
    "",
    response_model=ResourceListResponse,
    summary="List resources",
    description="Return the resources registered to the session owner.",
    operation_id="list_resources",
)
def list_resources(request: Request) -> ResourceListResponse:
    """List registered resources."""
    items = resources_service.list_resources(request)
    return ResourceListResponse(items=items, total=len(items))


@router.post(
    "",
    response_model=RegisteredResource,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Register resource",
    description=(
        "Register a resource for periodic metrics refresh and rule evaluation. "
        "Initial metrics are requested in the background right after registration."
    ),
    operation_id="register_resource",
)
async def register_resource(request: Request, payload: ResourceCreate) -> RegisteredResource:
    """Register a resource (initial metrics are fetched in the background)."""
    if not payload.name.strip():
        raise HTTPException(status_code=400, detail="name must not be empty")
    try:
        return resources_service.register_resource(request, payload)
    except InvalidResourceIdError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except DuplicateResourceError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.post(
    "/refresh",
    response_model=RefreshListResponse,
    responses={503: {"model": ErrorResponse}},
    summary="Refresh all resources",
    description="Refresh metrics for every registered resource now. Resources with a refresh in flight are skipped.",
    operation_id="refresh_all_resources",
)
async def refresh_all_resources(request: Request) -> RefreshListResponse:
    """Refresh every registered resource."""
    try:
        items = await resources_service.refresh_all_resources(request)
    except SessionStoppedError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    failed = sum(1 for o in items if o.status == "failed")
    return RefreshListResponse(items=items, total=len(items), failed=failed)


@router.get(
    "/{resource_id}",
    response_model=RegisteredResource,
    responses={404: {"model": ErrorResponse}},
    summary="Get resource",
    description="Fetch a single registered resource.",
    operation_id="get_resource",
)
def get_resource(
    request: Request,
    resource_id: str = Path(..., description="Resource identifier"),
) -> RegisteredResource:
    """Get a resource by id."""
    try:
        return resources_service.get_resource(request, resource_id)
    except ResourceNotRegisteredError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.patch(
    "/{resource_id}",
    response_model=RegisteredResource,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Update resource",
    description="Patch a resource's name or description; omitted fields are unchanged.",
    operation_id="update_resource",
)
def update_resource(
    request: Request,
    payload: ResourceUpdate,
    resource_id: str = Path(..., description="Resource identifier"),
) -> RegisteredResource:
    """Patch a resource."""
    try:
        return resources_service.update_resource(request, resource_id, payload)
    except ResourceNotRegisteredError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.delete(
    "/{resource_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
    summary="Unregister resource",
    description="Stop monitoring a resource and drop its history and rules.",
    operation_id="unregister_resource",
)
def unregister_resource(
    request: Request,
    resource_id: str = Path(..., description="Resource identifier"),
) -> None:
    """Unregister a resource."""
    try:
        resources_service.unregister_resource(request, resource_id)
    except ResourceNotRegisteredError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return None


@router.post(
    "/{resource_id}/refresh",
    response_model=RefreshOutcome,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Refresh resource now",
    description=(
        "Request a metrics refresh for one resource, retrying while the remote is not ready. "
        "Returns status=skipped when a refresh for the resource is already in flight."
    ),
    operation_id="refresh_resource",
)
async def refresh_resource(
    request: Request,
    resource_id: str = Path(..., description="Resource identifier"),
) -> RefreshOutcome:
    """Refresh one resource now."""
    try:
        return await resources_service.refresh_resource(request, resource_id)
    except ResourceNotRegisteredError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except SessionStoppedError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
