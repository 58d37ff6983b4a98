from __future__ import annotations

from typing import List

from fastapi import Request

from src.resource_monitor.schemas.metrics import RefreshOutcome
from src.resource_monitor.schemas.resources import RegisteredResource, ResourceCreate, ResourceUpdate
from src.resource_monitor.state import get_state


# PUBLIC_INTERFACE
def list_resources(request: Request) -> List[RegisteredResource]:
    """Return the owner's registered resources."""
    return get_state(request.app).session.registry.list()


# PUBLIC_INTERFACE
def get_resource(request: Request, resource_id: str) -> RegisteredResource:
    """Get a registered resource; raises ResourceNotRegisteredError."""
    return get_state(request.app).session.registry.get(resource_id)


# PUBLIC_INTERFACE
def register_resource(request: Request, payload: ResourceCreate) -> RegisteredResource:
    """Register a resource for monitoring and kick off its initial refresh."""
    return get_state(request.app).session.register_resource(payload)


# PUBLIC_INTERFACE
def update_resource(request: Request, resource_id: str, payload: ResourceUpdate) -> RegisteredResource:
    """Partial update of a resource's name and description."""
    return get_state(request.app).session.registry.update(resource_id, payload)


# PUBLIC_INTERFACE
def unregister_resource(request: Request, resource_id: str) -> None:
    """Unregister a resource and drop its history and rules."""
    get_state(request.app).session.unregister_resource(resource_id)


# PUBLIC_INTERFACE
async def refresh_resource(request: Request, resource_id: str) -> RefreshOutcome:
    """Refresh one registered resource now (skipped if a refresh is already in flight)."""
    session = get_state(request.app).session
    session.registry.get(resource_id)
    return await session.scheduler.refresh_now(resource_id)


# PUBLIC_INTERFACE
async def refresh_all_resources(request: Request) -> List[RefreshOutcome]:
    """Refresh every registered resource now."""
    return await get_state(request.app).session.scheduler.refresh_all()
