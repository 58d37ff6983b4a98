from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Callable, Dict, List

from src.resource_monitor.errors import DuplicateResourceError, InvalidResourceIdError, ResourceNotRegisteredError
from src.resource_monitor.schemas.common import utc_now
from src.resource_monitor.schemas.resources import RegisteredResource, ResourceCreate, ResourceUpdate

logger = logging.getLogger(__name__)

_RESOURCE_ID_RE = re.compile(r"^[a-z0-9-]+$")


# PUBLIC_INTERFACE
def validate_resource_id(resource_id: str) -> str:
    """Normalize and validate a resource identifier; raises InvalidResourceIdError."""
    rid = (resource_id or "").strip()
    if not rid or not _RESOURCE_ID_RE.match(rid):
        raise InvalidResourceIdError(f"invalid resource id format: {resource_id!r}")
    return rid


class ResourceRegistry:
    """The session owner's monitored resources, in registration order."""

    def __init__(self, owner_id: str, clock: Callable[[], datetime] = utc_now):
        self.owner_id = owner_id
        self._clock = clock
        self._resources: Dict[str, RegisteredResource] = {}

    def register(self, payload: ResourceCreate) -> RegisteredResource:
        rid = validate_resource_id(payload.resource_id)
        if rid in self._resources:
            raise DuplicateResourceError(f"resource already registered: {rid}")
        resource = RegisteredResource(
            resource_id=rid,
            owner_id=self.owner_id,
            name=payload.name.strip(),
            description=(payload.description or "").strip() or None,
            registered_at=self._clock(),
        )
        self._resources[rid] = resource
        logger.info("Registered resourceId=%s owner=%s", rid, self.owner_id)
        return resource

    def update(self, resource_id: str, payload: ResourceUpdate) -> RegisteredResource:
        """Apply a partial update of name/description; raises ValueError on a blank name."""
        resource = self.get(resource_id)
        changes = {}
        if payload.name is not None:
            name = payload.name.strip()
            if not name:
                raise ValueError("name must not be empty")
            changes["name"] = name
        if payload.description is not None:
            changes["description"] = payload.description.strip() or None
        if not changes:
            return resource
        updated = resource.model_copy(update=changes)
        self._resources[resource_id] = updated
        logger.info("Updated resourceId=%s fields=%s", resource_id, sorted(changes))
        return updated

    def unregister(self, resource_id: str) -> None:
        if self._resources.pop(resource_id, None) is None:
            raise ResourceNotRegisteredError(f"resource not registered: {resource_id}")
        logger.info("Unregistered resourceId=%s owner=%s", resource_id, self.owner_id)

    def get(self, resource_id: str) -> RegisteredResource:
        resource = self._resources.get(resource_id)
        if resource is None:
            raise ResourceNotRegisteredError(f"resource not registered: {resource_id}")
        return resource

    def is_registered(self, resource_id: str) -> bool:
        return resource_id in self._resources

    def list(self) -> List[RegisteredResource]:
        return list(self._resources.values())

    def ids(self) -> List[str]:
        return list(self._resources.keys())

    def clear(self) -> None:
        self._resources.clear()
