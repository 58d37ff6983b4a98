from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ResourceCreate(BaseModel):
    """Request model for registering a resource for monitoring."""

    resource_id: str = Field(..., description="Remote identifier (lowercase letters, digits, dashes).")
    name: str = Field(..., description="Display name.")
    description: Optional[str] = Field(default=None, description="Optional free-form description.")


class RegisteredResource(BaseModel):
    """A resource registered to the session owner."""

    resource_id: str = Field(..., description="Remote identifier.")
    owner_id: str = Field(..., description="Owner the resource is registered to.")
    name: str = Field(..., description="Display name.")
    description: Optional[str] = Field(default=None, description="Optional description.")
    registered_at: datetime = Field(..., description="UTC registration time.")


class ResourceListResponse(BaseModel):
    """List response for registered resources."""

    items: List[RegisteredResource]
    total: int


class ResourceUpdate(BaseModel):
    """Request model for partial update (PATCH); omitted fields are unchanged."""

    name: Optional[str] = Field(default=None, description="New display name.")
    description: Optional[str] = Field(default=None, description="New description; empty string clears it.")
