from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, FrozenSet, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class ResourceStatus(str, Enum):
    """Lifecycle status reported by the remote resource."""

    running = "running"
    stopping = "stopping"
    stopped = "stopped"


class TimeRange(str, Enum):
    """Lookback ranges supported by windowed history queries."""

    last_24h = "24h"
    last_7d = "7d"
    last_30d = "30d"
    all = "all"

    @property
    def delta(self) -> Optional[timedelta]:
        """Lookback duration; None for 'all' (the full retained history)."""
        if self is TimeRange.last_24h:
            return timedelta(hours=24)
        if self is TimeRange.last_7d:
            return timedelta(days=7)
        if self is TimeRange.last_30d:
            return timedelta(days=30)
        return None


class ResourceSnapshot(BaseModel):
    """Metrics as reported by the Remote Resource Gateway for one resource."""

    model_config = ConfigDict(frozen=True)

    cycle_balance: int = Field(..., ge=0, description="Remaining cycles balance.")
    memory_size: int = Field(..., ge=0, description="Memory size in bytes.")
    storage_utilization: int = Field(0, ge=0, description="Stable storage used, in bytes.")
    compute_allocation_percent: int = Field(0, ge=0, le=100, description="Reserved compute allocation (%).")
    freezing_threshold_seconds: int = Field(0, ge=0, description="Freezing threshold in seconds.")
    status: ResourceStatus = Field(ResourceStatus.running, description="Remote lifecycle status.")
    module_hash: Optional[bytes] = Field(
        default=None,
        description="Hash of the installed module (hex string on the wire).",
    )
    controllers: FrozenSet[str] = Field(default_factory=frozenset, description="Controller identifiers.")
    subnet_id: Optional[str] = Field(default=None, description="Subnet hosting the resource, when known.")
    created_at: datetime = Field(..., description="When the resource was created (remote-reported).")
    last_updated_at: datetime = Field(..., description="When the remote last updated these metrics.")

    @field_validator("module_hash", mode="before")
    @classmethod
    def _coerce_module_hash(cls, v: Any) -> Any:
        # Accept raw bytes, a list of byte values, or a hex string.
        if v is None or isinstance(v, (bytes, bytearray)):
            return v
        if isinstance(v, str):
            return bytes.fromhex(v) if v else None
        if isinstance(v, (list, tuple)):
            return bytes(int(b) for b in v) if v else None
        return v

    @field_serializer("module_hash")
    def _serialize_module_hash(self, v: Optional[bytes]) -> Optional[str]:
        return v.hex() if v is not None else None

    @property
    def module_hash_hex(self) -> Optional[str]:
        """Lowercase hex encoding of module_hash, or None."""
        return self.module_hash.hex() if self.module_hash is not None else None


class MetricSample(ResourceSnapshot):
    """One point-in-time observation of a resource, stamped with the engine's capture time."""

    resource_id: str = Field(..., description="Resource the sample belongs to.")
    captured_at: datetime = Field(..., description="UTC time the engine captured the sample.")

    # PUBLIC_INTERFACE
    @classmethod
    def from_snapshot(cls, resource_id: str, snapshot: ResourceSnapshot, captured_at: datetime) -> "MetricSample":
        """Build an immutable sample from a gateway snapshot."""
        return cls(resource_id=resource_id, captured_at=captured_at, **dict(snapshot))


class ModuleUpdateEvent(BaseModel):
    """A change of the installed module hash observed for a resource."""

    model_config = ConfigDict(frozen=True)

    resource_id: str = Field(..., description="Resource whose module changed.")
    observed_at: datetime = Field(..., description="Capture time of the sample that revealed the change.")
    module_hash_hex: str = Field(..., description="New module hash (hex).")


class BurnRatePoint(BaseModel):
    """Cycles consumed per hour between two consecutive samples."""

    ts: datetime = Field(..., description="Capture time of the later sample of the pair.")
    cycles_per_hour: float = Field(..., description="Positive when the balance is decreasing.")


class SampleListResponse(BaseModel):
    """Samples for a resource within a time range, oldest first."""

    resource_id: str
    range: TimeRange
    items: List[MetricSample]
    total: int


class BurnRateResponse(BaseModel):
    """Burn-rate series for a resource."""

    resource_id: str
    range: TimeRange
    points: List[BurnRatePoint]
    unit: str = Field("cycles/h", description="Unit string for display.")


class ModuleUpdateListResponse(BaseModel):
    """Module update log for a resource, newest first."""

    resource_id: str
    items: List[ModuleUpdateEvent]
    total: int


RefreshStatus = Literal["ok", "failed", "skipped"]


class RefreshOutcome(BaseModel):
    """Result of one refresh request for one resource."""

    resource_id: str = Field(..., description="Resource the outcome is for.")
    status: RefreshStatus = Field(..., description="ok|failed|skipped")
    sample: Optional[MetricSample] = Field(default=None, description="Recorded sample when status=ok.")
    error: Optional[str] = Field(default=None, description="Last error message when status=failed.")
    reason: Optional[str] = Field(default=None, description="Why the refresh was skipped.")


class RefreshListResponse(BaseModel):
    """Outcomes of a batch refresh."""

    items: List[RefreshOutcome]
    total: int
    failed: int
