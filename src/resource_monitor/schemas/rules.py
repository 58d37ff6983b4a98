from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Conditions and actions are closed sum types, discriminated by `type`.


class CyclesBelow(BaseModel):
    """Condition: cycle balance strictly below threshold."""

    model_config = ConfigDict(frozen=True)

    type: Literal["cycles_below"] = "cycles_below"
    threshold: int = Field(..., ge=0, description="Cycles threshold.")


class MemoryUsageAbove(BaseModel):
    """Condition: memory size (bytes) strictly above threshold."""

    model_config = ConfigDict(frozen=True)

    type: Literal["memory_usage_above"] = "memory_usage_above"
    threshold: int = Field(..., ge=0, description="Memory threshold in bytes.")


class ComputeAllocationAbove(BaseModel):
    """Condition: compute allocation (%) strictly above threshold."""

    model_config = ConfigDict(frozen=True)

    type: Literal["compute_allocation_above"] = "compute_allocation_above"
    threshold: int = Field(..., ge=0, le=100, description="Compute allocation threshold (%).")


class TopUpCycles(BaseModel):
    """Action: deposit cycles into the resource."""

    model_config = ConfigDict(frozen=True)

    type: Literal["top_up_cycles"] = "top_up_cycles"
    amount: int = Field(..., gt=0, description="Cycles to deposit.")


class NotifyOwner(BaseModel):
    """Action: send a notification to the resource owner."""

    model_config = ConfigDict(frozen=True)

    type: Literal["notify_owner"] = "notify_owner"
    message: str = Field(..., min_length=1, max_length=1000, description="Notification text.")


class AdjustComputeAllocation(BaseModel):
    """Action: set the resource's compute allocation."""

    model_config = ConfigDict(frozen=True)

    type: Literal["adjust_compute_allocation"] = "adjust_compute_allocation"
    percent: int = Field(..., ge=0, le=100, description="New compute allocation (%).")


RuleCondition = Annotated[
    Union[CyclesBelow, MemoryUsageAbove, ComputeAllocationAbove],
    Field(discriminator="type"),
]
RuleAction = Annotated[
    Union[TopUpCycles, NotifyOwner, AdjustComputeAllocation],
    Field(discriminator="type"),
]


class Rule(BaseModel):
    """A stored automation rule. Mutable fields: enabled, last_triggered_at, and user-updated settings."""

    id: str
    owner_id: str
    resource_id: str
    condition: RuleCondition
    action: RuleAction
    cooldown_period: timedelta
    enabled: bool = True
    last_triggered_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class RuleCreate(BaseModel):
    """Request model for creating a rule."""

    resource_id: str = Field(..., description="Registered resource the rule watches.")
    condition: RuleCondition = Field(..., description="Condition evaluated against the latest sample.")
    action: RuleAction = Field(..., description="Action dispatched when the condition holds.")
    cooldown_hours: float = Field(
        1.0,
        ge=0,
        le=24 * 30,
        description="Minimum hours between two triggered executions.",
    )
    enabled: bool = Field(True, description="Whether the rule is evaluated.")


class RuleUpdate(BaseModel):
    """Request model for partial update (PATCH); omitted fields are unchanged."""

    condition: Optional[RuleCondition] = Field(default=None)
    action: Optional[RuleAction] = Field(default=None)
    cooldown_hours: Optional[float] = Field(default=None, ge=0, le=24 * 30)
    enabled: Optional[bool] = Field(default=None)


class RuleOut(BaseModel):
    """Response model for a rule."""

    id: str
    resource_id: str
    condition: RuleCondition
    action: RuleAction
    cooldown_hours: float
    enabled: bool
    last_triggered_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    condition_text: str = Field(..., description="Human-readable condition.")
    action_text: str = Field(..., description="Human-readable action.")


class RuleListResponse(BaseModel):
    """List response for rules."""

    items: List[RuleOut]
    total: int


class SkipReason(str, Enum):
    """Why a rule was not triggered."""

    disabled = "disabled"
    cooldown = "cooldown"
    condition_false = "condition_false"
    no_data = "no_data"


RuleOutcomeStatus = Literal["triggered", "skipped", "failed"]


class RuleOutcome(BaseModel):
    """Result of one rule evaluation."""

    rule_id: str
    resource_id: str
    status: RuleOutcomeStatus
    reason: Optional[SkipReason] = None
    error: Optional[str] = None


class RuleCheckSummary(BaseModel):
    """Aggregate of one rule-check pass."""

    checked_at: datetime
    triggered: int = 0
    skipped: int = 0
    failed: int = 0
    outcomes: List[RuleOutcome] = Field(default_factory=list)
