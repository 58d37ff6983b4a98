from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Path, Query, Request, status

from src.resource_monitor.errors import ResourceNotRegisteredError, RuleNotFoundError, SessionStoppedError
from src.resource_monitor.schemas.common import ErrorResponse
from src.resource_monitor.schemas.rules import RuleCheckSummary, RuleCreate, RuleListResponse, RuleOut, RuleUpdate
from src.resource_monitor.services import rules_service

router = APIRouter(prefix="/api/rules", tags=["Rules"])


@router.get(
    "",
    response_model=RuleListResponse,
    summary="List rules",
    description="List the owner's automation rules. Optionally filter to one resourceId.",
    operation_id="list_rules",
)
def list_rules(
    request: Request,
    resource_id: Optional[str] = Query(default=None, alias="resourceId", description="Optional resource filter."),
) -> RuleListResponse:
    """List rules."""
    items = rules_service.list_rules(request, resource_id=resource_id)
    return RuleListResponse(items=items, total=len(items))


@router.post(
    "",
    response_model=RuleOut,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}},
    summary="Create rule",
    description="Create a condition -> action rule for a registered resource.",
    operation_id="create_rule",
)
def create_rule(request: Request, payload: RuleCreate) -> RuleOut:
    """Create a rule."""
    try:
        return rules_service.create_rule(request, payload)
    except ResourceNotRegisteredError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.post(
    "/check",
    response_model=RuleCheckSummary,
    responses={503: {"model": ErrorResponse}},
    summary="Check rules now",
    description="Evaluate all rules against the latest samples and execute actions whose conditions hold.",
    operation_id="check_rules",
)
async def check_rules(request: Request) -> RuleCheckSummary:
    """Run a rule-check pass."""
    try:
        return await rules_service.check_rules(request)
    except SessionStoppedError as exc:
        raise HTTPException(status_code=503, detail=str(exc))


@router.get(
    "/summary",
    response_model=RuleCheckSummary,
    responses={404: {"model": ErrorResponse}},
    summary="Last rule-check summary",
    description="Outcome counts and per-rule outcomes of the most recent rule-check pass.",
    operation_id="get_rule_summary",
)
def get_rule_summary(request: Request) -> RuleCheckSummary:
    """Return the last summary."""
    summary = rules_service.last_summary(request)
    if summary is None:
        raise HTTPException(status_code=404, detail="no rule check has run yet")
    return summary


@router.get(
    "/{rule_id}",
    response_model=RuleOut,
    responses={404: {"model": ErrorResponse}},
    summary="Get rule",
    description="Fetch a single rule by ruleId.",
    operation_id="get_rule",
)
def get_rule(
    request: Request,
    rule_id: str = Path(..., description="Rule id."),
) -> RuleOut:
    """Get a rule by id."""
    try:
        return rules_service.get_rule(request, rule_id)
    except RuleNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.patch(
    "/{rule_id}",
    response_model=RuleOut,
    responses={404: {"model": ErrorResponse}},
    summary="Update rule",
    description="Patch condition, action, cooldown or enabled; omitted fields are unchanged.",
    operation_id="patch_rule",
)
def patch_rule(
    request: Request,
    payload: RuleUpdate,
    rule_id: str = Path(..., description="Rule id."),
) -> RuleOut:
    """Patch a rule."""
    try:
        return rules_service.patch_rule(request, rule_id, payload)
    except RuleNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.post(
    "/{rule_id}/enable",
    response_model=RuleOut,
    responses={404: {"model": ErrorResponse}},
    summary="Enable rule",
    description="Enable a rule for evaluation.",
    operation_id="enable_rule",
)
def enable_rule(request: Request, rule_id: str = Path(..., description="Rule id.")) -> RuleOut:
    """Enable a rule."""
    try:
        return rules_service.set_rule_enabled(request, rule_id, True)
    except RuleNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.post(
    "/{rule_id}/disable",
    response_model=RuleOut,
    responses={404: {"model": ErrorResponse}},
    summary="Disable rule",
    description="Disable a rule; disabled rules are skipped during checks.",
    operation_id="disable_rule",
)
def disable_rule(request: Request, rule_id: str = Path(..., description="Rule id.")) -> RuleOut:
    """Disable a rule."""
    try:
        return rules_service.set_rule_enabled(request, rule_id, False)
    except RuleNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.delete(
    "/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
    summary="Delete rule",
    description="Delete a rule by ruleId.",
    operation_id="delete_rule",
)
def delete_rule(
    request: Request,
    rule_id: str = Path(..., description="Rule id."),
) -> None:
    """Delete a rule."""
    try:
        rules_service.delete_rule(request, rule_id)
    except RuleNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return None
