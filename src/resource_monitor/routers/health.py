from __future__ import annotations

import re
from typing import List

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from src.resource_monitor.schemas.common import HealthResponse, utc_now
from src.resource_monitor.state import get_state

router = APIRouter(tags=["Health"])


def _sanitize_url_for_response(url: str) -> str:
    """Mask credentials embedded in a URL to avoid returning secrets to clients."""
    return re.sub(r"(https?://)([^:@/]+):([^@/]+)@", r"\1\2:***@", url)


class EngineDiagnosticsResponse(BaseModel):
    """Diagnostics describing the monitoring loops and their configuration."""

    owner_id: str = Field(..., description="Session owner.")
    gateway_url: str = Field(..., description="Remote gateway base URL (credentials masked).")
    loops_running: bool = Field(..., description="Whether the periodic loops are running.")
    registered_resources: int = Field(..., description="Number of registered resources.")
    rules: int = Field(..., description="Number of rules.")
    in_flight: List[str] = Field(default_factory=list, description="Resources with a refresh outstanding.")
    retention_days: int = Field(..., description="History retention window (days).")
    metrics_refresh_interval_sec: int = Field(..., description="Metrics loop period (seconds).")
    rule_check_interval_sec: int = Field(..., description="Rule loop period (seconds).")
    refresh_retry_attempts: int = Field(..., description="Retries after the first refresh attempt.")
    refresh_backoff_base_sec: float = Field(..., description="Linear backoff base (seconds).")
    timestamp: str = Field(..., description="UTC timestamp when the diagnostics were produced (ISO string).")


@router.get(
    "/",
    response_model=HealthResponse,
    summary="Health check",
    description="Basic service liveness check used by deployment and the frontend.",
    operation_id="health_check",
)
def health_check() -> HealthResponse:
    """Return service liveness status."""
    return HealthResponse(status="ok", message="Healthy", timestamp=utc_now())


@router.get(
    "/api/health/engine",
    response_model=EngineDiagnosticsResponse,
    summary="Engine diagnostics",
    description="Reports loop state, in-flight refreshes and scheduling configuration (no secrets).",
    operation_id="engine_diagnostics",
)
def engine_diagnostics(request: Request) -> EngineDiagnosticsResponse:
    """Return monitoring engine diagnostics."""
    state = get_state(request.app)
    cfg = state.config
    session = state.session
    return EngineDiagnosticsResponse(
        owner_id=session.owner_id,
        gateway_url=_sanitize_url_for_response(cfg.gateway_base_url),
        loops_running=session.scheduler.is_running,
        registered_resources=len(session.registry.ids()),
        rules=len(session.rules.list(owner_id=session.owner_id)),
        in_flight=session.scheduler.guard.snapshot(),
        retention_days=int(cfg.metrics_retention_days),
        metrics_refresh_interval_sec=int(cfg.metrics_refresh_interval_sec),
        rule_check_interval_sec=int(cfg.rule_check_interval_sec),
        refresh_retry_attempts=int(cfg.refresh_retry_attempts),
        refresh_backoff_base_sec=float(cfg.refresh_backoff_base_sec),
        timestamp=utc_now().isoformat(),
    )
