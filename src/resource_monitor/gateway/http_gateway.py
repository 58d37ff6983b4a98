from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from src.resource_monitor.errors import (
    ActionFailedError,
    GatewayError,
    InvalidResourceError,
    RefreshNotReady,
    TransientGatewayError,
)
from src.resource_monitor.schemas.metrics import ResourceSnapshot, ResourceStatus
from src.resource_monitor.schemas.rules import RuleAction

logger = logging.getLogger(__name__)

# Error codes the remote uses while a resource is mid-transition.
_NOT_READY_CODES = {"not_ready", "notready", "updatefailed", "update_failed"}
_NOT_READY_STATUSES = {409, 423, 425}
_INVALID_STATUSES = {400, 404, 422}


def _first(payload: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for k in keys:
        if k in payload and payload[k] is not None:
            return payload[k]
    return default


def _unwrap_opt(v: Any) -> Any:
    # Optional values may arrive variant-encoded as [] / [value].
    if isinstance(v, list) and len(v) <= 1 and (not v or isinstance(v[0], (list, str))):
        return v[0] if v else None
    return v


def _unwrap_num(v: Any) -> Any:
    if isinstance(v, list):
        return v[0] if v else None
    return v


def _instant(v: Any, field: str) -> datetime:
    """Parse a remote timestamp: ISO string, or epoch seconds/ms/ns. Missing values are malformed."""
    if v is None:
        raise ValueError(f"missing {field}")
    if isinstance(v, datetime):
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)
    if isinstance(v, str) and not v.strip().isdigit():
        parsed = datetime.fromisoformat(v.strip().replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    n = int(v)
    if n > 10**17:
        return datetime.fromtimestamp(n / 1e9, tz=timezone.utc)
    if n > 10**11:
        return datetime.fromtimestamp(n / 1e3, tz=timezone.utc)
    return datetime.fromtimestamp(n, tz=timezone.utc)


def _status(v: Any) -> ResourceStatus:
    # Accept "running" or {"running": null}.
    if isinstance(v, dict) and v:
        v = next(iter(v.keys()))
    if isinstance(v, str):
        return ResourceStatus(v.strip().lower())
    return ResourceStatus.running


def _snapshot_from_payload(payload: Dict[str, Any]) -> ResourceSnapshot:
    """Normalize a remote metrics payload into a ResourceSnapshot."""
    if isinstance(payload.get("ok"), dict):
        payload = payload["ok"]

    return ResourceSnapshot(
        cycle_balance=int(_first(payload, "cycle_balance", "cycleBalance", "cycles", default=0)),
        memory_size=int(_first(payload, "memory_size", "memorySize", default=0)),
        storage_utilization=int(_first(payload, "storage_utilization", "storageUtilization", default=0)),
        compute_allocation_percent=int(
            _unwrap_num(_first(payload, "compute_allocation_percent", "computeAllocation", default=0)) or 0
        ),
        freezing_threshold_seconds=int(
            _unwrap_num(_first(payload, "freezing_threshold_seconds", "freezingThreshold", default=0)) or 0
        ),
        status=_status(payload.get("status")),
        module_hash=_unwrap_opt(_first(payload, "module_hash", "moduleHash")),
        controllers=frozenset(str(c) for c in (payload.get("controllers") or [])),
        subnet_id=_unwrap_opt(_first(payload, "subnet_id", "subnetId")),
        created_at=_instant(_first(payload, "created_at", "createdAt"), "created_at"),
        last_updated_at=_instant(
            _first(payload, "last_updated_at", "lastUpdated", "lastUpdatedAt"), "last_updated_at"
        ),
    )


def _error_code(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return ""
    if not isinstance(body, dict):
        return ""
    code = body.get("error") or body.get("err") or body.get("code") or ""
    if isinstance(code, dict) and code:
        code = next(iter(code.keys()))
    return str(code).strip().lower()


def _raise_for_response(resp: httpx.Response, resource_id: str) -> None:
    """Map a non-2xx gateway response onto the error taxonomy."""
    if resp.is_success:
        return

    code = _error_code(resp)
    msg = f"gateway returned {resp.status_code} for {resource_id}" + (f" ({code})" if code else "")

    if code in _NOT_READY_CODES or resp.status_code in _NOT_READY_STATUSES:
        raise RefreshNotReady(msg, resource_id)
    if resp.status_code in _INVALID_STATUSES:
        raise InvalidResourceError(msg, resource_id)
    if resp.status_code == 429 or resp.status_code >= 500:
        raise TransientGatewayError(msg, resource_id)
    raise GatewayError(msg, resource_id)


class HttpResourceGateway:
    """ResourceGateway implementation over the remote HTTP API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or self._build_http_client(timeout, token)

    def _build_http_client(self, timeout: float, token: Optional[str]) -> httpx.AsyncClient:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return httpx.AsyncClient(base_url=self.base_url, timeout=timeout, headers=headers)

    async def _request(self, method: str, path: str, resource_id: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            # Covers connect/read timeouts and connection resets.
            raise TransientGatewayError(f"gateway transport error for {resource_id}: {exc}", resource_id) from exc
        _raise_for_response(resp, resource_id)
        return resp

    async def request_refresh(self, resource_id: str) -> None:
        await self._request("POST", f"/resources/{resource_id}/refresh", resource_id)

    async def fetch_snapshot(self, resource_id: str) -> ResourceSnapshot:
        resp = await self._request("GET", f"/resources/{resource_id}/metrics", resource_id)
        try:
            return _snapshot_from_payload(resp.json())
        except (ValueError, TypeError, ValidationError) as exc:
            raise GatewayError(f"malformed metrics payload for {resource_id}: {exc}", resource_id) from exc

    async def apply_action(self, resource_id: str, action: RuleAction) -> None:
        try:
            await self._request("POST", f"/resources/{resource_id}/actions", resource_id, json=action.model_dump())
        except GatewayError as exc:
            raise ActionFailedError(f"{action.type} failed: {exc}", resource_id) from exc
        logger.info("Applied action type=%s resourceId=%s", action.type, resource_id)

    async def aclose(self) -> None:
        await self._client.aclose()
