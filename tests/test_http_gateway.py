from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest

from src.resource_monitor.errors import (
    ActionFailedError,
    GatewayError,
    InvalidResourceError,
    RefreshNotReady,
    TransientGatewayError,
)
from src.resource_monitor.gateway.http_gateway import HttpResourceGateway
from src.resource_monitor.schemas.metrics import ResourceStatus
from src.resource_monitor.schemas.rules import NotifyOwner


def _gateway(handler) -> HttpResourceGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://gateway.test")
    return HttpResourceGateway("http://gateway.test", client=client)


@pytest.mark.anyio
async def test_fetch_snapshot_parses_camel_case_payload():
    payload = {
        "ok": {
            "cycleBalance": "5000000000",
            "memorySize": 2048,
            "computeAllocation": [25],
            "freezingThreshold": [2592000],
            "status": {"running": None},
            "moduleHash": ["0a0b"],
            "controllers": ["ctrl-a", "ctrl-b"],
            "createdAt": 1_700_000_000_000_000_000,
            "lastUpdated": "2024-05-01T12:00:00Z",
        }
    }

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert request.url.path == "/resources/res-1/metrics"
        return httpx.Response(200, json=payload)

    gateway = _gateway(handler)
    snap = await gateway.fetch_snapshot("res-1")
    await gateway.aclose()

    assert snap.cycle_balance == 5_000_000_000
    assert snap.memory_size == 2048
    assert snap.compute_allocation_percent == 25
    assert snap.freezing_threshold_seconds == 2_592_000
    assert snap.status == ResourceStatus.running
    assert snap.module_hash_hex == "0a0b"
    assert snap.controllers == frozenset({"ctrl-a", "ctrl-b"})
    assert snap.created_at == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)
    assert snap.last_updated_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.anyio
async def test_fetch_snapshot_without_module():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "cycle_balance": 10,
                "memory_size": 0,
                "status": "stopped",
                "module_hash": [],
                "created_at": "2024-01-01T00:00:00+00:00",
                "last_updated_at": "2024-01-02T00:00:00+00:00",
            },
        )

    gateway = _gateway(handler)
    snap = await gateway.fetch_snapshot("res-1")

    assert snap.module_hash is None
    assert snap.status == ResourceStatus.stopped


@pytest.mark.anyio
@pytest.mark.parametrize(
    "status_code,body,expected",
    [
        (409, {}, RefreshNotReady),
        (500, {"error": "UpdateFailed"}, RefreshNotReady),
        (503, {}, TransientGatewayError),
        (429, {}, TransientGatewayError),
        (404, {}, InvalidResourceError),
        (400, {"error": "Invalid principal"}, InvalidResourceError),
        (401, {}, GatewayError),
    ],
)
async def test_request_refresh_maps_error_statuses(status_code, body, expected):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/resources/res-1/refresh"
        return httpx.Response(status_code, json=body)

    gateway = _gateway(handler)
    with pytest.raises(expected) as exc_info:
        await gateway.request_refresh("res-1")
    assert exc_info.type is expected
    assert exc_info.value.resource_id == "res-1"


@pytest.mark.anyio
async def test_transport_error_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    gateway = _gateway(handler)
    with pytest.raises(TransientGatewayError):
        await gateway.request_refresh("res-1")


@pytest.mark.anyio
async def test_malformed_payload_raises_gateway_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"cycle_balance": "lots"})

    gateway = _gateway(handler)
    with pytest.raises(GatewayError):
        await gateway.fetch_snapshot("res-1")


@pytest.mark.anyio
@pytest.mark.parametrize("missing", ["createdAt", "lastUpdated"])
async def test_payload_without_timestamps_is_malformed(missing: str):
    body = {"cycleBalance": 10, "memorySize": 1, "createdAt": 1_700_000_000_000_000_000, "lastUpdated": 1_700_000_000_000_000_000}
    del body[missing]

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": body})

    gateway = _gateway(handler)
    with pytest.raises(GatewayError, match="missing"):
        await gateway.fetch_snapshot("res-1")
    await gateway.aclose()


@pytest.mark.anyio
async def test_apply_action_posts_action_and_wraps_failures():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200 if len(seen) == 1 else 500, json={})

    gateway = _gateway(handler)
    action = NotifyOwner(message="cycles low")

    await gateway.apply_action("res-1", action)
    with pytest.raises(ActionFailedError):
        await gateway.apply_action("res-1", action)

    assert seen[0] == {"type": "notify_owner", "message": "cycles low"}


def test_default_client_sends_bearer_token():
    gateway = HttpResourceGateway("http://gateway.test/", token="secret-token")
    assert gateway.base_url == "http://gateway.test"
    assert gateway._client.headers["Authorization"] == "Bearer secret-token"
