from __future__ import annotations

from datetime import timedelta

import httpx
import pytest

from src.resource_monitor.state import get_state

from conftest import FakeClock, FakeGateway, make_sample, make_snapshot


@pytest.mark.anyio
async def test_latest_is_404_until_first_refresh(
    async_client: httpx.AsyncClient, gateway: FakeGateway, registered_resource: str
):
    res = await async_client.get(f"/api/metrics/{registered_resource}/latest")
    assert res.status_code == 404

    gateway.snapshots[registered_resource] = make_snapshot(cycles=123)
    assert (await async_client.post(f"/api/resources/{registered_resource}/refresh")).status_code == 200

    res = await async_client.get(f"/api/metrics/{registered_resource}/latest")
    assert res.status_code == 200
    assert res.json()["cycle_balance"] == 123
    assert res.json()["resource_id"] == registered_resource


@pytest.mark.anyio
async def test_unregistered_resource_is_404(async_client: httpx.AsyncClient):
    for path in ("latest", "window", "burn-rate", "module-updates"):
        res = await async_client.get(f"/api/metrics/not-registered/{path}")
        assert res.status_code == 404, path


@pytest.mark.anyio
async def test_window_and_burn_rate_ranges(
    app, async_client: httpx.AsyncClient, clock: FakeClock, registered_resource: str
):
    history = get_state(app).session.history
    now = clock()
    for age, cycles in ((timedelta(days=3), 10_000), (timedelta(hours=2), 9_000), (timedelta(0), 8_000)):
        history.append(registered_resource, make_sample(registered_resource, at=now - age, cycles=cycles))

    res = await async_client.get(f"/api/metrics/{registered_resource}/window")
    assert res.status_code == 200
    body = res.json()
    assert body["range"] == "24h"
    assert body["total"] == 2

    res = await async_client.get(f"/api/metrics/{registered_resource}/window", params={"range": "7d"})
    assert res.json()["total"] == 3

    res = await async_client.get(f"/api/metrics/{registered_resource}/burn-rate")
    body = res.json()
    assert body["range"] == "all"
    assert body["unit"] == "cycles/h"
    assert [p["cycles_per_hour"] for p in body["points"]] == pytest.approx([1000 / 70, 500.0])

    res = await async_client.get(f"/api/metrics/{registered_resource}/burn-rate", params={"range": "24h"})
    assert [p["cycles_per_hour"] for p in res.json()["points"]] == [500.0]

    res = await async_client.get(f"/api/metrics/{registered_resource}/window", params={"range": "1y"})
    assert res.status_code == 422


@pytest.mark.anyio
async def test_module_updates_logged_on_hash_change(
    async_client: httpx.AsyncClient, gateway: FakeGateway, clock: FakeClock, registered_resource: str
):
    for module_hash in (b"\xaa", b"\xaa", b"\xbb"):
        gateway.snapshots[registered_resource] = make_snapshot(module_hash=module_hash)
        res = await async_client.post(f"/api/resources/{registered_resource}/refresh")
        assert res.json()["status"] == "ok"
        clock.advance(hours=8)

    res = await async_client.get(f"/api/metrics/{registered_resource}/module-updates")
    assert res.status_code == 200
    body = res.json()
    assert body["total"] == 2
    assert [e["module_hash_hex"] for e in body["items"]] == ["bb", "aa"]
