from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from src.resource_monitor.config import MonitorConfig
from src.resource_monitor.schemas.metrics import MetricSample, ResourceSnapshot
from src.resource_monitor.schemas.rules import RuleAction

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Mutable clock injected wherever the engine reads 'now'."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingSleep:
    """Sleep replacement that records delays and advances the fake clock instead of waiting."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        self.clock.advance(seconds=delay)
        await asyncio.sleep(0)


def make_snapshot(
    cycles: int = 1_000_000,
    memory: int = 1024,
    compute: int = 0,
    module_hash: Optional[bytes] = None,
) -> ResourceSnapshot:
    return ResourceSnapshot(
        cycle_balance=cycles,
        memory_size=memory,
        storage_utilization=0,
        compute_allocation_percent=compute,
        status="running",
        module_hash=module_hash,
        controllers=frozenset({"ctrl-a"}),
        created_at=T0 - timedelta(days=100),
        last_updated_at=T0,
    )


def make_sample(
    resource_id: str = "res-1",
    at: datetime = T0,
    cycles: int = 1_000_000,
    memory: int = 1024,
    compute: int = 0,
    module_hash: Optional[bytes] = None,
) -> MetricSample:
    return MetricSample.from_snapshot(resource_id, make_snapshot(cycles, memory, compute, module_hash), at)


class FakeGateway:
    """In-memory ResourceGateway with scripted failures and a shared call log."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock
        self.snapshots: Dict[str, ResourceSnapshot] = {}
        self.refresh_errors: Dict[str, List[Exception]] = {}
        self.always_fail: Dict[str, Exception] = {}
        self.action_error: Optional[Exception] = None
        self.block: Optional[asyncio.Event] = None
        self.calls: List[Tuple[str, str]] = []
        self.refresh_times: List[datetime] = []
        self.actions: List[Tuple[str, RuleAction]] = []
        self.closed = False

    def refresh_calls(self, resource_id: str) -> int:
        return sum(1 for kind, rid in self.calls if kind == "request_refresh" and rid == resource_id)

    async def request_refresh(self, resource_id: str) -> None:
        self.calls.append(("request_refresh", resource_id))
        if self.clock is not None:
            self.refresh_times.append(self.clock())
        if self.block is not None:
            await self.block.wait()
        if resource_id in self.always_fail:
            raise self.always_fail[resource_id]
        queued = self.refresh_errors.get(resource_id)
        if queued:
            raise queued.pop(0)

    async def fetch_snapshot(self, resource_id: str) -> ResourceSnapshot:
        self.calls.append(("fetch_snapshot", resource_id))
        return self.snapshots.get(resource_id) or make_snapshot()

    async def apply_action(self, resource_id: str, action: RuleAction) -> None:
        self.calls.append(("apply_action", resource_id))
        if self.action_error is not None:
            raise self.action_error
        self.actions.append((resource_id, action))

    async def aclose(self) -> None:
        self.closed = True


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll predicate on the event loop until it holds or timeout elapses."""
    for _ in range(int(timeout / 0.01)):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not met before timeout")


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway(clock: FakeClock) -> FakeGateway:
    return FakeGateway(clock=clock)


@pytest.fixture
def config() -> MonitorConfig:
    """Config with loops disabled and zero backoff so API calls resolve immediately."""
    return MonitorConfig(
        gateway_base_url="http://gateway.test",
        gateway_api_token=None,
        gateway_timeout_sec=5.0,
        owner_id="owner-1",
        metrics_retention_days=30,
        metrics_refresh_interval_sec=8 * 3600,
        rule_check_interval_sec=3600,
        refresh_retry_attempts=3,
        refresh_backoff_base_sec=0.0,
        loops_enabled=False,
        refresh_on_register=False,
    )


@pytest.fixture
def app(config: MonitorConfig, gateway: FakeGateway, clock: FakeClock):
    """FastAPI app wired to the fake gateway and clock (background loops are not started)."""
    from src.resource_monitor.app import create_app
    from src.resource_monitor.services.session import MonitorSession
    from src.resource_monitor.state import get_state

    app = create_app(config, gateway)
    get_state(app).session = MonitorSession(config, gateway, clock=clock)
    return app


@pytest.fixture
async def async_client(app) -> AsyncIterator[httpx.AsyncClient]:
    """Async HTTP client bound to the FastAPI ASGI app."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def registered_resource(async_client: httpx.AsyncClient) -> str:
    """Register a resource via the API and return its id."""
    payload = {"resource_id": "rrkah-fqaaa-aaaaa-aaaaq-cai", "name": "Main", "description": "integration test"}
    res = await async_client.post("/api/resources", json=payload)
    assert res.status_code == 201, res.text
    return res.json()["resource_id"]
