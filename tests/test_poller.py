from __future__ import annotations

from datetime import timedelta

import pytest

from src.resource_monitor.errors import InvalidResourceError, RefreshNotReady, TransientGatewayError
from src.resource_monitor.services.history_store import HistoryStore
from src.resource_monitor.services.in_flight import InFlightGuard
from src.resource_monitor.services.poller import Poller

from conftest import T0, FakeClock, FakeGateway, RecordingSleep, make_snapshot


def _poller(gateway: FakeGateway, clock: FakeClock, sleep: RecordingSleep, **kwargs) -> Poller:
    history = HistoryStore(retention=timedelta(days=30), clock=clock)
    return Poller(gateway, history, retry_attempts=3, backoff_base_sec=2.0, clock=clock, sleep=sleep, **kwargs)


@pytest.mark.anyio
async def test_refresh_records_sample(gateway: FakeGateway, clock: FakeClock):
    gateway.snapshots["res-1"] = make_snapshot(cycles=4242, module_hash=b"\xab\xcd")
    poller = _poller(gateway, clock, RecordingSleep(clock))

    sample = await poller.refresh("res-1")

    assert sample.resource_id == "res-1"
    assert sample.cycle_balance == 4242
    assert sample.captured_at == T0
    assert poller.history.latest_sample("res-1") == sample
    assert [e.module_hash_hex for e in poller.history.list_module_updates("res-1")] == ["abcd"]
    assert gateway.calls == [("request_refresh", "res-1"), ("fetch_snapshot", "res-1")]


@pytest.mark.anyio
async def test_refresh_retries_not_ready_then_succeeds(gateway: FakeGateway, clock: FakeClock):
    gateway.refresh_errors["res-1"] = [RefreshNotReady("busy", "res-1"), TransientGatewayError("reset", "res-1")]
    sleep = RecordingSleep(clock)
    poller = _poller(gateway, clock, sleep)

    sample = await poller.refresh("res-1")

    assert gateway.refresh_calls("res-1") == 3
    assert sleep.delays == [2.0, 4.0]
    assert sample.captured_at == T0 + timedelta(seconds=6)
    assert len(poller.history.window("res-1")) == 1


@pytest.mark.anyio
async def test_refresh_gives_up_after_retries_with_linear_backoff(gateway: FakeGateway, clock: FakeClock):
    gateway.always_fail["res-1"] = RefreshNotReady("still updating", "res-1")
    sleep = RecordingSleep(clock)
    poller = _poller(gateway, clock, sleep)

    with pytest.raises(RefreshNotReady):
        await poller.refresh("res-1")

    assert gateway.refresh_calls("res-1") == 4
    assert sleep.delays == [2.0, 4.0, 6.0]
    offsets = [(t - T0).total_seconds() for t in gateway.refresh_times]
    assert offsets == [0.0, 2.0, 6.0, 12.0]
    assert poller.history.window("res-1") == []


@pytest.mark.anyio
async def test_invalid_resource_is_not_retried(gateway: FakeGateway, clock: FakeClock):
    gateway.always_fail["bad"] = InvalidResourceError("unknown", "bad")
    sleep = RecordingSleep(clock)
    poller = _poller(gateway, clock, sleep)

    with pytest.raises(InvalidResourceError):
        await poller.refresh("bad")

    assert gateway.refresh_calls("bad") == 1
    assert sleep.delays == []


@pytest.mark.anyio
async def test_refresh_all_continues_past_failures(gateway: FakeGateway, clock: FakeClock):
    gateway.always_fail["res-2"] = InvalidResourceError("unknown", "res-2")
    poller = _poller(gateway, clock, RecordingSleep(clock))

    outcomes = await poller.refresh_all(["res-1", "res-2", "res-3", "res-1"])

    by_id = {o.resource_id: o for o in outcomes}
    assert len(outcomes) == 3
    assert by_id["res-1"].status == "ok"
    assert by_id["res-2"].status == "failed"
    assert "unknown" in by_id["res-2"].error
    assert by_id["res-3"].status == "ok"
    assert poller.history.latest_sample("res-3") is not None
    assert gateway.refresh_calls("res-1") == 1


@pytest.mark.anyio
async def test_refresh_outcome_skips_when_in_flight(gateway: FakeGateway, clock: FakeClock):
    poller = _poller(gateway, clock, RecordingSleep(clock))
    guard = InFlightGuard()
    assert guard.try_acquire("res-1")

    outcome = await poller.refresh_outcome("res-1", guard)

    assert outcome.status == "skipped"
    assert outcome.reason == "in_flight"
    assert gateway.calls == []
    assert guard.is_in_flight("res-1")


@pytest.mark.anyio
async def test_refresh_outcome_releases_guard_after_failure(gateway: FakeGateway, clock: FakeClock):
    gateway.always_fail["res-1"] = InvalidResourceError("unknown", "res-1")
    poller = _poller(gateway, clock, RecordingSleep(clock))
    guard = InFlightGuard()

    outcome = await poller.refresh_outcome("res-1", guard)

    assert outcome.status == "failed"
    assert not guard.is_in_flight("res-1")


@pytest.mark.anyio
async def test_listener_failure_does_not_fail_refresh(gateway: FakeGateway, clock: FakeClock):
    seen = []

    def listener(resource_id, sample):
        seen.append(resource_id)
        raise RuntimeError("listener broke")

    poller = _poller(gateway, clock, RecordingSleep(clock), on_sample_recorded=listener)

    sample = await poller.refresh("res-1")

    assert seen == ["res-1"]
    assert poller.history.latest_sample("res-1") == sample
