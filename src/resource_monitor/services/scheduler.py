from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Set, TypeVar

from src.resource_monitor.errors import SessionStoppedError
from src.resource_monitor.schemas.common import utc_now
from src.resource_monitor.schemas.metrics import RefreshOutcome
from src.resource_monitor.schemas.rules import RuleCheckSummary
from src.resource_monitor.services.history_store import HistoryStore
from src.resource_monitor.services.in_flight import InFlightGuard
from src.resource_monitor.services.poller import Poller
from src.resource_monitor.services.registry import ResourceRegistry
from src.resource_monitor.services.rule_engine import RuleEngine
from src.resource_monitor.services.rule_store import RuleStore

logger = logging.getLogger(__name__)

T = TypeVar("T")
SummaryListener = Callable[[RuleCheckSummary], None]


class MonitorScheduler:
    """
    Owns the two periodic loops (metrics refresh, rule check) and the per-resource in-flight guard.

    Both loops run a tick immediately on start. Every refresh (loop tick or manual) runs as a
    tracked task so stop() can cancel it, including while it sleeps in retry backoff.
    """

    def __init__(
        self,
        registry: ResourceRegistry,
        history: HistoryStore,
        rules: RuleStore,
        poller: Poller,
        engine: RuleEngine,
        metrics_interval_sec: float = 8 * 3600,
        rule_interval_sec: float = 3600,
        clock: Callable[[], datetime] = utc_now,
        on_rule_summary: Optional[SummaryListener] = None,
    ):
        self.registry = registry
        self.history = history
        self.rules = rules
        self.poller = poller
        self.engine = engine
        self.metrics_interval_sec = float(metrics_interval_sec)
        self.rule_interval_sec = float(rule_interval_sec)
        self.on_rule_summary = on_rule_summary
        self.guard = InFlightGuard()
        self.last_summary: Optional[RuleCheckSummary] = None

        self._clock = clock
        self._shutdown: Optional[asyncio.Event] = None
        self._metrics_task: Optional[asyncio.Task] = None
        self._rules_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._shutdown is not None and not self._shutdown.is_set()

    async def _track(self, coro: Awaitable[T]) -> T:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task.cancelled():
            raise SessionStoppedError("monitor session stopped while the request was outstanding")
        return task.result()

    # PUBLIC_INTERFACE
    async def refresh_now(self, resource_id: str) -> RefreshOutcome:
        """Refresh one resource unless a refresh for it is already outstanding."""
        return await self._track(self.poller.refresh_outcome(resource_id, guard=self.guard))

    # PUBLIC_INTERFACE
    def schedule_refresh(self, resource_id: str) -> "asyncio.Task[RefreshOutcome]":
        """Start a guarded refresh in the background; stop() cancels it like any other pending refresh."""
        task = asyncio.ensure_future(self.poller.refresh_outcome(resource_id, guard=self.guard))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    # PUBLIC_INTERFACE
    async def refresh_all(self) -> List[RefreshOutcome]:
        """Refresh every registered resource; busy resources are skipped for this pass."""
        return await self._track(self.poller.refresh_all(self.registry.ids(), guard=self.guard))

    # PUBLIC_INTERFACE
    async def check_rules_now(self) -> RuleCheckSummary:
        """Evaluate the owner's rules against the latest samples and notify the summary listener."""
        rules = self.rules.list(owner_id=self.registry.owner_id)
        summary = await self._track(
            self.engine.check_and_execute_rules(rules, self.history.latest_sample, self._clock())
        )
        self.last_summary = summary
        if self.on_rule_summary is not None:
            try:
                self.on_rule_summary(summary)
            except Exception:
                logger.exception("on_rule_summary listener failed")
        return summary

    async def _metrics_tick(self) -> None:
        await self.refresh_all()

    async def _rules_tick(self) -> None:
        # Evaluate against the latest known samples, then refresh so triggered actions show up promptly.
        await self.check_rules_now()
        await self.refresh_all()

    async def _periodic_loop(
        self,
        name: str,
        interval: float,
        tick: Callable[[], Awaitable[None]],
        shutdown_event: asyncio.Event,
    ) -> None:
        logger.info("%s loop started (interval=%ss)", name, interval)

        while not shutdown_event.is_set():
            tick_started = datetime.now(timezone.utc)
            try:
                await tick()
            except SessionStoppedError:
                break
            except Exception:
                logger.exception("%s tick failed", name)

            elapsed = (datetime.now(timezone.utc) - tick_started).total_seconds()
            sleep_for = max(0.1, interval - elapsed)
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=sleep_for)
            except asyncio.TimeoutError:
                pass

        logger.info("%s loop stopped", name)

    # PUBLIC_INTERFACE
    def start(self) -> None:
        """Start both loops (no-op when already running). Must be called from a running event loop."""
        if self.is_running:
            return
        self._shutdown = asyncio.Event()
        self._metrics_task = asyncio.create_task(
            self._periodic_loop("Metrics refresh", self.metrics_interval_sec, self._metrics_tick, self._shutdown)
        )
        self._rules_task = asyncio.create_task(
            self._periodic_loop("Rule check", self.rule_interval_sec, self._rules_tick, self._shutdown)
        )

    # PUBLIC_INTERFACE
    async def stop(self) -> None:
        """Cancel both loops and every outstanding refresh/check; safe to call at any time."""
        if self._shutdown is not None:
            self._shutdown.set()

        tasks = [t for t in (self._metrics_task, self._rules_task) if t is not None]
        tasks.extend(self._pending)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._metrics_task = None
        self._rules_task = None
        self._pending.clear()
        self.guard.clear()
        logger.info("Scheduler stopped (cancelled %s tasks)", len(tasks))
