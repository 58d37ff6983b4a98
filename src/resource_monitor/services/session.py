from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from src.resource_monitor.config import MonitorConfig
from src.resource_monitor.errors import ResourceNotRegisteredError
from src.resource_monitor.gateway.base import ResourceGateway
from src.resource_monitor.schemas.common import utc_now
from src.resource_monitor.schemas.resources import RegisteredResource, ResourceCreate
from src.resource_monitor.schemas.rules import Rule, RuleCreate
from src.resource_monitor.services.history_store import HistoryStore
from src.resource_monitor.services.poller import Poller, SampleListener
from src.resource_monitor.services.registry import ResourceRegistry
from src.resource_monitor.services.rule_engine import RuleEngine
from src.resource_monitor.services.rule_store import RuleStore
from src.resource_monitor.services.scheduler import MonitorScheduler, SummaryListener

logger = logging.getLogger(__name__)


class MonitorSession:
    """
    All monitoring state for one owner: registry, history, rules, poller, rule engine and scheduler.

    Constructed when the app starts and torn down on shutdown; nothing outlives stop().
    """

    def __init__(
        self,
        config: MonitorConfig,
        gateway: ResourceGateway,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_sample_recorded: Optional[SampleListener] = None,
        on_rule_summary: Optional[SummaryListener] = None,
    ):
        self.config = config
        self.gateway = gateway
        self.owner_id = config.owner_id

        self.registry = ResourceRegistry(config.owner_id, clock=clock)
        self.history = HistoryStore(retention=timedelta(days=config.metrics_retention_days), clock=clock)
        self.rules = RuleStore(clock=clock)
        self.poller = Poller(
            gateway,
            self.history,
            retry_attempts=config.refresh_retry_attempts,
            backoff_base_sec=config.refresh_backoff_base_sec,
            clock=clock,
            sleep=sleep,
            on_sample_recorded=on_sample_recorded,
            is_tracked=self.registry.is_registered,
        )
        self.engine = RuleEngine(gateway)
        self.scheduler = MonitorScheduler(
            self.registry,
            self.history,
            self.rules,
            self.poller,
            self.engine,
            metrics_interval_sec=config.metrics_refresh_interval_sec,
            rule_interval_sec=config.rule_check_interval_sec,
            clock=clock,
            on_rule_summary=on_rule_summary,
        )

    # PUBLIC_INTERFACE
    def register_resource(self, payload: ResourceCreate) -> RegisteredResource:
        """Register a resource and, when enabled, fetch its initial metrics in the background."""
        resource = self.registry.register(payload)
        if self.config.refresh_on_register:
            self.scheduler.schedule_refresh(resource.resource_id)
        return resource

    # PUBLIC_INTERFACE
    def create_rule(self, payload: RuleCreate) -> Rule:
        """Create a rule for a resource registered to this owner."""
        if not self.registry.is_registered(payload.resource_id):
            raise ResourceNotRegisteredError(f"resource not registered: {payload.resource_id}")
        return self.rules.create(self.owner_id, payload)

    # PUBLIC_INTERFACE
    def unregister_resource(self, resource_id: str) -> None:
        """Unregister a resource and forget its history and rules."""
        self.registry.unregister(resource_id)
        self.history.drop(resource_id)
        dropped = self.rules.delete_for_resource(resource_id)
        if dropped:
            logger.info("Dropped %s rules of unregistered resourceId=%s", dropped, resource_id)

    # PUBLIC_INTERFACE
    def start(self) -> None:
        """Start the periodic loops."""
        logger.info(
            "Monitor session starting owner=%s resources=%s (metrics=%ss, rules=%ss, retention=%sd)",
            self.owner_id,
            len(self.registry.ids()),
            self.config.metrics_refresh_interval_sec,
            self.config.rule_check_interval_sec,
            self.config.metrics_retention_days,
        )
        self.scheduler.start()

    # PUBLIC_INTERFACE
    async def stop(self) -> None:
        """Cancel all pending work and clear in-memory state."""
        await self.scheduler.stop()
        self.history.clear()
        self.rules.clear()
        self.registry.clear()
        self.scheduler.last_summary = None
        logger.info("Monitor session stopped owner=%s", self.owner_id)
