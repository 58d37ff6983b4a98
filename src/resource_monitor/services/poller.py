from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Iterable, List, Optional

from src.resource_monitor.errors import (
    GatewayError,
    InvalidResourceError,
    ResourceNotRegisteredError,
    RetryableGatewayError,
)
from src.resource_monitor.gateway.base import ResourceGateway
from src.resource_monitor.schemas.common import utc_now
from src.resource_monitor.schemas.metrics import MetricSample, RefreshOutcome
from src.resource_monitor.services.history_store import HistoryStore
from src.resource_monitor.services.in_flight import InFlightGuard

logger = logging.getLogger(__name__)

SampleListener = Callable[[str, MetricSample], None]
TrackedCheck = Callable[[str], bool]


class Poller:
    """
    Drives the refresh-then-fetch cycle for a resource and records successful samples.

    Retryable gateway failures are retried with linear backoff (base * (attempt + 1)); the
    final failure is raised without touching history. Malformed identifiers fail at once.
    """

    def __init__(
        self,
        gateway: ResourceGateway,
        history: HistoryStore,
        retry_attempts: int = 3,
        backoff_base_sec: float = 2.0,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_sample_recorded: Optional[SampleListener] = None,
        is_tracked: Optional[TrackedCheck] = None,
    ):
        self.gateway = gateway
        self.history = history
        self.retry_attempts = max(0, int(retry_attempts))
        self.backoff_base_sec = float(backoff_base_sec)
        self.on_sample_recorded = on_sample_recorded
        self.is_tracked = is_tracked
        self._clock = clock
        self._sleep = sleep

    def backoff(self, attempt: int) -> float:
        """Delay before retry number attempt+1 (attempt is 0-based)."""
        return self.backoff_base_sec * (attempt + 1)

    async def _attempt(self, resource_id: str) -> MetricSample:
        await self.gateway.request_refresh(resource_id)
        snapshot = await self.gateway.fetch_snapshot(resource_id)
        return MetricSample.from_snapshot(resource_id, snapshot, self._clock())

    def _record(self, resource_id: str, sample: MetricSample) -> bool:
        # The resource may have been unregistered while the gateway call was outstanding.
        if self.is_tracked is not None and not self.is_tracked(resource_id):
            logger.info("Discarding sample for untracked resourceId=%s", resource_id)
            return False
        self.history.append(resource_id, sample)
        self.history.record_module_hash_if_changed(resource_id, sample)
        if self.on_sample_recorded is None:
            return True
        try:
            self.on_sample_recorded(resource_id, sample)
        except Exception:
            logger.exception("on_sample_recorded listener failed for resourceId=%s", resource_id)
        return True

    # PUBLIC_INTERFACE
    async def refresh(self, resource_id: str) -> MetricSample:
        """
        Refresh and fetch metrics for one resource; returns the recorded sample or raises the last GatewayError.

        Raises ResourceNotRegisteredError when the resource stopped being tracked before the sample landed.
        """
        attempt = 0
        while True:
            try:
                sample = await self._attempt(resource_id)
                break
            except InvalidResourceError:
                logger.error("Refresh rejected resourceId=%s (invalid resource, not retrying)", resource_id)
                raise
            except RetryableGatewayError as exc:
                if attempt >= self.retry_attempts:
                    logger.error(
                        "Refresh failed resourceId=%s after %s attempts: %s", resource_id, attempt + 1, exc
                    )
                    raise
                delay = self.backoff(attempt)
                logger.warning(
                    "Refresh not ready resourceId=%s attempt=%s; retrying in %.1fs (%s)",
                    resource_id,
                    attempt + 1,
                    delay,
                    exc,
                )
                await self._sleep(delay)
                attempt += 1

        if not self._record(resource_id, sample):
            raise ResourceNotRegisteredError(f"resource unregistered during refresh: {resource_id}")
        return sample

    # PUBLIC_INTERFACE
    async def refresh_outcome(self, resource_id: str, guard: Optional[InFlightGuard] = None) -> RefreshOutcome:
        """refresh() reported as an outcome instead of an exception; honours the in-flight guard when given."""
        if guard is not None and not guard.try_acquire(resource_id):
            logger.info("Refresh skipped resourceId=%s (already in flight)", resource_id)
            return RefreshOutcome(resource_id=resource_id, status="skipped", reason="in_flight")

        try:
            sample = await self.refresh(resource_id)
            return RefreshOutcome(resource_id=resource_id, status="ok", sample=sample)
        except ResourceNotRegisteredError:
            return RefreshOutcome(resource_id=resource_id, status="skipped", reason="unregistered")
        except GatewayError as exc:
            return RefreshOutcome(resource_id=resource_id, status="failed", error=str(exc))
        except Exception as exc:
            logger.exception("Refresh unexpected error for resourceId=%s", resource_id)
            return RefreshOutcome(resource_id=resource_id, status="failed", error=repr(exc))
        finally:
            if guard is not None:
                guard.release(resource_id)

    # PUBLIC_INTERFACE
    async def refresh_all(
        self, resource_ids: Iterable[str], guard: Optional[InFlightGuard] = None
    ) -> List[RefreshOutcome]:
        """Refresh every resource concurrently; never fails fast, one outcome per distinct id."""
        unique_ids = list(dict.fromkeys(resource_ids))
        if not unique_ids:
            return []

        outcomes = await asyncio.gather(*(self.refresh_outcome(rid, guard) for rid in unique_ids))

        failed = sum(1 for o in outcomes if o.status == "failed")
        skipped = sum(1 for o in outcomes if o.status == "skipped")
        logger.info(
            "Refresh pass finished: total=%s ok=%s failed=%s skipped=%s",
            len(outcomes),
            len(outcomes) - failed - skipped,
            failed,
            skipped,
        )
        return list(outcomes)
