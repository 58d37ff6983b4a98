from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from src.resource_monitor.schemas.common import utc_now
from src.resource_monitor.schemas.metrics import BurnRatePoint, MetricSample, ModuleUpdateEvent, TimeRange

logger = logging.getLogger(__name__)

_SECONDS_PER_HOUR = 3600.0


def _burn_rates(samples: List[MetricSample]) -> List[BurnRatePoint]:
    """Cycles consumed per hour between consecutive samples (n samples -> n-1 points)."""
    points: List[BurnRatePoint] = []
    for prev, cur in zip(samples, samples[1:]):
        hours = (cur.captured_at - prev.captured_at).total_seconds() / _SECONDS_PER_HOUR
        consumed = float(prev.cycle_balance) - float(cur.cycle_balance)
        # Two captures at the same instant carry no rate information.
        rate = consumed / hours if hours > 0 else 0.0
        points.append(BurnRatePoint(ts=cur.captured_at, cycles_per_hour=rate))
    return points


class HistoryStore:
    """
    Per-resource, time-bounded sample history plus the module-update log.

    Samples are kept in capture order. Every append purges samples that fell out of the
    retention window for that resource; the purge only filters, it never reorders.
    Reads apply the same cutoff, so a resource that stops receiving samples ages out too.
    """

    def __init__(self, retention: timedelta = timedelta(days=30), clock: Callable[[], datetime] = utc_now):
        self.retention = retention
        self._clock = clock
        self._samples: Dict[str, List[MetricSample]] = {}
        self._module_updates: Dict[str, List[ModuleUpdateEvent]] = {}

    def _cutoff(self, lookback: timedelta) -> datetime:
        return self._clock() - min(lookback, self.retention)

    def _retained(self, resource_id: str, lookback: timedelta) -> List[MetricSample]:
        cutoff = self._cutoff(lookback)
        return [s for s in self._samples.get(resource_id, []) if s.captured_at > cutoff]

    # PUBLIC_INTERFACE
    def append(self, resource_id: str, sample: MetricSample) -> None:
        """Append a sample, then drop that resource's samples older than the retention window."""
        series = self._samples.setdefault(resource_id, [])
        series.append(sample)

        cutoff = self._cutoff(self.retention)
        kept = [s for s in series if s.captured_at > cutoff]
        purged = len(series) - len(kept)
        if purged:
            logger.debug("Purged %s expired samples for resourceId=%s", purged, resource_id)
        self._samples[resource_id] = kept

    # PUBLIC_INTERFACE
    def window(self, resource_id: str, time_range: TimeRange = TimeRange.all) -> List[MetricSample]:
        """Samples captured within the range, oldest first. 'all' is the full retained history."""
        return self._retained(resource_id, time_range.delta or self.retention)

    # PUBLIC_INTERFACE
    def derived_burn_rate(self, resource_id: str, time_range: TimeRange = TimeRange.all) -> List[BurnRatePoint]:
        """Burn-rate series over the range; empty when fewer than two samples."""
        return _burn_rates(self.window(resource_id, time_range))

    # PUBLIC_INTERFACE
    def latest_sample(self, resource_id: str) -> Optional[MetricSample]:
        """Most recently appended sample still within retention, or None."""
        series = self._retained(resource_id, self.retention)
        return series[-1] if series else None

    # PUBLIC_INTERFACE
    def record_module_hash_if_changed(self, resource_id: str, sample: MetricSample) -> Optional[ModuleUpdateEvent]:
        """
        Append a ModuleUpdateEvent when the sample's module hash differs from the last recorded one.

        The first observed hash always records. Samples without a hash (nothing installed) record nothing.
        Returns the new event, or None when nothing changed.
        """
        current = sample.module_hash_hex
        if current is None:
            return None

        log = self._module_updates.setdefault(resource_id, [])
        if log and log[-1].module_hash_hex == current:
            return None

        event = ModuleUpdateEvent(resource_id=resource_id, observed_at=sample.captured_at, module_hash_hex=current)
        log.append(event)
        logger.info("Module hash changed resourceId=%s hash=%s", resource_id, current)
        return event

    # PUBLIC_INTERFACE
    def list_module_updates(self, resource_id: str) -> List[ModuleUpdateEvent]:
        """Module update log, newest first."""
        return sorted(self._module_updates.get(resource_id, []), key=lambda e: e.observed_at, reverse=True)

    def resource_ids(self) -> List[str]:
        return list(self._samples.keys())

    def drop(self, resource_id: str) -> None:
        """Forget all history for a resource (used when it is unregistered)."""
        self._samples.pop(resource_id, None)
        self._module_updates.pop(resource_id, None)

    def clear(self) -> None:
        self._samples.clear()
        self._module_updates.clear()
