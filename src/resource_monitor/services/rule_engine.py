from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from src.resource_monitor.errors import GatewayError
from src.resource_monitor.gateway.base import ResourceGateway
from src.resource_monitor.schemas.metrics import MetricSample
from src.resource_monitor.schemas.rules import (
    AdjustComputeAllocation,
    ComputeAllocationAbove,
    CyclesBelow,
    MemoryUsageAbove,
    NotifyOwner,
    Rule,
    RuleAction,
    RuleCheckSummary,
    RuleCondition,
    RuleOutcome,
    SkipReason,
    TopUpCycles,
)

logger = logging.getLogger(__name__)

HistoryLookup = Callable[[str], Optional[MetricSample]]


def _format_number(n: int) -> str:
    return f"{int(n):,}"


def _format_bytes(n: int) -> str:
    units = ["B", "KB", "MB", "GB"]
    size = float(n)
    idx = 0
    while size >= 1024 and idx < len(units) - 1:
        size /= 1024
        idx += 1
    return f"{size:.2f} {units[idx]}"


# PUBLIC_INTERFACE
def describe_condition(condition: RuleCondition) -> str:
    """Human-readable condition text."""
    if isinstance(condition, CyclesBelow):
        return f"Cycles below {_format_number(condition.threshold)}"
    if isinstance(condition, MemoryUsageAbove):
        return f"Memory usage above {_format_bytes(condition.threshold)}"
    if isinstance(condition, ComputeAllocationAbove):
        return f"Compute allocation above {condition.threshold}%"
    raise TypeError(f"unsupported condition: {condition!r}")


# PUBLIC_INTERFACE
def describe_action(action: RuleAction) -> str:
    """Human-readable action text."""
    if isinstance(action, TopUpCycles):
        return f"Top up with {_format_number(action.amount)} cycles"
    if isinstance(action, NotifyOwner):
        return f"Send notification: {action.message}"
    if isinstance(action, AdjustComputeAllocation):
        return f"Adjust compute allocation to {action.percent}%"
    raise TypeError(f"unsupported action: {action!r}")


# PUBLIC_INTERFACE
def evaluate_condition(condition: RuleCondition, sample: MetricSample) -> bool:
    """Return True when the condition holds for the sample."""
    if isinstance(condition, CyclesBelow):
        return sample.cycle_balance < condition.threshold
    if isinstance(condition, MemoryUsageAbove):
        return sample.memory_size > condition.threshold
    if isinstance(condition, ComputeAllocationAbove):
        return sample.compute_allocation_percent > condition.threshold
    raise TypeError(f"unsupported condition: {condition!r}")


def _within_cooldown(rule: Rule, now: datetime) -> bool:
    if rule.last_triggered_at is None:
        return False
    return (now - rule.last_triggered_at) < rule.cooldown_period


def _skipped(rule: Rule, reason: SkipReason) -> RuleOutcome:
    return RuleOutcome(rule_id=rule.id, resource_id=rule.resource_id, status="skipped", reason=reason)


class RuleEngine:
    """
    Evaluates rules against the latest sample and dispatches actions through the gateway.

    A rule fires at most once per cooldown window. A failed action does not start the
    cooldown, so the next pass re-checks the condition and may retry the action.
    """

    def __init__(self, gateway: ResourceGateway):
        self.gateway = gateway

    # PUBLIC_INTERFACE
    async def try_trigger(self, rule: Rule, latest_sample: MetricSample, now: datetime) -> RuleOutcome:
        """Gate on enabled, cooldown and condition, then apply the action; updates last_triggered_at on success."""
        if not rule.enabled:
            return _skipped(rule, SkipReason.disabled)
        if _within_cooldown(rule, now):
            return _skipped(rule, SkipReason.cooldown)
        if not evaluate_condition(rule.condition, latest_sample):
            return _skipped(rule, SkipReason.condition_false)

        try:
            await self.gateway.apply_action(rule.resource_id, rule.action)
        except GatewayError as exc:
            logger.warning("Rule action failed ruleId=%s resourceId=%s: %s", rule.id, rule.resource_id, exc)
            return RuleOutcome(rule_id=rule.id, resource_id=rule.resource_id, status="failed", error=str(exc))

        rule.last_triggered_at = now
        logger.info(
            "Rule triggered ruleId=%s resourceId=%s condition=%r action=%r",
            rule.id,
            rule.resource_id,
            describe_condition(rule.condition),
            describe_action(rule.action),
        )
        return RuleOutcome(rule_id=rule.id, resource_id=rule.resource_id, status="triggered")

    async def _evaluate_resource_rules(
        self, rules: List[Rule], history_lookup: HistoryLookup, now: datetime
    ) -> List[RuleOutcome]:
        # Rules of one resource run serially so two actions never race on the same resource.
        outcomes: List[RuleOutcome] = []
        for rule in rules:
            sample = history_lookup(rule.resource_id)
            if sample is None:
                outcomes.append(_skipped(rule, SkipReason.no_data))
                continue
            try:
                outcomes.append(await self.try_trigger(rule, sample, now))
            except Exception as exc:
                logger.exception("Rule eval failed for ruleId=%s resourceId=%s", rule.id, rule.resource_id)
                outcomes.append(
                    RuleOutcome(rule_id=rule.id, resource_id=rule.resource_id, status="failed", error=repr(exc))
                )
        return outcomes

    # PUBLIC_INTERFACE
    async def check_and_execute_rules(
        self, rules: Iterable[Rule], history_lookup: HistoryLookup, now: datetime
    ) -> RuleCheckSummary:
        """Evaluate every rule once and aggregate the outcomes; a single failure never aborts the pass."""
        by_resource: Dict[str, List[Rule]] = {}
        for rule in rules:
            by_resource.setdefault(rule.resource_id, []).append(rule)

        per_resource = await asyncio.gather(
            *(self._evaluate_resource_rules(group, history_lookup, now) for group in by_resource.values())
        )

        summary = RuleCheckSummary(checked_at=now)
        for outcomes in per_resource:
            for outcome in outcomes:
                summary.outcomes.append(outcome)
                if outcome.status == "triggered":
                    summary.triggered += 1
                elif outcome.status == "failed":
                    summary.failed += 1
                else:
                    summary.skipped += 1

        logger.info(
            "Rule check finished: triggered=%s skipped=%s failed=%s",
            summary.triggered,
            summary.skipped,
            summary.failed,
        )
        return summary
