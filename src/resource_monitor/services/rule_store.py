from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from src.resource_monitor.errors import RuleNotFoundError
from src.resource_monitor.schemas.common import utc_now
from src.resource_monitor.schemas.rules import Rule, RuleCreate, RuleUpdate

logger = logging.getLogger(__name__)


def _cooldown(hours: float) -> timedelta:
    return timedelta(hours=float(hours))


class RuleStore:
    """In-memory rule repository; iteration follows creation order."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._rules: Dict[str, Rule] = {}

    def create(self, owner_id: str, payload: RuleCreate) -> Rule:
        now = self._clock()
        rule = Rule(
            id=str(uuid4()),
            owner_id=owner_id,
            resource_id=payload.resource_id,
            condition=payload.condition,
            action=payload.action,
            cooldown_period=_cooldown(payload.cooldown_hours),
            enabled=bool(payload.enabled),
            created_at=now,
            updated_at=now,
        )
        self._rules[rule.id] = rule
        logger.info("Created ruleId=%s resourceId=%s", rule.id, rule.resource_id)
        return rule

    def get(self, owner_id: str, rule_id: str) -> Rule:
        rule = self._rules.get(rule_id)
        if rule is None or rule.owner_id != owner_id:
            raise RuleNotFoundError(f"rule not found: {rule_id}")
        return rule

    def list(self, owner_id: Optional[str] = None, resource_id: Optional[str] = None) -> List[Rule]:
        rules = list(self._rules.values())
        if owner_id is not None:
            rules = [r for r in rules if r.owner_id == owner_id]
        if resource_id is not None:
            rules = [r for r in rules if r.resource_id == resource_id]
        return rules

    def update(self, owner_id: str, rule_id: str, payload: RuleUpdate) -> Rule:
        """Apply a partial update; omitted fields keep their values."""
        rule = self.get(owner_id, rule_id)
        if payload.condition is not None:
            rule.condition = payload.condition
        if payload.action is not None:
            rule.action = payload.action
        if payload.cooldown_hours is not None:
            rule.cooldown_period = _cooldown(payload.cooldown_hours)
        if payload.enabled is not None:
            rule.enabled = bool(payload.enabled)
        rule.updated_at = self._clock()
        return rule

    def set_enabled(self, owner_id: str, rule_id: str, enabled: bool) -> Rule:
        return self.update(owner_id, rule_id, RuleUpdate(enabled=enabled))

    def delete(self, owner_id: str, rule_id: str) -> None:
        self.get(owner_id, rule_id)
        del self._rules[rule_id]
        logger.info("Deleted ruleId=%s", rule_id)

    def delete_for_resource(self, resource_id: str) -> int:
        doomed = [rid for rid, r in self._rules.items() if r.resource_id == resource_id]
        for rid in doomed:
            del self._rules[rid]
        return len(doomed)

    def clear(self) -> None:
        self._rules.clear()
