from __future__ import annotations

from typing import List, Optional

from fastapi import Request

from src.resource_monitor.schemas.rules import Rule, RuleCheckSummary, RuleCreate, RuleOut, RuleUpdate
from src.resource_monitor.services.rule_engine import describe_action, describe_condition
from src.resource_monitor.state import get_state


def _rule_to_out(rule: Rule) -> RuleOut:
    return RuleOut(
        id=rule.id,
        resource_id=rule.resource_id,
        condition=rule.condition,
        action=rule.action,
        cooldown_hours=rule.cooldown_period.total_seconds() / 3600.0,
        enabled=rule.enabled,
        last_triggered_at=rule.last_triggered_at,
        created_at=rule.created_at,
        updated_at=rule.updated_at,
        condition_text=describe_condition(rule.condition),
        action_text=describe_action(rule.action),
    )


# PUBLIC_INTERFACE
def list_rules(request: Request, resource_id: Optional[str] = None) -> List[RuleOut]:
    """List the owner's rules, optionally filtered to one resource."""
    session = get_state(request.app).session
    return [_rule_to_out(r) for r in session.rules.list(owner_id=session.owner_id, resource_id=resource_id)]


# PUBLIC_INTERFACE
def create_rule(request: Request, payload: RuleCreate) -> RuleOut:
    """Create a rule; the resource must be registered to the owner."""
    return _rule_to_out(get_state(request.app).session.create_rule(payload))


# PUBLIC_INTERFACE
def get_rule(request: Request, rule_id: str) -> RuleOut:
    """Fetch a rule by id; raises RuleNotFoundError."""
    session = get_state(request.app).session
    return _rule_to_out(session.rules.get(session.owner_id, rule_id))


# PUBLIC_INTERFACE
def patch_rule(request: Request, rule_id: str, payload: RuleUpdate) -> RuleOut:
    """Partial update of a rule."""
    session = get_state(request.app).session
    return _rule_to_out(session.rules.update(session.owner_id, rule_id, payload))


# PUBLIC_INTERFACE
def set_rule_enabled(request: Request, rule_id: str, enabled: bool) -> RuleOut:
    """Enable or disable a rule."""
    session = get_state(request.app).session
    return _rule_to_out(session.rules.set_enabled(session.owner_id, rule_id, enabled))


# PUBLIC_INTERFACE
def delete_rule(request: Request, rule_id: str) -> None:
    """Delete a rule; raises RuleNotFoundError."""
    session = get_state(request.app).session
    session.rules.delete(session.owner_id, rule_id)


# PUBLIC_INTERFACE
async def check_rules(request: Request) -> RuleCheckSummary:
    """Run a rule-check pass now."""
    return await get_state(request.app).session.scheduler.check_rules_now()


# PUBLIC_INTERFACE
def last_summary(request: Request) -> Optional[RuleCheckSummary]:
    """Summary of the most recent rule-check pass, if any."""
    return get_state(request.app).session.scheduler.last_summary
