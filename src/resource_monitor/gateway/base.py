from __future__ import annotations

from typing import Protocol

from src.resource_monitor.schemas.metrics import ResourceSnapshot
from src.resource_monitor.schemas.rules import RuleAction


class ResourceGateway(Protocol):
    """
    Contract the engine requires from the remote resource-management API.

    Every method is a suspension point and may raise a GatewayError subclass:
      - request_refresh: RefreshNotReady / TransientGatewayError (retryable), InvalidResourceError (fatal)
      - fetch_snapshot: same family as request_refresh
      - apply_action: ActionFailedError
    """

    async def request_refresh(self, resource_id: str) -> None:
        """Ask the remote side to update its metrics for resource_id."""
        ...

    async def fetch_snapshot(self, resource_id: str) -> ResourceSnapshot:
        """Return the most recent metrics the remote side holds for resource_id."""
        ...

    async def apply_action(self, resource_id: str, action: RuleAction) -> None:
        """Execute a rule action against resource_id."""
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...
