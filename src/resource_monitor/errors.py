"""Error taxonomy shared by the gateway client and the monitoring services.

Gateway errors are split by how the poller must react:
- RetryableGatewayError: the remote resource is not ready yet or the transport blipped; retry with backoff.
- InvalidResourceError: the identifier is malformed or unknown remotely; never retried.
- ActionFailedError: a rule action was rejected; reported in the rule-check summary.
"""

from __future__ import annotations

from typing import Optional


class GatewayError(Exception):
    """Base class for failures reported by the Remote Resource Gateway."""

    def __init__(self, message: str, resource_id: Optional[str] = None):
        super().__init__(message)
        self.resource_id = resource_id


class RetryableGatewayError(GatewayError):
    """A failure worth retrying after a backoff delay."""


class RefreshNotReady(RetryableGatewayError):
    """The remote refused the refresh because the resource is mid-transition or not yet reachable."""


class TransientGatewayError(RetryableGatewayError):
    """Network/transport failure or a 5xx from the gateway."""


class InvalidResourceError(GatewayError):
    """Malformed or unknown resource identifier (fatal, no retry)."""


class ActionFailedError(GatewayError):
    """The gateway rejected or failed to apply a rule action."""


class MonitorError(Exception):
    """Base class for engine-side request errors (mapped to HTTP 4xx by routers)."""


class InvalidResourceIdError(MonitorError):
    """Resource identifier does not match the accepted format."""


class ResourceNotRegisteredError(MonitorError):
    """Resource is not registered to the session owner."""


class DuplicateResourceError(MonitorError):
    """Resource is already registered."""


class RuleNotFoundError(MonitorError):
    """No rule with the given id belongs to the session owner."""


class SessionStoppedError(MonitorError):
    """The monitor session was stopped while the request was outstanding."""
