from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI

from src.resource_monitor.config import MonitorConfig
from src.resource_monitor.gateway.base import ResourceGateway
from src.resource_monitor.gateway.http_gateway import HttpResourceGateway
from src.resource_monitor.services.session import MonitorSession


@dataclass
class AppState:
    """Typed app.state container for shared singletons."""

    config: MonitorConfig
    gateway: ResourceGateway
    session: MonitorSession


# PUBLIC_INTERFACE
def init_state(app: FastAPI, config: MonitorConfig, gateway: Optional[ResourceGateway] = None) -> None:
    """Initialize app.state with the gateway client and a monitor session for the configured owner."""
    if gateway is None:
        gateway = HttpResourceGateway(
            config.gateway_base_url,
            token=config.gateway_api_token,
            timeout=config.gateway_timeout_sec,
        )
    app.state.state = AppState(config=config, gateway=gateway, session=MonitorSession(config, gateway))


# PUBLIC_INTERFACE
def get_state(app: FastAPI) -> AppState:
    """Fetch typed AppState from a FastAPI app."""
    return app.state.state  # type: ignore[attr-defined]
