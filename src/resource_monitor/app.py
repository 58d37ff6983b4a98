from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.resource_monitor.config import MonitorConfig, load_config
from src.resource_monitor.gateway.base import ResourceGateway
from src.resource_monitor.routers import health, metrics, resources, rules
from src.resource_monitor.state import get_state, init_state

openapi_tags = [
    {"name": "Health", "description": "Service health and engine diagnostics."},
    {"name": "Resources", "description": "Register monitored resources and trigger refreshes."},
    {"name": "Metrics", "description": "Sample history, burn rate and module update log (in-memory)."},
    {"name": "Rules", "description": "Condition -> action automation rules and rule-check summaries."},
]

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
def create_app(config: Optional[MonitorConfig] = None, gateway: Optional[ResourceGateway] = None) -> FastAPI:
    """Build the FastAPI app; config defaults to load_config() and gateway to the HTTP client."""
    app = FastAPI(
        title="Resource Monitor API",
        description=(
            "Backend API for monitoring externally-hosted compute resources. "
            "Samples metrics per resource on a schedule, keeps a 30-day in-memory history, "
            "and runs condition -> action rules with per-rule cooldowns."
        ),
        version="0.1.0",
        openapi_tags=openapi_tags,
    )

    cfg = config or load_config()
    init_state(app, cfg, gateway)

    @app.on_event("startup")
    async def _on_startup() -> None:
        """Startup hook: start the metrics and rule loops for the session owner."""
        state = get_state(app)
        if state.config.loops_enabled:
            state.session.start()
        else:
            logger.info("Background loops disabled (MONITOR_LOOPS_ENABLED=false)")

    @app.on_event("shutdown")
    async def _on_shutdown() -> None:
        """Shutdown hook: stop loops, cancel pending refreshes, clear state and close the gateway client."""
        state = get_state(app)
        try:
            await state.session.stop()
        except Exception:
            logger.exception("Error stopping monitor session")
        try:
            await state.gateway.aclose()
        except Exception:
            logger.exception("Error closing gateway client")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cfg.cors_allow_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(resources.router)
    app.include_router(metrics.router)
    app.include_router(rules.router)
    return app
