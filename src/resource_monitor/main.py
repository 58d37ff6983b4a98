from __future__ import annotations

import logging

from src.resource_monitor.app import create_app

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# ASGI entrypoint: uvicorn src.resource_monitor.main:app
app = create_app()
