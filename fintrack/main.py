from __future__ import annotations

import uvicorn
from prometheus_fastapi_instrumentator import Instrumentator

from . import create_app
from .core.config import settings
from .core.logging import configure_logging

configure_logging(settings.LOG_LEVEL, service=settings.APP_NAME)
app = create_app()
Instrumentator(excluded_handlers=["/static.*", "/metrics"]).instrument(app).expose(app, include_in_schema=False)


def run() -> None:
    uvicorn.run("fintrack.main:app", host=settings.HOST, port=settings.PORT, log_config=None)
