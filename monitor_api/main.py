"""FastAPI surface of the cold-storage monitor.

Run with the settings-driven factory::

    uvicorn monitor_api.main:create_app_from_settings --factory
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from common.config import Settings, get_settings
from common.db import get_engine

from .endpoints import alerts, assignments, health, sensors
from .errors import MonitorError
from .provider.base import TelemetryProvider
from .provider.sensorpush import SensorPushProvider
from .services import build_services
from .store.repository import MonitorStore
from .store.setup import ensure_schema

logger = logging.getLogger(__name__)


async def _monitor_error_handler(request: Request, exc: MonitorError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("[API] %s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    else:
        logger.info("[API] %s %s -> %s", request.method, request.url.path, exc.code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message},
    )


def create_app(
    store: MonitorStore,
    provider: TelemetryProvider,
    settings: Optional[Settings] = None,
    *,
    lifespan=None,
) -> FastAPI:
    settings = settings or Settings()
    app = FastAPI(title="Cold Storage Monitor", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.services = build_services(store, provider, settings)

    app.add_exception_handler(MonitorError, _monitor_error_handler)

    app.include_router(health.router)
    app.include_router(sensors.router)
    app.include_router(alerts.router)
    app.include_router(assignments.router)
    return app


def create_app_from_settings() -> FastAPI:
    settings = get_settings()
    engine = get_engine(settings)
    ensure_schema(engine)
    provider = SensorPushProvider.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            await provider.aclose()
            engine.dispose()

    if not settings.api_key:
        logger.warning("[SECURITY WARNING] MONITOR_API_KEY not set - API key check disabled")
    return create_app(MonitorStore(engine), provider, settings, lifespan=lifespan)
