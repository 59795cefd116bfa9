"""Health and readiness endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from . import get_services
from ..services import MonitorServices

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Liveness probe; always ok while the process runs."""
    return {"status": "ok"}


@router.get("/ready")
def ready(services: MonitorServices = Depends(get_services)):
    """Readiness probe; checks DB connectivity."""
    try:
        with services.store.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("[DB] Readiness probe failed: %s", type(e).__name__)
        raise HTTPException(status_code=503, detail="not ready") from e
    return {"status": "ready"}
