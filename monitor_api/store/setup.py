"""Schema bootstrap for the monitor store."""

from __future__ import annotations

import logging

from sqlalchemy.engine import Engine

from .tables import metadata

logger = logging.getLogger(__name__)


def ensure_schema(engine: Engine) -> None:
    """Create tables and indexes if they don't exist. Safe to call multiple times."""
    logger.info("[DB] Ensuring monitor schema exists")
    metadata.create_all(engine, checkfirst=True)
    logger.info("[DB] Monitor schema ready (%d tables)", len(metadata.tables))
