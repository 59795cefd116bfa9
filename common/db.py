from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url

from .config import Settings, get_settings


logger = logging.getLogger(__name__)


def _use_immediate_transactions(engine: Engine) -> None:
    # pysqlite difiere el BEGIN; con BEGIN IMMEDIATE el lock de escritura
    # se toma al inicio y los escritores concurrentes esperan el timeout.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, **kwargs) -> Engine:
    """Crea el engine sin probar la conexión (tests y jobs que ya la prueban)."""
    connect_args = kwargs.pop("connect_args", {})
    is_sqlite = url.startswith("sqlite")
    if is_sqlite:
        # SQLite serializa escrituras; esperar al lock en vez de fallar.
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", 30)
    engine = create_engine(url, pool_pre_ping=True, future=True, connect_args=connect_args, **kwargs)
    if is_sqlite:
        _use_immediate_transactions(engine)
    return engine


def get_engine(settings: Optional[Settings] = None) -> Engine:
    settings = settings or get_settings()
    url = make_url(settings.database_url)

    # Log de parámetros de conexión (sin contraseña)
    logger.info(
        "[DB] Creando engine driver=%s host=%s port=%s db=%s user=%s",
        url.drivername,
        url.host,
        url.port,
        url.database,
        url.username,
    )

    engine = build_engine(settings.database_url)

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("[DB] Conexión verificada")
    except Exception:
        logger.exception("[DB] Falló la verificación de conexión")

    return engine
