"""Relational schema of the monitor (SQLAlchemy Core).

Portable between PostgreSQL (production) and SQLite (tests, local runs).
"""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    MetaData,
    String,
    Table,
    Text,
    false,
)

metadata = MetaData()

sites = Table(
    "sites",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("code", String(16), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
)

sensor_assignments = Table(
    "sensor_assignments",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("provider_sensor_id", String(128), nullable=False, index=True),
    Column("site_id", String(64), ForeignKey("sites.id"), nullable=False, index=True),
    Column("sensor_name", String(255), nullable=False),
    Column("location_type", String(64), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("assigned_by", String(64), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

site_access_grants = Table(
    "site_access_grants",
    metadata,
    Column("user_id", String(64), primary_key=True),
    Column("site_id", String(64), ForeignKey("sites.id"), primary_key=True),
)

site_thresholds = Table(
    "site_thresholds",
    metadata,
    Column("site_id", String(64), ForeignKey("sites.id"), primary_key=True),
    Column("metric", String(32), primary_key=True),
    Column("min_value", Float, nullable=True),
    Column("max_value", Float, nullable=True),
    Column("critical_margin", Float, nullable=False),
)

alerts = Table(
    "alerts",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("sensor_id", String(128), nullable=True),
    Column("site_id", String(64), ForeignKey("sites.id"), nullable=False, index=True),
    Column("type", String(32), nullable=False),
    Column("severity", String(16), nullable=False),
    Column("message", Text, nullable=False),
    Column("current_value", Float, nullable=True),
    Column("threshold_value", Float, nullable=True),
    Column("location", String(255), nullable=True),
    Column("resolved", Boolean, nullable=False, default=False),
    Column("resolved_at", DateTime(timezone=True), nullable=True),
    Column("resolved_by", String(64), nullable=True),
    Column("resolved_note", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

# At most one unresolved alert per (sensor_id, type). NULL sensor ids
# (manual site-level alerts) never collide.
Index(
    "uq_alerts_open_sensor_type",
    alerts.c.sensor_id,
    alerts.c.type,
    unique=True,
    postgresql_where=alerts.c.resolved == false(),
    sqlite_where=alerts.c.resolved == false(),
)

audit_log = Table(
    "audit_log",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("user_id", String(64), nullable=False, index=True),
    Column("action", String(64), nullable=False),
    Column("resource", String(255), nullable=False, index=True),
    Column("details", JSON, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
)
