"""Fixtures compartidos: store SQLite en archivo, sitios, callers y proveedor estático."""

from datetime import datetime, timedelta, timezone

import pytest

from common.config import Settings
from common.db import build_engine
from monitor_api.alerts.engine import AlertEngine
from monitor_api.auth.authorization import Caller, Role
from monitor_api.auth.scope import AccessScopeFilter
from monitor_api.infrastructure.audit.audit_logger import AuditLogger
from monitor_api.provider.base import ProviderGatewayRecord, ProviderReading, ProviderSensorRecord
from monitor_api.provider.static import StaticTelemetryProvider
from monitor_api.schemas import SensorAssignment, Site
from monitor_api.store.repository import MonitorStore
from monitor_api.store.setup import ensure_schema
from monitor_api.telemetry.aggregator import TelemetryAggregator

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

GFP = Site(id="site-gfp", code="GFP", name="Farmacia GFP Centro")
GSP = Site(id="site-gsp", code="GSP", name="Farmacia GSP Norte")


def make_assignment(
    assignment_id: str,
    sensor_id: str,
    site: Site,
    *,
    name: str = None,
    location: str = "main_storage",
    created_at: datetime = None,
) -> SensorAssignment:
    return SensorAssignment(
        id=assignment_id,
        provider_sensor_id=sensor_id,
        site_id=site.id,
        sensor_name=name or f"{site.code} Fridge {sensor_id}",
        location_type=location,
        assigned_by="admin-1",
        created_at=created_at or NOW - timedelta(days=1),
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url="sqlite://", provider_timeout_seconds=2.0)


@pytest.fixture
def engine(tmp_path):
    """SQLite en archivo: varias conexiones ven los mismos datos (tests de concurrencia)."""
    eng = build_engine(f"sqlite:///{tmp_path / 'monitor.db'}")
    ensure_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine) -> MonitorStore:
    s = MonitorStore(engine)
    s.create_site(GFP)
    s.create_site(GSP)
    return s


@pytest.fixture
def admin() -> Caller:
    return Caller("admin-1", Role.ADMIN)


@pytest.fixture
def gfp_user(store) -> Caller:
    store.grant_site("u1", GFP.id)
    return Caller("u1", Role.USER)


@pytest.fixture
def no_grants_user() -> Caller:
    return Caller("u-nobody", Role.USER)


@pytest.fixture
def scope_filter(store) -> AccessScopeFilter:
    return AccessScopeFilter(store)


@pytest.fixture
def audit(store) -> AuditLogger:
    return AuditLogger(store)


@pytest.fixture
def provider() -> StaticTelemetryProvider:
    """S1 en GFP (online, 12.5°C), S2 en GSP (online, en rango), un gateway por sitio."""
    return StaticTelemetryProvider(
        sensors=[
            ProviderSensorRecord("S1", "GFP Fridge 1", NOW - timedelta(minutes=5), 87.0, -60.0),
            ProviderSensorRecord("S2", "GSP Fridge 1", NOW - timedelta(minutes=2)),
        ],
        gateways=[
            ProviderGatewayRecord("G1", "GFP-Gateway", NOW - timedelta(minutes=1), -40.0, "1.2.0"),
            ProviderGatewayRecord("G2", "GSP Gateway", NOW - timedelta(minutes=30)),
        ],
        readings={
            "S1": [
                ProviderReading(NOW - timedelta(minutes=20), 7.0, 45.0),
                ProviderReading(NOW - timedelta(minutes=5), 12.5, 50.0),
            ],
            "S2": [ProviderReading(NOW - timedelta(minutes=2), 5.0, 40.0)],
        },
    )


@pytest.fixture
def assigned(store):
    """S1 → GFP, S2 → GSP."""
    a1 = make_assignment("a-s1", "S1", GFP, name="GFP Fridge 1")
    a2 = make_assignment("a-s2", "S2", GSP, name="GSP Fridge 1")
    store.create_assignment(a1)
    store.create_assignment(a2)
    return a1, a2


@pytest.fixture
def aggregator(store, provider, scope_filter, settings) -> TelemetryAggregator:
    return TelemetryAggregator(store, provider, scope_filter, settings)


@pytest.fixture
def alert_engine(store, scope_filter, audit, settings, aggregator, now) -> AlertEngine:
    return AlertEngine(store, scope_filter, audit, settings, aggregator=aggregator, clock=lambda: now)
