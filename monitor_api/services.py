"""Wiring of the monitoring core around one store and one provider."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from common.config import Settings

from .alerts.engine import AlertEngine
from .assignments.service import AssignmentService
from .auth.scope import AccessScopeFilter
from .infrastructure.audit.audit_logger import AuditLogger
from .provider.base import TelemetryProvider
from .store.repository import MonitorStore
from .telemetry.aggregator import TelemetryAggregator
from .telemetry.gateways import GatewayOverviewService


@dataclass(frozen=True)
class MonitorServices:
    store: MonitorStore
    provider: TelemetryProvider
    settings: Settings
    scope: AccessScopeFilter
    audit: AuditLogger
    aggregator: TelemetryAggregator
    gateways: GatewayOverviewService
    alerts: AlertEngine
    assignments: AssignmentService


def build_services(
    store: MonitorStore,
    provider: TelemetryProvider,
    settings: Optional[Settings] = None,
) -> MonitorServices:
    settings = settings or Settings()
    scope = AccessScopeFilter(store)
    audit = AuditLogger(store)
    aggregator = TelemetryAggregator(store, provider, scope, settings)
    return MonitorServices(
        store=store,
        provider=provider,
        settings=settings,
        scope=scope,
        audit=audit,
        aggregator=aggregator,
        gateways=GatewayOverviewService(store, provider, scope, settings),
        alerts=AlertEngine(store, scope, audit, settings, aggregator=aggregator),
        assignments=AssignmentService(store, provider, scope, audit),
    )
