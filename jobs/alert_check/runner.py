"""One iteration of the scheduled sensor check."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from sqlalchemy.engine import Engine

from common.config import Settings
from monitor_api.alerts.engine import AlertEngine
from monitor_api.auth.authorization import Caller
from monitor_api.auth.scope import AccessScopeFilter
from monitor_api.infrastructure.audit.audit_logger import AuditLogger
from monitor_api.provider.base import TelemetryProvider
from monitor_api.provider.sensorpush import SensorPushProvider
from monitor_api.schemas import CheckResult
from monitor_api.store.repository import MonitorStore
from monitor_api.telemetry.aggregator import TelemetryAggregator

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[Settings], TelemetryProvider]


async def run_once(
    engine: Engine,
    settings: Settings,
    provider_factory: Optional[ProviderFactory] = None,
) -> CheckResult:
    """Evaluate every assigned sensor as the system principal.

    A fresh provider client is built per iteration and closed afterwards.
    """
    provider = (provider_factory or SensorPushProvider.from_settings)(settings)
    try:
        store = MonitorStore(engine)
        scope = AccessScopeFilter(store)
        aggregator = TelemetryAggregator(store, provider, scope, settings)
        alert_engine = AlertEngine(store, scope, AuditLogger(store), settings, aggregator=aggregator)
        result = await alert_engine.check_all_sensors(Caller.system())
    finally:
        aclose = getattr(provider, "aclose", None)
        if aclose is not None:
            await aclose()

    logger.info(
        "[JOB] Alert check done: evaluated=%d created=%d",
        result.evaluated, len(result.created),
    )
    for alert in result.created:
        logger.info(
            "[JOB]   %s %s alert site=%s sensor=%s: %s",
            alert.severity.value, alert.type, alert.site_id, alert.sensor_id, alert.message,
        )
    return result
