"""Telemetry Aggregator: provider data joined with internal assignments.

Flow per call:
1. visible sites for the caller
2. active assignments restricted to those sites (none -> empty result)
3. sensors + gateways from the provider, concurrently
4. readings of the assigned sensors within the window
5. one EnrichedSensorView per assignment

Provider failures surface as ``ProviderUnavailable``. Temperature and
humidity are never fabricated; only battery/signal get fallbacks.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Dict, Iterable, List, Optional, Sequence, TypeVar

from common.config import Settings

from ..auth.authorization import Caller
from ..auth.scope import AccessScopeFilter, SiteScope
from ..classification.fallback import FallbackKind, metric_or_fallback
from ..classification.liveness import Liveness, as_utc, classify
from ..errors import ProviderUnavailable
from ..identity.resolver import resolve_gateway
from ..infrastructure.concurrency import gather_or_cancel, run_blocking
from ..provider.base import (
    ProviderGatewayRecord,
    ProviderReading,
    ProviderSensorRecord,
    TelemetryProvider,
)
from ..schemas import EnrichedSensorView, GatewayRef, SensorAssignment, Site

logger = logging.getLogger(__name__)

T = TypeVar("T")


def latest_reading(readings: Optional[Dict[datetime, ProviderReading]]) -> Optional[ProviderReading]:
    """Most recent reading by observation time."""
    if not readings:
        return None
    latest_ts = max(readings, key=as_utc)
    return readings[latest_ts]


def dedupe_assignments(assignments: Sequence[SensorAssignment]) -> List[SensorAssignment]:
    """One assignment per provider sensor; the most recently created wins."""
    by_sensor: Dict[str, SensorAssignment] = {}
    for assignment in assignments:
        current = by_sensor.get(assignment.provider_sensor_id)
        if current is not None:
            logger.warning(
                "[AGG] Duplicate active assignments for sensor %s (%s, %s); using the newest",
                assignment.provider_sensor_id, current.id, assignment.id,
            )
            if as_utc(assignment.created_at) < as_utc(current.created_at):
                continue
        by_sensor[assignment.provider_sensor_id] = assignment
    return list(by_sensor.values())


def gateway_ref(gateway: Optional[ProviderGatewayRecord], now: datetime) -> Optional[GatewayRef]:
    if gateway is None:
        return None
    return GatewayRef(
        id=gateway.id,
        name=gateway.name,
        status=classify(gateway.last_seen, now),
        last_seen=gateway.last_seen,
    )


def sensor_status(
    record: Optional[ProviderSensorRecord],
    reading: Optional[ProviderReading],
    now: datetime,
) -> Liveness:
    """No reading in the window means offline, whatever the gateway says."""
    if reading is None:
        return Liveness.OFFLINE
    last_seen = as_utc(reading.observed)
    if record is not None and record.last_seen is not None:
        last_seen = max(last_seen, as_utc(record.last_seen))
    return classify(last_seen, now)


def enrich(
    assignment: SensorAssignment,
    record: Optional[ProviderSensorRecord],
    readings: Optional[Dict[datetime, ProviderReading]],
    site: Optional[Site],
    gateways: Iterable[ProviderGatewayRecord],
    now: datetime,
) -> EnrichedSensorView:
    sensor_id = assignment.provider_sensor_id
    reading = latest_reading(readings)
    return EnrichedSensorView(
        id=sensor_id,
        assignment_id=assignment.id,
        name=assignment.sensor_name,
        location=assignment.location_type,
        site=site,
        temperature=reading.temperature if reading else None,
        humidity=reading.humidity if reading else None,
        last_reading_at=reading.observed if reading else None,
        status=sensor_status(record, reading, now),
        battery=metric_or_fallback(
            record.battery_percentage if record else None, sensor_id, FallbackKind.BATTERY
        ),
        signal=metric_or_fallback(record.signal if record else None, sensor_id, FallbackKind.SIGNAL),
        gateway=gateway_ref(resolve_gateway(site, gateways), now),
    )


class TelemetryAggregator:
    def __init__(
        self,
        store,
        provider: TelemetryProvider,
        scope_filter: AccessScopeFilter,
        settings: Optional[Settings] = None,
    ):
        settings = settings or Settings()
        self._store = store
        self._provider = provider
        self._scope = scope_filter
        self._window = timedelta(minutes=settings.readings_window_minutes)
        self._timeout = settings.provider_timeout_seconds

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            logger.warning("[AGG] Provider %s timed out after %.1fs", operation, self._timeout)
            raise ProviderUnavailable(operation, f"timed out after {self._timeout:g}s") from e

    async def aggregate(self, caller: Caller, now: Optional[datetime] = None) -> List[EnrichedSensorView]:
        now = as_utc(now) if now is not None else datetime.now(timezone.utc)
        scope = await run_blocking(self._scope.visible_sites, caller)
        return await self.aggregate_scope(scope, now)

    async def aggregate_scope(self, scope: SiteScope, now: datetime) -> List[EnrichedSensorView]:
        if scope.is_empty:
            return []

        assignments = await run_blocking(self._store.list_active_assignments, scope.site_ids)
        if not assignments:
            logger.info("[AGG] No active assignments in scope %r", scope)
            return []
        assignments = dedupe_assignments(assignments)

        site_rows = await run_blocking(
            self._store.list_sites, frozenset(a.site_id for a in assignments)
        )
        sites = {s.id: s for s in site_rows}

        sensors, gateways = await self._call(
            "list_devices",
            gather_or_cancel(self._provider.list_sensors(), self._provider.list_gateways()),
        )

        sensor_ids = [a.provider_sensor_id for a in assignments]
        readings = await self._call(
            "get_readings",
            self._provider.get_readings(sensor_ids, now - self._window, now),
        )

        gateway_list = list(gateways.values())
        views: List[EnrichedSensorView] = []
        for assignment in assignments:
            sensor_id = assignment.provider_sensor_id
            site = sites.get(assignment.site_id)
            record = sensors.get(sensor_id)
            if record is None:
                logger.debug("[AGG] Assigned sensor %s not reported by provider", sensor_id)
            try:
                views.append(
                    enrich(assignment, record, readings.get(sensor_id), site, gateway_list, now)
                )
            except (TypeError, ValueError):
                # One bad record must not sink the whole aggregation.
                logger.exception("[AGG] Malformed provider data for sensor %s", sensor_id)
                views.append(enrich(assignment, None, None, site, (), now))

        logger.info(
            "[AGG] Aggregated %d sensors (%d online) from %d provider sensors, %d gateways",
            len(views),
            sum(1 for v in views if v.status == Liveness.ONLINE),
            len(sensors),
            len(gateways),
        )
        return views
