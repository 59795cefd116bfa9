"""Gateway (hub) overview: every provider gateway with its site and health."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

from common.config import Settings

from ..auth.authorization import Caller
from ..auth.scope import AccessScopeFilter
from ..classification.fallback import FallbackKind, metric_or_fallback
from ..classification.liveness import Liveness, as_utc, classify
from ..errors import ProviderUnavailable
from ..identity.resolver import SiteCodeIndex
from ..infrastructure.concurrency import gather_or_cancel, run_blocking
from ..provider.base import TelemetryProvider
from ..schemas import GatewayOverview, GatewayStatus

logger = logging.getLogger(__name__)


class GatewayOverviewService:
    def __init__(
        self,
        store,
        provider: TelemetryProvider,
        scope_filter: AccessScopeFilter,
        settings: Optional[Settings] = None,
    ):
        self._store = store
        self._provider = provider
        self._scope = scope_filter
        self._timeout = (settings or Settings()).provider_timeout_seconds

    async def gateway_overview(self, caller: Caller, now: Optional[datetime] = None) -> GatewayOverview:
        """Gateways visible to the caller.

        Gateways whose name matches no site are shown to administrators only.
        """
        now = as_utc(now) if now is not None else datetime.now(timezone.utc)
        scope = await run_blocking(self._scope.visible_sites, caller)
        if scope.is_empty:
            return GatewayOverview()

        index = SiteCodeIndex(await run_blocking(self._store.list_sites))
        try:
            sensors, gateways = await asyncio.wait_for(
                gather_or_cancel(self._provider.list_sensors(), self._provider.list_gateways()),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise ProviderUnavailable("list_devices", f"timed out after {self._timeout:g}s") from e

        signals_by_site: Dict[str, List[float]] = defaultdict(list)
        for sensor in sensors.values():
            site = index.resolve(sensor.name)
            if site is None:
                continue
            signals_by_site[site.id].append(
                metric_or_fallback(sensor.signal, sensor.id, FallbackKind.SIGNAL)
            )

        statuses: List[GatewayStatus] = []
        for gateway in gateways.values():
            site = index.resolve(gateway.name)
            if site is None and not scope.is_all:
                continue
            if site is not None and not scope.allows(site.id):
                continue

            site_signals = signals_by_site.get(site.id, []) if site is not None else []
            statuses.append(
                GatewayStatus(
                    id=gateway.id,
                    name=gateway.name,
                    site=site,
                    status=classify(gateway.last_seen, now),
                    last_seen=gateway.last_seen,
                    signal=metric_or_fallback(gateway.signal, gateway.id, FallbackKind.GATEWAY_SIGNAL),
                    average_sensor_signal=(
                        round(sum(site_signals) / len(site_signals), 1) if site_signals else None
                    ),
                    connected_sensors=len(site_signals),
                    firmware_version=gateway.version,
                )
            )

        statuses.sort(key=lambda g: (g.site.name if g.site else "~", g.name))
        overview = GatewayOverview(
            gateways=statuses,
            total=len(statuses),
            online=sum(1 for g in statuses if g.status == Liveness.ONLINE),
            warning=sum(1 for g in statuses if g.status == Liveness.WARNING),
            offline=sum(1 for g in statuses if g.status == Liveness.OFFLINE),
            total_sensors=sum(g.connected_sensors for g in statuses),
        )
        logger.info(
            "[GATEWAYS] %d gateways (%d online, %d warning, %d offline)",
            overview.total, overview.online, overview.warning, overview.offline,
        )
        return overview
