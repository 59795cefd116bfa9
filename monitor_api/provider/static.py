"""In-memory TelemetryProvider used by the test suite.

Never used as a fallback when the real provider fails.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from ..classification.liveness import as_utc
from ..errors import ProviderUnavailable
from .base import (
    ProviderGatewayRecord,
    ProviderReading,
    ProviderSensorRecord,
    ReadingsBySensor,
)


class StaticTelemetryProvider:
    def __init__(
        self,
        sensors: Optional[Iterable[ProviderSensorRecord]] = None,
        gateways: Optional[Iterable[ProviderGatewayRecord]] = None,
        readings: Optional[Dict[str, Iterable[ProviderReading]]] = None,
    ):
        self.sensors: Dict[str, ProviderSensorRecord] = {s.id: s for s in sensors or ()}
        self.gateways: Dict[str, ProviderGatewayRecord] = {g.id: g for g in gateways or ()}
        self.readings: Dict[str, List[ProviderReading]] = {
            sensor_id: list(items) for sensor_id, items in (readings or {}).items()
        }
        self.fail_with: Optional[str] = None
        self.calls: List[Tuple[str, tuple]] = []

    def add_reading(self, sensor_id: str, reading: ProviderReading) -> None:
        self.readings.setdefault(sensor_id, []).append(reading)

    def _check(self, operation: str) -> None:
        if self.fail_with is not None:
            raise ProviderUnavailable(operation, self.fail_with)

    async def list_sensors(self) -> Dict[str, ProviderSensorRecord]:
        self.calls.append(("list_sensors", ()))
        self._check("list_sensors")
        return dict(self.sensors)

    async def list_gateways(self) -> Dict[str, ProviderGatewayRecord]:
        self.calls.append(("list_gateways", ()))
        self._check("list_gateways")
        return dict(self.gateways)

    async def get_readings(
        self,
        sensor_ids: Iterable[str],
        start: datetime,
        stop: datetime,
    ) -> ReadingsBySensor:
        ids = tuple(sensor_ids)
        self.calls.append(("get_readings", ids))
        self._check("get_readings")

        lo, hi = as_utc(start), as_utc(stop)
        result: ReadingsBySensor = {}
        for sensor_id in ids:
            in_window = {
                r.observed: r
                for r in self.readings.get(sensor_id, [])
                if lo <= as_utc(r.observed) <= hi
            }
            if in_window:
                result[sensor_id] = in_window
        return result
