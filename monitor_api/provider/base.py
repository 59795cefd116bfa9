from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, Optional, Protocol


@dataclass(frozen=True)
class ProviderSensorRecord:
    """Sensor tal como lo expone el proveedor; nunca se persiste."""

    id: str
    name: str
    last_seen: Optional[datetime] = None
    battery_percentage: Optional[float] = None
    signal: Optional[float] = None


@dataclass(frozen=True)
class ProviderGatewayRecord:
    id: str
    name: str
    last_seen: Optional[datetime] = None
    signal: Optional[float] = None
    version: Optional[str] = None


@dataclass(frozen=True)
class ProviderReading:
    observed: datetime
    temperature: Optional[float] = None
    humidity: Optional[float] = None


ReadingsBySensor = Dict[str, Dict[datetime, ProviderReading]]


class TelemetryProvider(Protocol):
    """Read operations the core needs from the telemetry provider.

    Implementations fail wholesale with ``ProviderUnavailable``; they never
    return an empty result to signal an error.
    """

    async def list_sensors(self) -> Dict[str, ProviderSensorRecord]:
        ...

    async def list_gateways(self) -> Dict[str, ProviderGatewayRecord]:
        ...

    async def get_readings(
        self,
        sensor_ids: Iterable[str],
        start: datetime,
        stop: datetime,
    ) -> ReadingsBySensor:
        """Readings per sensor id, keyed by observation time, within [start, stop]."""
        ...
