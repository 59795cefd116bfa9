"""SensorPush REST client.

Constructed explicitly by whoever runs an aggregation and passed in; there
is no module-level client. The access token is obtained elsewhere and
handed to the constructor.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

import httpx

from common.config import Settings

from ..errors import ProviderUnavailable
from .base import (
    ProviderGatewayRecord,
    ProviderReading,
    ProviderSensorRecord,
    ReadingsBySensor,
)

logger = logging.getLogger(__name__)

# Upper bound of samples per sensor in one /samples call.
DEFAULT_SAMPLE_LIMIT = 120


def parse_timestamp(raw: Any) -> Optional[datetime]:
    """ISO-8601 strings or epoch numbers (seconds or milliseconds) -> aware UTC."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, (int, float)):
        seconds = raw / 1000.0 if raw > 1e11 else float(raw)
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(raw, str):
        try:
            parsed = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
        except ValueError:
            logger.debug("[PROVIDER] Unparseable timestamp %r", raw)
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    return None


def _as_float(raw: Any) -> Optional[float]:
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _fahrenheit_to_celsius(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return round((value - 32.0) * 5.0 / 9.0, 2)


def _unwrap(payload: Any, key: str) -> Dict[str, Any]:
    # Some account types wrap the map as {"sensors": {...}}; others return it bare.
    if isinstance(payload, dict) and isinstance(payload.get(key), dict):
        return payload[key]
    if isinstance(payload, dict):
        return payload
    raise ValueError(f"expected a JSON object, got {type(payload).__name__}")


class SensorPushProvider:
    """TelemetryProvider backed by the SensorPush cloud API."""

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str],
        *,
        timeout_seconds: float = 10.0,
        temperature_unit: str = "F",
        client: Optional[httpx.AsyncClient] = None,
        sample_limit: int = DEFAULT_SAMPLE_LIMIT,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout_seconds)
        self._base_url = base_url.rstrip("/")
        self._access_token = access_token
        self._fahrenheit = temperature_unit.strip().upper() == "F"
        self._sample_limit = sample_limit

    @classmethod
    def from_settings(cls, settings: Settings) -> "SensorPushProvider":
        return cls(
            settings.sensorpush_base_url,
            settings.sensorpush_access_token,
            timeout_seconds=settings.provider_timeout_seconds,
            temperature_unit=settings.sensorpush_temperature_unit,
        )

    async def __aenter__(self) -> "SensorPushProvider":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post(self, path: str, body: Dict[str, Any], operation: str) -> Any:
        headers = {"Accept": "application/json"}
        if self._access_token:
            headers["Authorization"] = self._access_token
        try:
            resp = await self._client.post(f"{self._base_url}{path}", json=body, headers=headers)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning("[PROVIDER] %s failed status=%s", operation, e.response.status_code)
            raise ProviderUnavailable(operation, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.warning("[PROVIDER] %s failed: %s", operation, type(e).__name__)
            raise ProviderUnavailable(operation, type(e).__name__) from e
        except ValueError as e:
            logger.warning("[PROVIDER] %s returned a non-JSON body", operation)
            raise ProviderUnavailable(operation, "invalid JSON body") from e

    async def list_sensors(self) -> Dict[str, ProviderSensorRecord]:
        payload = await self._post("/devices/sensors", {}, "list_sensors")
        try:
            raw_sensors = _unwrap(payload, "sensors")
        except ValueError as e:
            raise ProviderUnavailable("list_sensors", str(e)) from e

        sensors: Dict[str, ProviderSensorRecord] = {}
        for sensor_id, raw in raw_sensors.items():
            if not isinstance(raw, dict):
                continue
            battery = raw.get("battery")
            battery_pct = battery.get("percentage") if isinstance(battery, dict) else raw.get("battery_percentage")
            sensors[str(sensor_id)] = ProviderSensorRecord(
                id=str(sensor_id),
                name=str(raw.get("name") or f"Sensor {str(sensor_id)[-4:]}"),
                last_seen=parse_timestamp(raw.get("last_seen")),
                battery_percentage=_as_float(battery_pct),
                signal=_as_float(raw.get("signal", raw.get("rssi"))),
            )
        logger.debug("[PROVIDER] list_sensors -> %d records", len(sensors))
        return sensors

    async def list_gateways(self) -> Dict[str, ProviderGatewayRecord]:
        payload = await self._post("/devices/gateways", {}, "list_gateways")
        try:
            raw_gateways = _unwrap(payload, "gateways")
        except ValueError as e:
            raise ProviderUnavailable("list_gateways", str(e)) from e

        gateways: Dict[str, ProviderGatewayRecord] = {}
        for gateway_id, raw in raw_gateways.items():
            if not isinstance(raw, dict):
                continue
            gateways[str(gateway_id)] = ProviderGatewayRecord(
                id=str(gateway_id),
                name=str(raw.get("name") or f"Gateway {str(gateway_id)[-4:]}"),
                last_seen=parse_timestamp(raw.get("last_seen")),
                signal=_as_float(raw.get("signal")),
                version=raw.get("version"),
            )
        logger.debug("[PROVIDER] list_gateways -> %d records", len(gateways))
        return gateways

    async def get_readings(
        self,
        sensor_ids: Iterable[str],
        start: datetime,
        stop: datetime,
    ) -> ReadingsBySensor:
        ids = list(sensor_ids)
        if not ids:
            return {}

        body = {
            "sensors": ids,
            "startTime": start.astimezone(timezone.utc).isoformat(),
            "stopTime": stop.astimezone(timezone.utc).isoformat(),
            "limit": self._sample_limit,
        }
        payload = await self._post("/samples", body, "get_readings")
        try:
            raw_samples = _unwrap(payload, "sensors")
        except ValueError as e:
            raise ProviderUnavailable("get_readings", str(e)) from e

        readings: ReadingsBySensor = {}
        for sensor_id, samples in raw_samples.items():
            if isinstance(samples, dict):
                # {timestamp: {temperature, humidity}} form
                samples = [dict(v, observed=k) for k, v in samples.items() if isinstance(v, dict)]
            if not isinstance(samples, list):
                continue

            by_time: Dict[datetime, ProviderReading] = {}
            for sample in samples:
                if not isinstance(sample, dict):
                    continue
                observed = parse_timestamp(sample.get("observed"))
                if observed is None:
                    continue
                temperature = _as_float(sample.get("temperature"))
                if self._fahrenheit:
                    temperature = _fahrenheit_to_celsius(temperature)
                by_time[observed] = ProviderReading(
                    observed=observed,
                    temperature=temperature,
                    humidity=_as_float(sample.get("humidity")),
                )
            readings[str(sensor_id)] = by_time
        return readings
