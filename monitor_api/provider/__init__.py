from .base import (
    ProviderGatewayRecord,
    ProviderReading,
    ProviderSensorRecord,
    TelemetryProvider,
)

__all__ = [
    "ProviderGatewayRecord",
    "ProviderReading",
    "ProviderSensorRecord",
    "TelemetryProvider",
]
