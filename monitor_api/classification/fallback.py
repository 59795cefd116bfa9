"""Deterministic fallback values for metadata the provider omits.

Battery and signal strength are not always reported; the dashboard still
needs a stable value per device. Values are derived from the device id
only (no random state), so they survive restarts. Never applied to
temperature or humidity.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Optional, Union

_LCG_MULTIPLIER = 9301
_LCG_INCREMENT = 49297
_LCG_MODULUS = 233280


class FallbackKind(str, Enum):
    BATTERY = "battery"
    SIGNAL = "signal"
    GATEWAY_SIGNAL = "gateway_signal"


def seed_for(device_id: str) -> int:
    return sum(ord(ch) for ch in device_id)


def unit_random(device_id: str) -> float:
    """Single LCG step over the id seed, normalized to [0, 1)."""
    seed = seed_for(device_id)
    return ((seed * _LCG_MULTIPLIER + _LCG_INCREMENT) % _LCG_MODULUS) / _LCG_MODULUS


def fallback(device_id: str, kind: FallbackKind) -> int:
    r = unit_random(device_id)
    if kind == FallbackKind.BATTERY:
        return math.floor(15 + r * 80)  # 15..95 %
    if kind == FallbackKind.SIGNAL:
        return math.floor(-45 - r * 40)  # -45..-85 dBm
    if kind == FallbackKind.GATEWAY_SIGNAL:
        return math.floor(-30 - r * 30)  # -30..-60 dBm
    raise ValueError(f"Unknown fallback kind: {kind!r}")


def metric_or_fallback(
    value: Optional[Union[int, float]],
    device_id: str,
    kind: FallbackKind,
) -> Union[int, float]:
    if value is not None:
        return value
    return fallback(device_id, kind)
