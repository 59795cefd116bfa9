"""Liveness classification from last-seen recency.

Same tiers for sensors and gateways. The thresholds are fixed constants,
not configuration.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

ONLINE_WITHIN_MINUTES = 10
WARNING_WITHIN_MINUTES = 60


class Liveness(str, Enum):
    ONLINE = "online"
    WARNING = "warning"
    OFFLINE = "offline"


def as_utc(ts: datetime) -> datetime:
    """Naive datetimes are taken as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def minutes_since(last_seen: datetime, now: datetime) -> float:
    return (as_utc(now) - as_utc(last_seen)).total_seconds() / 60.0


def classify(last_seen: Optional[datetime], now: datetime) -> Liveness:
    """Pure function of its inputs; ``now`` is injected by the caller."""
    if last_seen is None:
        return Liveness.OFFLINE

    minutes_ago = minutes_since(last_seen, now)
    if minutes_ago < ONLINE_WITHIN_MINUTES:
        return Liveness.ONLINE
    if minutes_ago < WARNING_WITHIN_MINUTES:
        return Liveness.WARNING
    return Liveness.OFFLINE
