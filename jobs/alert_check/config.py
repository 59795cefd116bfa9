"""Alert check job configuration."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RunnerConfig:
    """Loop settings for the alert check job."""
    interval_seconds: float
    once: bool
