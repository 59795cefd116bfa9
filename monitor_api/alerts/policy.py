"""Per-site threshold policy and breach severity.

A reading outside ``[min_value, max_value]`` is a breach. Its magnitude is
the distance past the violated bound; at or beyond ``critical_margin`` the
alert is critical, otherwise warning.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Optional

from common.config import Settings

from ..schemas import AlertType, Severity

METRIC_TEMPERATURE = AlertType.TEMPERATURE.value
METRIC_HUMIDITY = AlertType.HUMIDITY.value

_UNITS = {METRIC_TEMPERATURE: "°C", METRIC_HUMIDITY: "%"}


@dataclass(frozen=True)
class MetricThreshold:
    metric: str
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    critical_margin: float = 0.0

    def __post_init__(self) -> None:
        if (
            self.min_value is not None
            and self.max_value is not None
            and self.min_value > self.max_value
        ):
            raise ValueError(
                f"{self.metric}: min_value {self.min_value} > max_value {self.max_value}"
            )
        if self.critical_margin < 0:
            raise ValueError(f"{self.metric}: critical_margin must be >= 0")


@dataclass(frozen=True)
class Breach:
    metric: str
    value: float
    threshold: float
    direction: str  # "above" | "below"
    magnitude: float

    @property
    def unit(self) -> str:
        return _UNITS.get(self.metric, "")

    def describe(self) -> str:
        bound = "maximum" if self.direction == "above" else "minimum"
        verb = "exceeded" if self.direction == "above" else "fell below"
        label = self.metric.capitalize()
        return (
            f"{label} {verb} {bound} threshold: "
            f"{self.value:g}{self.unit} (threshold {self.threshold:g}{self.unit})"
        )


def find_breach(threshold: MetricThreshold, value: Optional[float]) -> Optional[Breach]:
    if value is None:
        return None
    if threshold.max_value is not None and value > threshold.max_value:
        return Breach(
            metric=threshold.metric,
            value=value,
            threshold=threshold.max_value,
            direction="above",
            magnitude=value - threshold.max_value,
        )
    if threshold.min_value is not None and value < threshold.min_value:
        return Breach(
            metric=threshold.metric,
            value=value,
            threshold=threshold.min_value,
            direction="below",
            magnitude=threshold.min_value - value,
        )
    return None


@dataclass(frozen=True)
class ThresholdPolicy:
    site_id: str
    thresholds: Dict[str, MetricThreshold] = field(default_factory=dict)
    alert_on_offline: bool = True

    @classmethod
    def default(cls, site_id: str, settings: Settings) -> "ThresholdPolicy":
        return cls(
            site_id=site_id,
            thresholds={
                METRIC_TEMPERATURE: MetricThreshold(
                    METRIC_TEMPERATURE,
                    settings.temp_min_c,
                    settings.temp_max_c,
                    settings.temp_critical_margin_c,
                ),
                METRIC_HUMIDITY: MetricThreshold(
                    METRIC_HUMIDITY,
                    settings.humidity_min,
                    settings.humidity_max,
                    settings.humidity_critical_margin,
                ),
            },
            alert_on_offline=settings.alert_on_offline,
        )

    def with_overrides(self, overrides: Iterable[MetricThreshold]) -> "ThresholdPolicy":
        merged = dict(self.thresholds)
        for threshold in overrides:
            merged[threshold.metric] = threshold
        return replace(self, thresholds=merged)

    def threshold_for(self, metric: str) -> Optional[MetricThreshold]:
        return self.thresholds.get(metric)

    def severity_for(self, breach: Breach) -> Severity:
        threshold = self.thresholds.get(breach.metric)
        margin = threshold.critical_margin if threshold is not None else 0.0
        if breach.magnitude >= margin:
            return Severity.CRITICAL
        return Severity.WARNING
