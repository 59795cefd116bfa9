"""Clasificación de salud de dispositivos y métricas de respaldo."""

from .fallback import FallbackKind, fallback, metric_or_fallback
from .liveness import Liveness, classify

__all__ = [
    "FallbackKind",
    "Liveness",
    "classify",
    "fallback",
    "metric_or_fallback",
]
