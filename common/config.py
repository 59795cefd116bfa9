from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _default_env_file() -> str:
    return str(Path.cwd() / ".env")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_optional(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./monitor.db"

    sensorpush_base_url: str = "https://api.sensorpush.com/api/v1"
    sensorpush_access_token: Optional[str] = None
    sensorpush_temperature_unit: str = "F"
    provider_timeout_seconds: float = 10.0

    readings_window_minutes: int = 60

    temp_min_c: float = 2.0
    temp_max_c: float = 8.0
    temp_critical_margin_c: float = 2.0
    humidity_min: float = 20.0
    humidity_max: float = 80.0
    humidity_critical_margin: float = 10.0
    alert_on_offline: bool = True

    alert_check_interval_seconds: float = 300.0

    api_key: Optional[str] = None


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("MONITOR_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./monitor.db"),
        sensorpush_base_url=os.getenv("SENSORPUSH_BASE_URL", "https://api.sensorpush.com/api/v1"),
        sensorpush_access_token=_env_optional("SENSORPUSH_ACCESS_TOKEN"),
        sensorpush_temperature_unit=os.getenv("SENSORPUSH_TEMPERATURE_UNIT", "F"),
        provider_timeout_seconds=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10")),
        readings_window_minutes=int(os.getenv("READINGS_WINDOW_MINUTES", "60")),
        temp_min_c=float(os.getenv("TEMP_MIN_C", "2.0")),
        temp_max_c=float(os.getenv("TEMP_MAX_C", "8.0")),
        temp_critical_margin_c=float(os.getenv("TEMP_CRITICAL_MARGIN_C", "2.0")),
        humidity_min=float(os.getenv("HUMIDITY_MIN", "20")),
        humidity_max=float(os.getenv("HUMIDITY_MAX", "80")),
        humidity_critical_margin=float(os.getenv("HUMIDITY_CRITICAL_MARGIN", "10")),
        alert_on_offline=_env_bool("ALERT_ON_OFFLINE", True),
        alert_check_interval_seconds=float(os.getenv("ALERT_CHECK_INTERVAL_SECONDS", "300")),
        api_key=_env_optional("MONITOR_API_KEY"),
    )
