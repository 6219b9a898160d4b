"""Configuration loaded from environment variables and an optional .env file."""
import os
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from dotenv import load_dotenv

from .base import BaseConfiguration, ConfigurationError

T = TypeVar("T")

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _env(name: str, default: T, parse: Callable[[str], T]) -> T:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return parse(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {name}: {e}") from e


@dataclass
class EnvironmentConfiguration(BaseConfiguration):
    """Configuration read from ``PUMP_*`` and ``MONITOR_*`` variables."""

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "EnvironmentConfiguration":
        load_dotenv(dotenv_path)
        defaults = BaseConfiguration()

        config = cls(
            api_base_url=_env("PUMP_API_BASE_URL", defaults.api_base_url, str),
            api_token=os.getenv("PUMP_API_TOKEN") or None,
            api_timeout=_env("PUMP_API_TIMEOUT", defaults.api_timeout, float),
            mqtt_host=os.getenv("PUMP_MQTT_HOST") or None,
            mqtt_port=_env("PUMP_MQTT_PORT", defaults.mqtt_port, int),
            mqtt_topic_prefix=_env("PUMP_MQTT_TOPIC_PREFIX", defaults.mqtt_topic_prefix, str),
            mqtt_username=os.getenv("PUMP_MQTT_USERNAME") or None,
            mqtt_password=os.getenv("PUMP_MQTT_PASSWORD") or None,
            mqtt_tls=_env("PUMP_MQTT_TLS", defaults.mqtt_tls, _parse_bool),
            tracker_interval=_env("MONITOR_TRACKER_INTERVAL", defaults.tracker_interval, float),
            refresh_interval=_env("MONITOR_REFRESH_INTERVAL", defaults.refresh_interval, float),
            watcher_interval=_env("MONITOR_WATCHER_INTERVAL", defaults.watcher_interval, float),
            start_foreground=_env("MONITOR_START_FOREGROUND", defaults.start_foreground, _parse_bool),
            log_level=_env("MONITOR_LOG_LEVEL", defaults.log_level, str).upper(),
        )
        config.validate()
        return config
