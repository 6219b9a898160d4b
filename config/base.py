"""
Configuration interface for the monitor service.

Holds every tunable the service needs and validates it once at startup.
Concrete sources (environment, tests) build a ``BaseConfiguration``.
"""
from dataclasses import dataclass
from typing import Optional


class ConfigurationError(Exception):
    """Raised when configuration values are missing or invalid."""


@dataclass
class BaseConfiguration:
    """Settings for the API client, device feed and monitor loops."""

    api_base_url: str = "http://localhost:8000/api"
    api_token: Optional[str] = None
    api_timeout: float = 10.0

    mqtt_host: Optional[str] = None
    mqtt_port: int = 1883
    mqtt_topic_prefix: str = "devices"
    mqtt_username: Optional[str] = None
    mqtt_password: Optional[str] = None
    mqtt_tls: bool = False

    tracker_interval: float = 300.0
    refresh_interval: float = 60.0
    watcher_interval: float = 1.0
    start_foreground: bool = False
    log_level: str = "INFO"

    @property
    def feed_enabled(self) -> bool:
        """True if a realtime device feed is configured."""
        return bool(self.mqtt_host)

    def validate(self) -> None:
        """
        Check that values are usable.

        Raises:
            ConfigurationError: If any value is invalid
        """
        if not self.api_base_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"API base URL must be http(s): {self.api_base_url!r}")
        if self.api_timeout <= 0:
            raise ConfigurationError("API timeout must be positive")
        if not 0 < self.mqtt_port < 65536:
            raise ConfigurationError(f"Invalid MQTT port: {self.mqtt_port}")
        if not self.mqtt_topic_prefix.strip("/"):
            raise ConfigurationError("MQTT topic prefix must not be empty")
        if min(self.tracker_interval, self.watcher_interval, self.refresh_interval) <= 0:
            raise ConfigurationError("Loop intervals must be positive")
        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigurationError(f"Unknown log level: {self.log_level!r}")
