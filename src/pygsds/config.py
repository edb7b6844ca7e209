"""Runtime configuration for pygsds."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from pygsds._constants import (
    DEFAULT_NOTICE_DURATION_MS,
    DEFAULT_PERIOD_REFRESH_SECONDS,
    DEFAULT_POLL_MS,
    DEFAULT_PUSH_DEBOUNCE_MS,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_TIME_ZONE,
)
from pygsds.exceptions import GsdsConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class GsdsConfig:
    """Context engine configuration.

    Parameters
    ----------
    api_base : str
        Remote authority endpoint (e.g. an Apps Script ``/exec`` URL).
        Empty disables every remote call.
    server_sync : bool
        Poll the authority and push local edits back to it.
    poll_ms : int
        Poll interval in milliseconds.  Values below 300 are clamped.
    time_zone : str
        IANA zone that period times of day are interpreted in.
    storage_path : Path or None
        JSON file backing the durable slots.  ``None`` keeps them in memory.
    request_timeout : float
        Total timeout in seconds for a single authority request.
    push_debounce_ms : int
        Quiet period before a local edit is pushed upstream.
    period_refresh_seconds : float
        Cadence of the period dictionary refresh.
    notice_duration_ms : int
        Default time a notice stays visible.
    mqtt_host : str or None
        Broker used for cross-process fan-out.  ``None`` disables it.
    mqtt_port : int
        Broker port.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    """

    api_base: str = ""
    server_sync: bool = False
    poll_ms: int = DEFAULT_POLL_MS
    time_zone: str = DEFAULT_TIME_ZONE
    storage_path: Path | None = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    push_debounce_ms: int = DEFAULT_PUSH_DEBOUNCE_MS
    period_refresh_seconds: float = DEFAULT_PERIOD_REFRESH_SECONDS
    notice_duration_ms: int = DEFAULT_NOTICE_DURATION_MS
    mqtt_host: str | None = None
    mqtt_port: int = 1883
    mqtt_keepalive: int = 60

    def __post_init__(self) -> None:
        if self.request_timeout <= 0:
            raise GsdsConfigError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.push_debounce_ms < 0:
            raise GsdsConfigError(f"push_debounce_ms must not be negative, got {self.push_debounce_ms}")

    @property
    def remote_enabled(self) -> bool:
        """Whether remote sync is both requested and possible."""
        return self.server_sync and bool(self.api_base)

    @classmethod
    def from_env(cls, **overrides: Any) -> GsdsConfig:
        """Create configuration from environment variables.

        Reads ``GSDS_API_BASE`` (falling back to ``API_BASE``),
        ``GSDS_SERVER_SYNC``, ``GSDS_POLL_MS``, ``GSDS_TIME_ZONE``,
        ``GSDS_STORAGE_PATH``, ``GSDS_REQUEST_TIMEOUT``, ``GSDS_MQTT_HOST``
        and ``GSDS_MQTT_PORT``.  Explicit keyword arguments override
        environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        api_base = env.get("GSDS_API_BASE") or env.get("API_BASE")
        if api_base:
            config_kwargs["api_base"] = api_base.strip()

        if "server_sync" not in overrides:
            config_kwargs["server_sync"] = _env_bool(env.get("GSDS_SERVER_SYNC"), False)

        time_zone = env.get("GSDS_TIME_ZONE")
        if time_zone:
            config_kwargs["time_zone"] = time_zone

        storage_path = env.get("GSDS_STORAGE_PATH")
        if storage_path:
            config_kwargs["storage_path"] = Path(storage_path).expanduser()

        mqtt_host = env.get("GSDS_MQTT_HOST")
        if mqtt_host:
            config_kwargs["mqtt_host"] = mqtt_host

        # Numeric values, handle separately
        try:
            poll_env = env.get("GSDS_POLL_MS")
            if poll_env is not None and "poll_ms" not in overrides:
                config_kwargs["poll_ms"] = int(poll_env)

            timeout_env = env.get("GSDS_REQUEST_TIMEOUT")
            if timeout_env is not None and "request_timeout" not in overrides:
                config_kwargs["request_timeout"] = float(timeout_env)

            port_env = env.get("GSDS_MQTT_PORT")
            if port_env is not None and "mqtt_port" not in overrides:
                config_kwargs["mqtt_port"] = int(port_env)
        except ValueError as exc:
            raise GsdsConfigError(f"Invalid numeric GSDS_* environment value: {exc}") from exc

        config_kwargs.update(overrides)
        return cls(**config_kwargs)
