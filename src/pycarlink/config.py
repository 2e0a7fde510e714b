"""Service configuration for pycarlink."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pycarlink import _constants as const
from pycarlink.exceptions import CarLinkConfigError


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
class CarLinkConfig:
    """Coordinator configuration.

    Parameters
    ----------
    shared_secret : str
        Secret every ``/api/*`` request must present, either as the
        ``key`` query parameter or the ``X-Api-Key`` header.
    host : str
        Interface the HTTP service binds to.
    port : int
        TCP port the HTTP service listens on.
    history_size : int
        Capacity of each device's command history ledger.  The oldest
        entry is evicted once the ledger is full.
    online_timeout_s : float
        A device is online while its last telemetry report is younger
        than this many seconds.
    geo_enabled : bool
        Resolve the device's UTC offset from its network address.  When
        disabled, ``default_utc_offset_s`` is used throughout.
    geo_base_url : str
        Base URL of the ip-api compatible lookup service.
    geo_refresh_interval_s : float
        Minimum age of a successful lookup before it is refreshed.
    geo_retry_interval_s : float
        Back-off after a failed lookup.
    geo_lookup_timeout_s : float
        Upper bound on a single external lookup.
    default_utc_offset_s : int
        Offset used until the first successful lookup.
    sleep_awake_poll_s, sleep_poll_s, sleep_idle_s : int
        Initial sleep-interval tuple returned to polling devices.
    """

    shared_secret: str
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000
    history_size: int = const.DEFAULT_HISTORY_SIZE
    online_timeout_s: float = const.DEFAULT_ONLINE_TIMEOUT_S
    geo_enabled: bool = True
    geo_base_url: str = const.GEO_BASE_URL
    geo_refresh_interval_s: float = const.GEO_REFRESH_INTERVAL_S
    geo_retry_interval_s: float = const.GEO_RETRY_INTERVAL_S
    geo_lookup_timeout_s: float = const.GEO_LOOKUP_TIMEOUT_S
    default_utc_offset_s: int = 0
    sleep_awake_poll_s: int = const.SLEEP_AWAKE_POLL_S
    sleep_poll_s: int = const.SLEEP_POLL_S
    sleep_idle_s: int = const.SLEEP_IDLE_S

    def __post_init__(self) -> None:
        if not self.shared_secret or not self.shared_secret.strip():
            raise CarLinkConfigError("shared_secret must be non-empty")
        if self.history_size < 1:
            raise CarLinkConfigError(f"history_size must be positive, got {self.history_size}")

    @classmethod
    def from_env(cls, **overrides: Any) -> CarLinkConfig:
        """Create configuration from environment variables.

        Reads ``CARLINK_SHARED_SECRET`` (required) and the optional
        ``CARLINK_*`` variables below.  ``PORT`` is honoured as a fallback
        for hosting platforms that inject it.  Explicit keyword arguments
        override environment values.

        Raises
        ------
        CarLinkConfigError
            When the shared secret is absent or a numeric variable does
            not parse.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "CARLINK_SHARED_SECRET": "shared_secret",
            "CARLINK_HOST": "host",
            "CARLINK_GEO_BASE_URL": "geo_base_url",
        }
        _ENV_INT_MAP = {
            "CARLINK_PORT": "port",
            "CARLINK_HISTORY_SIZE": "history_size",
            "CARLINK_DEFAULT_UTC_OFFSET": "default_utc_offset_s",
            "CARLINK_SLEEP_AWAKE_POLL": "sleep_awake_poll_s",
            "CARLINK_SLEEP_POLL": "sleep_poll_s",
            "CARLINK_SLEEP_IDLE": "sleep_idle_s",
        }
        _ENV_FLOAT_MAP = {
            "CARLINK_ONLINE_TIMEOUT": "online_timeout_s",
            "CARLINK_GEO_REFRESH_INTERVAL": "geo_refresh_interval_s",
            "CARLINK_GEO_RETRY_INTERVAL": "geo_retry_interval_s",
            "CARLINK_GEO_LOOKUP_TIMEOUT": "geo_lookup_timeout_s",
        }

        config_kwargs: dict[str, Any] = {}
        port_env = env.get("PORT")
        if port_env is not None:
            config_kwargs["port"] = port_env

        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val
        for env_key, field_name in (*_ENV_INT_MAP.items(), *_ENV_FLOAT_MAP.items()):
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        numeric = {field: int for field in _ENV_INT_MAP.values()} | {field: float for field in _ENV_FLOAT_MAP.values()}
        for field_name, caster in numeric.items():
            if field_name in config_kwargs and field_name not in overrides:
                try:
                    config_kwargs[field_name] = caster(config_kwargs[field_name])
                except ValueError as exc:
                    raise CarLinkConfigError(f"Invalid value for {field_name}: {config_kwargs[field_name]!r}") from exc

        if "geo_enabled" not in overrides:
            config_kwargs["geo_enabled"] = _env_bool(env.get("CARLINK_GEO_ENABLED"), True)

        config_kwargs.update(overrides)

        if not config_kwargs.get("shared_secret"):
            raise CarLinkConfigError("CARLINK_SHARED_SECRET is not set")

        return cls(**config_kwargs)
