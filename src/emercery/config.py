"""Client configuration for emercery."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from emercery._constants import (
    API_BASE_URL,
    AUTO_API_BASE_URL,
    CACHE_TTL_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_BASE_DELAY,
    SESSION_RESUME_WINDOW_SECONDS,
)
from emercery.exceptions import EmerceryConfigError

#: Bounds for the operator-configurable auto-fetch interval, in seconds.
AUTO_FETCH_MIN_INTERVAL: float = 1.0
AUTO_FETCH_MAX_INTERVAL: float = 30.0


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
class EmerceryConfig:
    """Client configuration.

    Parameters
    ----------
    api_base_url : str
        Base URL of the main simulation API.
    auto_api_base_url : str
        Base URL of the auto-dispatch backend.
    request_timeout : float
        Per-attempt deadline in seconds.  Individual calls may override it.
    max_attempts : int
        Upper bound on attempts per logical request (first try included).
    dispatch_max_attempts : int
        Attempts for ``POST /{type}/dispatch``.  Dispatch is not idempotent,
        so a timed-out attempt may already have been applied; the default
        of 1 never re-sends it.
    retry_base_delay : float
        Seconds to wait before the first retry; doubles on each further retry
        and is capped at five seconds.
    data_poll_interval : float
        Seconds between full data refreshes while a manual simulation runs.
    status_poll_interval : float
        Seconds between control-status refreshes.
    auto_fetch_enabled : bool
        Request the next emergency on a timer during manual simulations.
    auto_fetch_interval : float
        Seconds between auto-fetch ticks, between 1 and 30.
    elapsed_tick_interval : float
        Seconds between elapsed-time display updates.
    cache_ttl : float
        Age in seconds after which cached payloads are ignored.
    session_resume_window : float
        Maximum age in seconds of a session snapshot that may be resumed.
    resume_prompt_timeout : float
        Seconds the operator has to answer the resume prompt.
    auto_poll_interval : float
        ``poll_interval`` forwarded to the auto-dispatch backend.
    auto_status_interval : float
        ``status_interval`` forwarded to the auto-dispatch backend.
    resource_types : tuple of str
        Resource types polled via ``/{type}/search``.
    perf_buffer_size : int
        Capacity of the API performance ring buffer.
    error_buffer_size : int
        Capacity of the tracked-error ring buffer.
    log_buffer_size : int
        Capacity of the in-process log buffer.
    """

    api_base_url: str = API_BASE_URL
    auto_api_base_url: str = AUTO_API_BASE_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    dispatch_max_attempts: int = 1
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY
    data_poll_interval: float = 2.0
    status_poll_interval: float = 0.5
    auto_fetch_enabled: bool = False
    auto_fetch_interval: float = 5.0
    elapsed_tick_interval: float = 1.0
    cache_ttl: float = CACHE_TTL_SECONDS
    session_resume_window: float = SESSION_RESUME_WINDOW_SECONDS
    resume_prompt_timeout: float = 30.0
    auto_poll_interval: float = 0.3
    auto_status_interval: float = 5.0
    resource_types: tuple[str, ...] = ("Medical", "Police", "Fire", "Rescue", "Utility")
    perf_buffer_size: int = 1000
    error_buffer_size: int = 100
    log_buffer_size: int = 1000

    def __post_init__(self) -> None:
        if self.request_timeout <= 0:
            raise EmerceryConfigError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.max_attempts < 1:
            raise EmerceryConfigError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.dispatch_max_attempts < 1:
            raise EmerceryConfigError(f"dispatch_max_attempts must be at least 1, got {self.dispatch_max_attempts}")
        if self.retry_base_delay < 0:
            raise EmerceryConfigError(f"retry_base_delay must not be negative, got {self.retry_base_delay}")
        if not AUTO_FETCH_MIN_INTERVAL <= self.auto_fetch_interval <= AUTO_FETCH_MAX_INTERVAL:
            raise EmerceryConfigError(
                f"auto_fetch_interval must be between {AUTO_FETCH_MIN_INTERVAL} and "
                f"{AUTO_FETCH_MAX_INTERVAL} seconds, got {self.auto_fetch_interval}"
            )
        for name in ("data_poll_interval", "status_poll_interval", "elapsed_tick_interval"):
            if getattr(self, name) <= 0:
                raise EmerceryConfigError(f"{name} must be positive, got {getattr(self, name)}")

    @classmethod
    def from_env(cls, **overrides: Any) -> EmerceryConfig:
        """Create configuration from environment variables.

        Reads optional ``EMERCERY_*`` variables.  Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        EmerceryConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "EMERCERY_API_BASE_URL": "api_base_url",
            "EMERCERY_AUTO_API_BASE_URL": "auto_api_base_url",
        }
        _ENV_FLOAT_MAP = {
            "EMERCERY_REQUEST_TIMEOUT": "request_timeout",
            "EMERCERY_RETRY_BASE_DELAY": "retry_base_delay",
            "EMERCERY_DATA_POLL_INTERVAL": "data_poll_interval",
            "EMERCERY_STATUS_POLL_INTERVAL": "status_poll_interval",
            "EMERCERY_AUTO_FETCH_INTERVAL": "auto_fetch_interval",
            "EMERCERY_CACHE_TTL": "cache_ttl",
            "EMERCERY_SESSION_RESUME_WINDOW": "session_resume_window",
            "EMERCERY_RESUME_PROMPT_TIMEOUT": "resume_prompt_timeout",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val.rstrip("/")

        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = float(val)
            except ValueError as exc:
                raise EmerceryConfigError(f"{env_key} must be a number, got {val!r}") from exc

        _ENV_INT_MAP = {
            "EMERCERY_MAX_ATTEMPTS": "max_attempts",
            "EMERCERY_DISPATCH_MAX_ATTEMPTS": "dispatch_max_attempts",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = int(val)
            except ValueError as exc:
                raise EmerceryConfigError(f"{env_key} must be an integer, got {val!r}") from exc

        if "auto_fetch_enabled" not in overrides:
            config_kwargs["auto_fetch_enabled"] = _env_bool(env.get("EMERCERY_AUTO_FETCH_ENABLED"), False)

        types_env = env.get("EMERCERY_RESOURCE_TYPES")
        if types_env is not None and "resource_types" not in overrides:
            config_kwargs["resource_types"] = tuple(t.strip() for t in types_env.split(",") if t.strip())

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
