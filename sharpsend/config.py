"""Runtime configuration for the send safeguards.

Settings are read from environment variables once at startup and passed to
the components that need them.  Every value has a default, so an empty
environment yields the standard policy: a 4 hour recipient cooldown, a 24
hour similar-content window, 30 seconds before a pending send counts as
stuck, and at most 3 retries.

Environment variables used:

* ``SAFEGUARD_MIN_SEND_INTERVAL_HOURS`` – recipient cooldown window.
* ``SAFEGUARD_COOLDOWN_RECIPIENT_RATIO`` – share of recipients inside the
  cooldown above which a send is refused (default 0.5, exclusive).
* ``SAFEGUARD_SIMILAR_CONTENT_WINDOW_HOURS`` – how far back identical
  content blocks a new send.
* ``SAFEGUARD_CONFIRMATION_TIMEOUT_SECONDS`` – age of a pending attempt
  after which the monitor retries it.
* ``SAFEGUARD_MAX_RETRY_ATTEMPTS`` – retry budget per campaign.
* ``SAFEGUARD_MONITOR_INTERVAL_SECONDS`` / ``SAFEGUARD_CLEANUP_INTERVAL_SECONDS``
  – background monitor cadence.
* ``SAFEGUARD_RETENTION_DAYS`` – age after which history is purged.
* ``SAFEGUARD_SEED_DEMO_DATA`` – when truthy, preload a demo send.
* ``SHARPSEND_TRANSPORT`` – ``simulated`` (default) or ``mailgun``.
* ``SIMULATED_SEND_DELAY_SECONDS`` – delay used by the simulated transport.
* ``SHARPSEND_HOST`` / ``SHARPSEND_PORT`` / ``SHARPSEND_LOG_LEVEL`` – API
  server binding and log verbosity.

Boolean variables accept "1", "true" or "yes" (case-insensitive).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

_TRUTHY = {"1", "true", "yes"}
TRANSPORTS = {"simulated", "mailgun"}


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class SafeguardSettings:
    """Policy and runtime knobs for the safeguard service."""

    min_send_interval_hours: float = 4.0
    cooldown_recipient_ratio: float = 0.5
    similar_content_window_hours: float = 24.0
    confirmation_timeout_seconds: float = 30.0
    max_retry_attempts: int = 3
    monitor_interval_seconds: float = 10.0
    cleanup_interval_seconds: float = 3600.0
    retention_days: int = 30
    seed_demo_data: bool = False
    transport: str = "simulated"
    simulated_send_delay_seconds: float = 2.0
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"

    def __post_init__(self) -> None:
        if self.transport not in TRANSPORTS:
            raise ValueError(
                f"Unknown transport {self.transport!r}; "
                f"expected one of {sorted(TRANSPORTS)}"
            )
        if not 0 <= self.cooldown_recipient_ratio <= 1:
            raise ValueError("cooldown_recipient_ratio must be within [0, 1]")
        if self.max_retry_attempts < 0:
            raise ValueError("max_retry_attempts must not be negative")
        for name in (
            "min_send_interval_hours",
            "similar_content_window_hours",
            "confirmation_timeout_seconds",
            "cleanup_interval_seconds",
            "retention_days",
            "simulated_send_delay_seconds",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        if self.monitor_interval_seconds <= 0:
            raise ValueError("monitor_interval_seconds must be positive")

    @classmethod
    def from_env(
        cls, env: Optional[Mapping[str, str]] = None
    ) -> "SafeguardSettings":
        """Build settings from ``env`` (defaults to ``os.environ``)."""
        env = os.environ if env is None else env
        return cls(
            min_send_interval_hours=_get_float(
                env, "SAFEGUARD_MIN_SEND_INTERVAL_HOURS", 4.0
            ),
            cooldown_recipient_ratio=_get_float(
                env, "SAFEGUARD_COOLDOWN_RECIPIENT_RATIO", 0.5
            ),
            similar_content_window_hours=_get_float(
                env, "SAFEGUARD_SIMILAR_CONTENT_WINDOW_HOURS", 24.0
            ),
            confirmation_timeout_seconds=_get_float(
                env, "SAFEGUARD_CONFIRMATION_TIMEOUT_SECONDS", 30.0
            ),
            max_retry_attempts=_get_int(env, "SAFEGUARD_MAX_RETRY_ATTEMPTS", 3),
            monitor_interval_seconds=_get_float(
                env, "SAFEGUARD_MONITOR_INTERVAL_SECONDS", 10.0
            ),
            cleanup_interval_seconds=_get_float(
                env, "SAFEGUARD_CLEANUP_INTERVAL_SECONDS", 3600.0
            ),
            retention_days=_get_int(env, "SAFEGUARD_RETENTION_DAYS", 30),
            seed_demo_data=_get_bool(env, "SAFEGUARD_SEED_DEMO_DATA", False),
            transport=(
                env.get("SHARPSEND_TRANSPORT", "").strip().lower()
                or "simulated"
            ),
            simulated_send_delay_seconds=_get_float(
                env, "SIMULATED_SEND_DELAY_SECONDS", 2.0
            ),
            host=env.get("SHARPSEND_HOST", "").strip() or "0.0.0.0",
            port=_get_int(env, "SHARPSEND_PORT", 8000),
            log_level=(
                env.get("SHARPSEND_LOG_LEVEL", "").strip().lower() or "info"
            ),
        )


__all__ = ["SafeguardSettings", "TRANSPORTS"]
