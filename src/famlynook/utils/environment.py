"""Session settings resolved from environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Final, Tuple

logger = logging.getLogger("famlynook.utils.environment")

_TRUTHY: Final[Tuple[str, ...]] = ("true", "1", "yes", "y", "on")

DEFAULT_API_URL: Final[str] = "https://famlynook.com"

LOGIN_PATH: Final[str] = "/api/auth/login"
REGISTER_PATH: Final[str] = "/api/auth/register"
REGISTER_INVITED_PATH: Final[str] = "/api/auth/register-invited"
REFRESH_PATH: Final[str] = "/api/auth/refresh-token"
LOGOUT_PATH: Final[str] = "/api/auth/logout"
INVITATION_CHECK_PATH: Final[str] = "/api/invitations/check/"
PROFILE_PATH: Final[str] = "/api/dashboard/profile"

DEFAULT_SKIP_PATHS: Final[Tuple[str, ...]] = (
    LOGIN_PATH,
    REGISTER_PATH,
    REGISTER_INVITED_PATH,
    REFRESH_PATH,
    INVITATION_CHECK_PATH,
)


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number, using %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Ignoring %s=%r: must be positive, using %s", name, raw, default)
        return default
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer, using %s", name, raw, default)
        return default
    if value < 1:
        logger.warning("Ignoring %s=%r: must be at least 1, using %s", name, raw, default)
        return default
    return value


def _env_paths(name: str) -> Tuple[str, ...]:
    raw = os.getenv(name) or ""
    return tuple(p.strip() for p in raw.split(",") if p.strip())


@dataclass(frozen=True, slots=True)
class SessionSettings:
    """Tunables for the session core.

    Durations are in seconds.  ``grace_period`` is shared by the refresh
    coordinator and the request pipeline.
    """

    api_url: str = DEFAULT_API_URL
    request_timeout: float = 15.0
    max_refresh_failures: int = 5
    grace_period: float = 5 * 60.0
    refresh_interval: float = 8 * 60 * 60.0
    retry_interval: float = 30 * 60.0
    min_refresh_delay: float = 60.0
    proactive_refresh: bool = True
    session_dir: Path = field(
        default_factory=lambda: Path.home() / ".famlynook" / "session"
    )
    skip_paths: Tuple[str, ...] = DEFAULT_SKIP_PATHS

    @classmethod
    def from_env(cls) -> "SessionSettings":
        """Build settings from ``FAMLYNOOK_*`` environment variables."""
        defaults = cls()
        proactive_raw = os.getenv("FAMLYNOOK_PROACTIVE_REFRESH")
        session_dir = os.getenv("FAMLYNOOK_SESSION_DIR")
        settings = replace(
            defaults,
            api_url=(os.getenv("FAMLYNOOK_API_URL") or defaults.api_url).rstrip("/"),
            request_timeout=_env_float("FAMLYNOOK_REQUEST_TIMEOUT", defaults.request_timeout),
            max_refresh_failures=_env_int(
                "FAMLYNOOK_MAX_REFRESH_FAILURES", defaults.max_refresh_failures
            ),
            grace_period=_env_float("FAMLYNOOK_GRACE_PERIOD_SECONDS", defaults.grace_period),
            refresh_interval=_env_float(
                "FAMLYNOOK_REFRESH_INTERVAL_SECONDS", defaults.refresh_interval
            ),
            retry_interval=_env_float("FAMLYNOOK_REFRESH_RETRY_SECONDS", defaults.retry_interval),
            proactive_refresh=(
                defaults.proactive_refresh if proactive_raw is None else _truthy(proactive_raw)
            ),
            session_dir=Path(session_dir).expanduser() if session_dir else defaults.session_dir,
            skip_paths=defaults.skip_paths + _env_paths("FAMLYNOOK_SKIP_PATHS"),
        )
        logger.debug(
            "Resolved session settings api_url=%s max_failures=%s proactive=%s",
            settings.api_url,
            settings.max_refresh_failures,
            settings.proactive_refresh,
        )
        return settings
