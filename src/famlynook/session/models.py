"""Typed records shared by the session core."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Final

DEFAULT_GRACE_PERIOD: Final[float] = 5 * 60.0
DEFAULT_MAX_FAILURES: Final[int] = 5


@dataclass(frozen=True, slots=True)
class Credential:
    """Snapshot of an access/refresh token pair."""

    access_token: str
    refresh_token: str | None = None

    def __repr__(self) -> str:  # keep tokens out of tracebacks and logs
        return (
            f"Credential(access_token='{self.access_token[:6]}****', "
            f"refresh_token={'set' if self.refresh_token else None})"
        )


@dataclass(frozen=True, slots=True)
class SessionMeta:
    """Registration metadata used to compute the post-signup grace period."""

    registered_at_ms: int | None = None
    is_new_account: bool = False

    def in_grace_period(self, now_ms: int, window_seconds: float = DEFAULT_GRACE_PERIOD) -> bool:
        """Return *True* if a new account registered less than *window_seconds* ago."""
        if not self.is_new_account or self.registered_at_ms is None:
            return False
        return (now_ms - self.registered_at_ms) < window_seconds * 1000


@dataclass(frozen=True, slots=True)
class RetryBudget:
    """Read-only view of the coordinator's failure accounting."""

    consecutive_failures: int = 0
    max_failures: int = DEFAULT_MAX_FAILURES
    exhaustion_signaled: bool = False

    @property
    def exhausted(self) -> bool:
        return self.consecutive_failures >= self.max_failures


@dataclass(frozen=True, slots=True)
class ScheduleState:
    """When the proactive refresh fires next and which interval produced it."""

    next_fire_at: float
    interval: float


@dataclass(frozen=True, slots=True)
class LoginResult:
    """Outcome of a successful login or registration exchange."""

    credential: Credential
    user: dict[str, Any] | None = None


@dataclass(slots=True)
class ApiRequest:
    """Descriptor for one outgoing API call.

    ``retried`` is flipped by the request pipeline once the call has been
    replayed after a token refresh; a retried request is never replayed again.
    """

    method: str
    path: str
    json: Any = None
    params: dict[str, Any] | None = None
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None
    retried: bool = False
