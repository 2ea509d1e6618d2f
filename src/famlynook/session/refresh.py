"""Single-flight, retry-bounded refresh-token exchange.

:class:`RefreshCoordinator` is the only component that talks to the refresh
endpoint.  Concurrent callers of :meth:`RefreshCoordinator.refresh` share one
``asyncio.Task``; the exchange is shielded from caller cancellation so that
one impatient caller can never abort the refresh the others are waiting on.

Failure accounting
------------------
Every failed exchange (missing refresh token, transport error, malformed
response, storage failure while persisting) increments the consecutive
failure counter exactly once and emits :class:`RefreshFailed`.  When the
counter reaches ``max_failures`` the coordinator emits a single
:class:`AuthenticationRequired`; further calls fail fast with
:class:`RetryBudgetExhaustedError` until :meth:`reset` is called by a new
login or a logout.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from famlynook.session.clock import Clock, default_clock, to_millis
from famlynook.session.errors import (
    GracePeriodActiveError,
    NoRefreshTokenError,
    RetryBudgetExhaustedError,
    SessionError,
)
from famlynook.session.events import (
    AuthenticationRequired,
    RefreshFailed,
    SessionEventBus,
    TokenRefreshed,
)
from famlynook.session.models import (
    DEFAULT_GRACE_PERIOD,
    DEFAULT_MAX_FAILURES,
    Credential,
    RetryBudget,
)
from famlynook.session.store import CredentialStore
from famlynook.utils.logging import mask_sensitive

_LOG = logging.getLogger("famlynook.session.refresh")


class RefreshTransport(Protocol):
    """The one transport call the coordinator needs."""

    async def refresh_exchange(self, refresh_token: str) -> Credential: ...


def _consume_result(task: asyncio.Task) -> None:
    # Waiters may all have been cancelled; retrieve the outcome regardless.
    if not task.cancelled():
        task.exception()


class RefreshCoordinator:
    """Owns the retry budget and the in-flight refresh slot."""

    def __init__(
        self,
        store: CredentialStore,
        transport: RefreshTransport,
        bus: SessionEventBus,
        *,
        max_failures: int = DEFAULT_MAX_FAILURES,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        clock: Clock = default_clock,
    ) -> None:
        if max_failures < 1:
            raise ValueError("max_failures must be at least 1")
        self.store = store
        self.transport = transport
        self.bus = bus
        self.max_failures = max_failures
        self.grace_period = grace_period
        self._clock = clock

        self._consecutive_failures = 0
        self._exhaustion_signaled = False
        self._in_flight: asyncio.Task[Credential] | None = None
        # Bumped by reset(); a refresh started under an older generation is stale.
        self._generation = 0
        self.last_refreshed_at: float | None = None

    # ------------------------------------------------------------------ #
    # Introspection                                                      #
    # ------------------------------------------------------------------ #
    @property
    def budget(self) -> RetryBudget:
        return RetryBudget(
            consecutive_failures=self._consecutive_failures,
            max_failures=self.max_failures,
            exhaustion_signaled=self._exhaustion_signaled,
        )

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #
    async def refresh(self) -> Credential:
        """Return a freshly exchanged credential, joining any refresh in flight."""
        task = self._in_flight
        if task is None:
            task = asyncio.get_running_loop().create_task(self._run(self._generation))
            task.add_done_callback(_consume_result)
            self._in_flight = task
        else:
            _LOG.debug("Joining in-flight token refresh")
        return await asyncio.shield(task)

    async def in_grace_period(self) -> bool:
        """Return *True* if the stored account registered within the grace window."""
        meta = await self.store.load_session_meta()
        return meta.in_grace_period(to_millis(self._clock()), self.grace_period)

    def reset(self) -> None:
        """Forget failures and detach any in-flight refresh without awaiting it."""
        self._generation += 1
        self._in_flight = None
        self._consecutive_failures = 0
        self._exhaustion_signaled = False
        _LOG.debug("Refresh budget reset")

    def mark_authenticated(self) -> None:
        """Record that a fresh credential was obtained by login or registration."""
        self.last_refreshed_at = self._clock()

    # ---------------- internal helpers --------------------------------- #
    async def _run(self, generation: int) -> Credential:
        try:
            credential = await self._exchange(generation)
        except (GracePeriodActiveError, RetryBudgetExhaustedError):
            raise
        except SessionError as exc:
            if generation != self._generation:
                raise NoRefreshTokenError("Session was reset during refresh") from exc
            self._record_failure(exc)
            raise
        else:
            self._record_success(credential)
            return credential
        finally:
            if self._in_flight is asyncio.current_task():
                self._in_flight = None

    async def _exchange(self, generation: int) -> Credential:
        if await self.in_grace_period():
            _LOG.info("Skipping token refresh: account is in its registration grace period")
            raise GracePeriodActiveError()

        if self._consecutive_failures >= self.max_failures:
            self._signal_exhaustion()
            raise RetryBudgetExhaustedError(retry_count=self._consecutive_failures)

        refresh_token = await self.store.refresh_token()
        if not refresh_token:
            raise NoRefreshTokenError()

        _LOG.debug("Exchanging refresh token %s", mask_sensitive(refresh_token, 6))
        credential = await self.transport.refresh_exchange(refresh_token)
        if generation != self._generation:
            raise NoRefreshTokenError("Session was reset during refresh")
        if credential.refresh_token is None:
            credential = Credential(access_token=credential.access_token, refresh_token=refresh_token)

        saved = await self.store.save_credential(
            credential, is_current=lambda: generation == self._generation
        )
        if not saved:
            raise NoRefreshTokenError("Session was reset during refresh")
        return credential

    def _record_success(self, credential: Credential) -> None:
        self._consecutive_failures = 0
        self._exhaustion_signaled = False
        self.last_refreshed_at = self._clock()
        _LOG.info("Refreshed access token %s", mask_sensitive(credential.access_token, 6))
        self.bus.emit(TokenRefreshed(token=credential.access_token))

    def _record_failure(self, exc: SessionError) -> None:
        self._consecutive_failures += 1
        count = self._consecutive_failures
        _LOG.warning(
            "Token refresh failed (%d/%d): %s", count, self.max_failures, exc.to_payload()
        )
        self.bus.emit(RefreshFailed(error=exc, retry_count=count))
        if count >= self.max_failures:
            self._signal_exhaustion()

    def _signal_exhaustion(self) -> None:
        if self._exhaustion_signaled:
            return
        self._exhaustion_signaled = True
        _LOG.warning(
            "Refresh retry budget exhausted after %d failures; login required",
            self._consecutive_failures,
        )
        self.bus.emit(AuthenticationRequired(retry_count=self._consecutive_failures))
