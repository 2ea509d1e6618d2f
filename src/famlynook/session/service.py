"""SessionManager – top-level owner of the user's session.

The manager wires one :class:`CredentialStore`, one
:class:`SessionEventBus`, the :class:`RefreshCoordinator`, the
:class:`RequestPipeline` and the :class:`ProactiveRefreshScheduler` around a
single :class:`ApiTransport`, and implements the login / registration /
logout lifecycle on top of them.

UI code subscribes to :attr:`SessionManager.bus` to react to
``authentication_required`` (show the "session expired" prompt) and
``access_denied`` (offer to switch family), and issues every API call through
:meth:`SessionManager.send` or :meth:`SessionManager.fetch_json`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from famlynook.session.clock import Clock, default_clock, to_millis
from famlynook.session.errors import AccessDeniedError, SessionError, StorageUnavailableError
from famlynook.session.events import EventHandler, SessionEventBus
from famlynook.session.log_utils import get_session_logger
from famlynook.session.models import ApiRequest, LoginResult
from famlynook.session.pipeline import RequestPipeline
from famlynook.session.refresh import RefreshCoordinator
from famlynook.session.scheduler import ProactiveRefreshScheduler
from famlynook.session.store import CredentialStore, DiskSecretStore
from famlynook.utils.environment import PROFILE_PATH, SessionSettings

if TYPE_CHECKING:
    from famlynook.api.transport import ApiTransport

_LOG = logging.getLogger("famlynook.session.service")

VERIFY_TIMEOUT = 5.0


class SessionManager:
    """Application service orchestrating the session lifecycle."""

    def __init__(
        self,
        transport: ApiTransport | None = None,
        *,
        store: CredentialStore | None = None,
        bus: SessionEventBus | None = None,
        settings: SessionSettings | None = None,
        clock: Clock = default_clock,
    ) -> None:
        self.settings = settings or SessionSettings.from_env()
        if transport is None:
            # local import: famlynook.api depends on this package
            from famlynook.api.transport import ApiTransport

            transport = ApiTransport(self.settings.api_url, timeout=self.settings.request_timeout)
        self.transport = transport
        self.store = store if store is not None else CredentialStore(
            DiskSecretStore(self.settings.session_dir)
        )
        self.bus = bus if bus is not None else SessionEventBus()
        self._clock = clock

        self.coordinator = RefreshCoordinator(
            self.store,
            self.transport,
            self.bus,
            max_failures=self.settings.max_refresh_failures,
            grace_period=self.settings.grace_period,
            clock=clock,
        )
        self.pipeline = RequestPipeline(
            self.store,
            self.coordinator,
            self.bus,
            self.transport,
            skip_paths=self.settings.skip_paths,
        )
        self.scheduler = ProactiveRefreshScheduler(
            self.coordinator,
            refresh_interval=self.settings.refresh_interval,
            retry_interval=self.settings.retry_interval,
            min_delay=self.settings.min_refresh_delay,
            clock=clock,
        )

    # ------------------------------------------------------------------ #
    # Lifecycle                                                          #
    # ------------------------------------------------------------------ #
    async def login(self, email: str, password: str) -> LoginResult:
        """Authenticate with email/password and start a clean session."""
        result = await self.transport.login(email, password)
        await self._begin_session(result)
        return result

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        *,
        invitation_token: str | None = None,
        passkey: str | None = None,
    ) -> LoginResult:
        """Create an account (optionally from an invitation) and sign in.

        The new account enters its registration grace period, during which
        authorization failures are not treated as an expired session.
        """
        if invitation_token:
            result = await self.transport.register_invited(name, email, password, invitation_token)
        else:
            result = await self.transport.register(name, email, password, passkey)
        await self.store.mark_registration(to_millis(self._clock()), is_new_account=True)
        await self._begin_session(result)
        return result

    async def logout(self) -> None:
        """End the session locally, then tell the server on a best-effort basis.

        Never waits for a refresh that is still in flight.
        """
        self.scheduler.stop()
        self.coordinator.reset()
        access_token = await self.store.access_token()
        try:
            await self.store.clear()
        except StorageUnavailableError as exc:
            _LOG.error("Could not clear stored credentials on logout: %s", exc)
        try:
            await self.transport.logout(access_token)
        except httpx.HTTPError as exc:
            _LOG.warning("Logout request failed: %s", exc)
        _LOG.info("Logged out")

    async def restore(self, *, verify: bool = False) -> bool:
        """Resume a persisted session at process start.

        Returns *True* when a stored access token was found and, with
        *verify*, accepted by the server (see :meth:`verify`).
        """
        credential = await self.store.load_credential()
        if credential is None:
            _LOG.debug("No stored session to restore")
            return False
        if verify and not await self.verify():
            _LOG.warning("Stored session could not be verified")
            return False
        if self.settings.proactive_refresh:
            self.scheduler.start()
        _LOG.info("Restored stored session")
        return True

    async def verify(self) -> bool:
        """Check the stored access token against the profile endpoint.

        The request goes through the pipeline, so a rejected token is
        refreshed and the check replayed once.  When the server cannot be
        reached or answers with another error, a direct refresh decides.
        """
        if not await self.store.access_token():
            return False
        try:
            await self.pipeline.fetch_json("GET", PROFILE_PATH, timeout=VERIFY_TIMEOUT)
        except AccessDeniedError:
            return True
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status in (401, 403):
                _LOG.info("Stored token rejected with %s", status)
                return False
            _LOG.warning("Token check got %s; trying a refresh", status)
        except httpx.HTTPError as exc:
            _LOG.warning("Token check failed (%s); trying a refresh", exc)
        else:
            return True

        try:
            await self.coordinator.refresh()
        except SessionError as exc:
            _LOG.info("Token check refresh failed: %s", exc.code)
            return False
        return True

    async def close(self) -> None:
        """Shut down without logging out: stop timers, drop subscribers, close HTTP."""
        self.scheduler.stop()
        self.bus.clear()
        await self.transport.aclose()

    # ------------------------------------------------------------------ #
    # Queries & API access                                               #
    # ------------------------------------------------------------------ #
    async def is_authenticated(self) -> bool:
        return bool(await self.store.access_token())

    async def current_user(self) -> dict[str, Any] | None:
        return await self.store.load_user()

    async def update_user(self, changes: dict[str, Any]) -> dict[str, Any]:
        """Merge *changes* into the stored user record."""
        return await self.store.update_user(changes)

    async def check_invitation(self, token: str) -> dict[str, Any]:
        return await self.transport.check_invitation(token)

    async def get_user_profile(self) -> dict[str, Any]:
        """Fetch the signed-in user's profile from the server."""
        return await self.pipeline.fetch_json("GET", PROFILE_PATH)

    def subscribe(self, handler: EventHandler):
        """Shortcut for ``self.bus.subscribe``."""
        return self.bus.subscribe(handler)

    async def send(self, request: ApiRequest) -> httpx.Response:
        return await self.pipeline.send(request)

    async def fetch_json(self, method: str, path: str, **kwargs: Any) -> Any:
        return await self.pipeline.fetch_json(method, path, **kwargs)

    # ---------------- internal helpers --------------------------------- #
    async def _begin_session(self, result: LoginResult) -> None:
        await self.store.save_credential(result.credential)
        await self.store.save_user(result.user)
        self.coordinator.reset()
        self.coordinator.mark_authenticated()
        if self.settings.proactive_refresh:
            self.scheduler.start()
        log = get_session_logger(
            base_logger_name="famlynook.session.service",
            user_id=(result.user or {}).get("id"),
        )
        log.info("Session started")
