"""Authenticated request pipeline.

Every API call made on behalf of a signed-in user goes through
:meth:`RequestPipeline.send`, which

1. sends skip-listed endpoints (login, registration, the refresh exchange,
   public invitation lookups) untouched,
2. attaches the current bearer token,
3. on a 401/403 asks the :class:`RefreshCoordinator` for a new token and
   replays the request **once**; the replay's response is final.

New accounts inside their registration grace period get their 401/403 back
unchanged, since family-scoped endpoints legitimately reject them until the
family setup is done.
"""

from __future__ import annotations

import uuid
from typing import Any, Iterable, Protocol

import httpx

from famlynook.session.errors import AccessDeniedError, SessionError
from famlynook.session.events import AccessDenied, SessionEventBus
from famlynook.session.log_utils import get_session_logger
from famlynook.session.models import ApiRequest
from famlynook.session.refresh import RefreshCoordinator
from famlynook.session.store import CredentialStore
from famlynook.utils.environment import DEFAULT_SKIP_PATHS

CORRELATION_HEADER = "X-Correlation-ID"
FAMILY_ACCESS_MARKER = "not a member of this family"
_AUTH_FAILURES = (401, 403)
_LOGGER_NAME = "famlynook.session.pipeline"


class SendTransport(Protocol):
    async def send(self, request: ApiRequest) -> httpx.Response: ...


def family_access_details(response: httpx.Response) -> str | None:
    """Return the server message if *response* is a family-membership 403."""
    if response.status_code != 403:
        return None
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        message = data["error"]
    else:
        message = response.text
    if FAMILY_ACCESS_MARKER in message.lower():
        return message
    return None


class RequestPipeline:
    """Attach tokens, detect authorization failures and replay once after refresh."""

    def __init__(
        self,
        store: CredentialStore,
        coordinator: RefreshCoordinator,
        bus: SessionEventBus,
        transport: SendTransport,
        *,
        skip_paths: Iterable[str] = DEFAULT_SKIP_PATHS,
    ) -> None:
        self.store = store
        self.coordinator = coordinator
        self.bus = bus
        self.transport = transport
        self.skip_paths = tuple(skip_paths)

    def is_skipped(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.skip_paths)

    async def send(self, request: ApiRequest) -> httpx.Response:
        correlation_id = request.headers.setdefault(CORRELATION_HEADER, uuid.uuid4().hex)
        log = get_session_logger(
            base_logger_name=_LOGGER_NAME,
            endpoint=request.path,
            correlation_id=correlation_id,
        )

        if self.is_skipped(request.path):
            log.debug("%s %s (skip-listed)", request.method.upper(), request.path)
            return await self.transport.send(request)

        self._authorize(request, await self.store.access_token())
        response = await self.transport.send(request)
        log.debug("%s %s -> %s", request.method.upper(), request.path, response.status_code)

        details = family_access_details(response)
        if details is not None:
            log.info("Family access denied for %s", request.path)
            self.bus.emit(AccessDenied(details=details))

        if response.status_code not in _AUTH_FAILURES or request.retried:
            return response

        if await self.coordinator.in_grace_period():
            log.info("Got %s during registration grace period; not refreshing", response.status_code)
            return response

        try:
            credential = await self.coordinator.refresh()
        except SessionError as exc:
            log.info("Refresh unavailable (%s); returning original %s", exc.code, response.status_code)
            return response

        request.retried = True
        self._authorize(request, credential.access_token)
        retry = await self.transport.send(request)
        log.debug("Replayed %s %s -> %s", request.method.upper(), request.path, retry.status_code)
        if details is None:
            replay_details = family_access_details(retry)
            if replay_details is not None:
                self.bus.emit(AccessDenied(details=replay_details))
        return retry

    async def fetch_json(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Send a request and decode its JSON body.

        Raises :class:`AccessDeniedError` for family-membership 403s and
        :class:`httpx.HTTPStatusError` for any other error status.
        """
        response = await self.send(
            ApiRequest(
                method=method,
                path=path,
                json=json,
                params=params,
                headers=dict(headers or {}),
                timeout=timeout,
            )
        )
        details = family_access_details(response)
        if details is not None:
            raise AccessDeniedError(details=details)
        response.raise_for_status()
        if not response.content:
            return None
        return response.json()

    # ---------------- internal helpers --------------------------------- #
    @staticmethod
    def _authorize(request: ApiRequest, token: str | None) -> None:
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        else:
            request.headers.pop("Authorization", None)
