"""httpx-based transport for the FamlyNook REST API.

The session core only depends on the handful of coroutines defined here:
login/registration, invitation lookup, the refresh-token exchange, a raw
``send`` used by the request pipeline, and logout.  Token attachment and
refresh decisions are NOT made here; this class issues exactly the request it
is given.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from famlynook.session.errors import (
    LoginFailedError,
    RefreshInvalidResponseError,
    RefreshNetworkError,
)
from famlynook.session.models import ApiRequest, Credential, LoginResult
from famlynook.utils.environment import (
    DEFAULT_API_URL,
    INVITATION_CHECK_PATH,
    LOGIN_PATH,
    LOGOUT_PATH,
    REFRESH_PATH,
    REGISTER_INVITED_PATH,
    REGISTER_PATH,
)

logger = logging.getLogger("famlynook.api.transport")


def _error_message(response: httpx.Response, fallback: str) -> str:
    """Return the server's ``error`` field when the body carries one."""
    try:
        data = response.json()
    except ValueError:
        return fallback
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        return data["error"]
    return fallback


class ApiTransport:
    """Thin async client around :class:`httpx.AsyncClient`."""

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        *,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self.client = client if client is not None else httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    # ------------------------------------------------------------------ #
    # Authentication endpoints                                           #
    # ------------------------------------------------------------------ #
    async def login(self, email: str, password: str) -> LoginResult:
        return await self._authenticate(
            LOGIN_PATH, {"email": email, "password": password}, "Login failed. Please try again."
        )

    async def register(
        self, name: str, email: str, password: str, passkey: str | None = None
    ) -> LoginResult:
        payload: dict[str, Any] = {"name": name, "email": email, "password": password}
        if passkey:
            payload["passkey"] = passkey
        return await self._authenticate(
            REGISTER_PATH, payload, "Registration failed. Please try again."
        )

    async def register_invited(
        self, name: str, email: str, password: str, token: str
    ) -> LoginResult:
        payload = {"name": name, "email": email, "password": password, "token": token}
        return await self._authenticate(
            REGISTER_INVITED_PATH, payload, "Registration failed. Please try again."
        )

    async def check_invitation(self, token: str) -> dict[str, Any]:
        """Look up an invitation token.

        Unknown, expired or unreachable invitations come back as
        ``{"valid": False, "error": ...}`` instead of raising.
        """
        fallback = "Invalid invitation link"
        try:
            resp = await self.client.get(f"{INVITATION_CHECK_PATH}{quote(token, safe='')}")
        except httpx.HTTPError as exc:
            logger.warning("Invitation check failed: %s", exc)
            return {"valid": False, "error": fallback}

        if not resp.is_success:
            return {"valid": False, "error": _error_message(resp, fallback)}
        try:
            data = resp.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            return {"valid": False, "error": fallback}
        return data

    async def refresh_exchange(self, refresh_token: str) -> Credential:
        """Trade *refresh_token* for a new credential."""
        try:
            resp = await self.client.post(REFRESH_PATH, json={"refreshToken": refresh_token})
        except httpx.HTTPError as exc:
            raise RefreshNetworkError(f"Token refresh request failed: {exc}") from exc

        if not resp.is_success:
            raise RefreshNetworkError(
                f"Refresh endpoint returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise RefreshInvalidResponseError("Refresh response is not JSON") from exc
        if not isinstance(data, dict) or not data.get("token"):
            raise RefreshInvalidResponseError("Refresh response missing token")

        return Credential(access_token=data["token"], refresh_token=data.get("refreshToken"))

    async def logout(self, access_token: str | None) -> None:
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else None
        resp = await self.client.post(LOGOUT_PATH, headers=headers)
        logger.debug("Logout endpoint answered %s", resp.status_code)

    # ------------------------------------------------------------------ #
    # Generic API calls                                                  #
    # ------------------------------------------------------------------ #
    async def send(self, request: ApiRequest) -> httpx.Response:
        """Issue *request* verbatim; HTTP error statuses are returned, not raised."""
        kwargs: dict[str, Any] = {"headers": dict(request.headers)}
        if request.json is not None:
            kwargs["json"] = request.json
        if request.params:
            kwargs["params"] = request.params
        if request.timeout is not None:
            kwargs["timeout"] = request.timeout
        return await self.client.request(request.method.upper(), request.path, **kwargs)

    # ---------------- internal helpers --------------------------------- #
    async def _authenticate(self, path: str, payload: dict[str, Any], fallback: str) -> LoginResult:
        try:
            resp = await self.client.post(path, json=payload)
        except httpx.HTTPError as exc:
            raise LoginFailedError(f"Could not reach the server: {exc}") from exc

        if not resp.is_success:
            raise LoginFailedError(_error_message(resp, fallback), status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            raise LoginFailedError("Authentication response is not JSON") from exc
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise LoginFailedError("Authentication response missing token")

        user = data.get("user")
        logger.info("Authenticated via %s", path)
        return LoginResult(
            credential=Credential(access_token=token, refresh_token=data.get("refreshToken")),
            user=user if isinstance(user, dict) else None,
        )
