"""Unit tests for ApiTransport against an httpx.MockTransport server."""

from __future__ import annotations

import json

import httpx
import pytest

from famlynook.api.transport import ApiTransport
from famlynook.session.errors import (
    LoginFailedError,
    RefreshInvalidResponseError,
    RefreshNetworkError,
)
from famlynook.session.models import ApiRequest, Credential


# --------------------------------------------------------------------------- #
# Helpers                                                                     #
# --------------------------------------------------------------------------- #
def _transport(handler) -> ApiTransport:  # noqa: ANN001
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="https://api.test"
    )
    return ApiTransport(client=client)


# --------------------------------------------------------------------------- #
# Refresh exchange                                                            #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_refresh_exchange_success():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"token": "at-2", "refreshToken": "rt-2"})

    api = _transport(handler)
    credential = await api.refresh_exchange("rt-1")

    assert credential == Credential("at-2", "rt-2")
    assert seen == {"path": "/api/auth/refresh-token", "body": {"refreshToken": "rt-1"}}


@pytest.mark.anyio
async def test_refresh_exchange_without_new_refresh_token():
    api = _transport(lambda request: httpx.Response(200, json={"token": "at-2"}))
    assert await api.refresh_exchange("rt-1") == Credential("at-2", None)


@pytest.mark.anyio
async def test_refresh_exchange_http_error_status():
    api = _transport(lambda request: httpx.Response(401, json={"error": "expired"}))

    with pytest.raises(RefreshNetworkError) as excinfo:
        await api.refresh_exchange("rt-1")

    assert excinfo.value.status_code == 401
    assert excinfo.value.to_payload()["status_code"] == 401


@pytest.mark.anyio
async def test_refresh_exchange_connection_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(RefreshNetworkError):
        await _transport(handler).refresh_exchange("rt-1")


@pytest.mark.anyio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"refreshToken": "rt-2"}),
        httpx.Response(200, json={"token": ""}),
        httpx.Response(200, text="<html>ok</html>"),
        httpx.Response(200, json=["token"]),
    ],
)
async def test_refresh_exchange_invalid_response(response: httpx.Response):
    with pytest.raises(RefreshInvalidResponseError):
        await _transport(lambda request: response).refresh_exchange("rt-1")


# --------------------------------------------------------------------------- #
# Login & registration                                                        #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_login_returns_credential_and_user():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/auth/login"
        assert json.loads(request.content) == {"email": "a@b.c", "password": "pw"}
        return httpx.Response(
            200, json={"token": "at", "refreshToken": "rt", "user": {"id": 1}}
        )

    result = await _transport(handler).login("a@b.c", "pw")

    assert result.credential == Credential("at", "rt")
    assert result.user == {"id": 1}


@pytest.mark.anyio
async def test_login_failure_uses_server_message():
    api = _transport(lambda request: httpx.Response(401, json={"error": "Invalid credentials"}))

    with pytest.raises(LoginFailedError) as excinfo:
        await api.login("a@b.c", "bad")

    assert str(excinfo.value) == "Invalid credentials"
    assert excinfo.value.status_code == 401


@pytest.mark.anyio
async def test_register_sends_passkey_and_invited_token():
    bodies: list[tuple[str, dict]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append((request.url.path, json.loads(request.content)))
        return httpx.Response(201, json={"token": "at", "user": {"id": 2}})

    api = _transport(handler)
    await api.register("Ada", "a@b.c", "pw", passkey="pk")
    await api.register_invited("Ada", "a@b.c", "pw", "invite-1")

    assert bodies[0] == (
        "/api/auth/register",
        {"name": "Ada", "email": "a@b.c", "password": "pw", "passkey": "pk"},
    )
    assert bodies[1][0] == "/api/auth/register-invited"
    assert bodies[1][1]["token"] == "invite-1"


# --------------------------------------------------------------------------- #
# Raw send & logout                                                           #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_send_forwards_request_and_returns_error_status():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(404, json={"error": "missing"})

    resp = await _transport(handler).send(
        ApiRequest(
            "post",
            "/api/posts",
            json={"text": "hi"},
            params={"familyId": 3},
            headers={"Authorization": "Bearer at"},
        )
    )

    assert resp.status_code == 404
    assert seen == {
        "method": "POST",
        "url": "https://api.test/api/posts?familyId=3",
        "auth": "Bearer at",
        "body": {"text": "hi"},
    }


@pytest.mark.anyio
async def test_logout_sends_bearer():
    seen: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(200, json={})

    await _transport(handler).logout("at")

    assert seen == ["Bearer at"]


# --------------------------------------------------------------------------- #
# Invitation lookup                                                           #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_check_invitation_returns_server_payload():
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.raw_path.decode())
        assert "Authorization" not in request.headers
        return httpx.Response(200, json={"valid": True, "familyName": "Lovelace"})

    result = await _transport(handler).check_invitation("abc/123")

    assert result == {"valid": True, "familyName": "Lovelace"}
    assert seen == ["/api/invitations/check/abc%2F123"]


@pytest.mark.anyio
async def test_check_invitation_rejected_uses_server_message():
    api = _transport(lambda r: httpx.Response(404, json={"error": "Invitation expired"}))

    assert await api.check_invitation("old") == {"valid": False, "error": "Invitation expired"}


@pytest.mark.anyio
async def test_check_invitation_unreachable_is_invalid():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    result = await _transport(handler).check_invitation("abc")

    assert result == {"valid": False, "error": "Invalid invitation link"}


@pytest.mark.anyio
async def test_aclose_leaves_injected_client_open():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    api = ApiTransport(client=client)

    await api.aclose()

    assert not client.is_closed
    await client.aclose()
