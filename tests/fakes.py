"""Test doubles shared by the unit and integration suites."""

from __future__ import annotations

import asyncio
from typing import Callable

import httpx

from famlynook.session.errors import RefreshNetworkError, SessionError
from famlynook.session.models import ApiRequest, Credential


class FakeClock:
    """Mutable clock returning ``now`` seconds."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport:
    """Scriptable stand-in for :class:`famlynook.api.transport.ApiTransport`.

    ``refresh_results`` is consumed in order; each item is either a
    :class:`Credential` or an exception to raise.  When exhausted a fresh
    credential ``new-tk-<n>`` is returned.  ``responder`` builds the response
    for ``send``.
    """

    def __init__(self, responder: Callable[[ApiRequest], httpx.Response] | None = None) -> None:
        self.responder = responder or (lambda request: make_response(200, {"ok": True}, request))
        self.refresh_results: list[Credential | Exception] = []
        self.refresh_calls: list[str] = []
        self.refresh_delay = 0.0
        self.refresh_gate: asyncio.Event | None = None
        self.sent: list[dict] = []
        self.logout_calls: list[str | None] = []
        self.closed = False

    async def refresh_exchange(self, refresh_token: str) -> Credential:
        self.refresh_calls.append(refresh_token)
        if self.refresh_gate is not None:
            await self.refresh_gate.wait()
        if self.refresh_delay:
            await asyncio.sleep(self.refresh_delay)
        if self.refresh_results:
            result = self.refresh_results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return Credential(access_token=f"new-tk-{len(self.refresh_calls)}", refresh_token="new-rt")

    async def send(self, request: ApiRequest) -> httpx.Response:
        self.sent.append({"path": request.path, "headers": dict(request.headers)})
        await asyncio.sleep(0)
        return self.responder(request)

    async def logout(self, access_token: str | None) -> None:
        self.logout_calls.append(access_token)

    async def aclose(self) -> None:
        self.closed = True


def make_response(status: int, payload: object, request: ApiRequest) -> httpx.Response:
    return httpx.Response(
        status,
        json=payload,
        request=httpx.Request(request.method, f"https://api.test{request.path}"),
    )


def failing_refresh(n: int) -> list[SessionError]:
    return [RefreshNetworkError("boom", status_code=500) for _ in range(n)]
