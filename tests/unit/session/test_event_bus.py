"""Unit tests for SessionEventBus delivery semantics."""

from __future__ import annotations

import logging

import pytest

from famlynook.session.events import (
    AccessDenied,
    AuthenticationRequired,
    RefreshFailed,
    SessionEventBus,
    TokenRefreshed,
)


def test_delivers_in_subscription_order() -> None:
    bus = SessionEventBus()
    calls: list[str] = []
    bus.subscribe(lambda e: calls.append(f"a:{e.type}"))
    bus.subscribe(lambda e: calls.append(f"b:{e.type}"))

    bus.emit(TokenRefreshed(token="tk"))
    bus.emit(AuthenticationRequired(retry_count=5))

    assert calls == [
        "a:token_refreshed",
        "b:token_refreshed",
        "a:authentication_required",
        "b:authentication_required",
    ]


def test_failing_handler_is_isolated(caplog: pytest.LogCaptureFixture) -> None:
    bus = SessionEventBus()
    seen: list[object] = []

    def broken(event):  # noqa: ANN001
        raise RuntimeError("handler bug")

    bus.subscribe(broken)
    bus.subscribe(seen.append)

    with caplog.at_level(logging.ERROR, logger="famlynook.session.events"):
        bus.emit(AccessDenied(details="not a member of this family"))

    assert seen == [AccessDenied(details="not a member of this family")]
    assert "handler bug" in caplog.text


def test_unsubscribe_is_idempotent_and_per_registration() -> None:
    bus = SessionEventBus()
    seen: list[object] = []
    first = bus.subscribe(seen.append)
    bus.subscribe(seen.append)

    first()
    first()
    bus.emit(AuthenticationRequired(retry_count=1))

    assert len(bus) == 1
    assert seen == [AuthenticationRequired(retry_count=1)]


def test_subscribers_added_during_emit_wait_for_next_event() -> None:
    bus = SessionEventBus()
    late: list[object] = []

    def subscribe_late(event):  # noqa: ANN001
        bus.subscribe(late.append)

    bus.subscribe(subscribe_late)
    bus.emit(AuthenticationRequired(retry_count=1))
    assert late == []

    bus.emit(AuthenticationRequired(retry_count=2))
    assert late == [AuthenticationRequired(retry_count=2)]


def test_clear_drops_all_subscribers() -> None:
    bus = SessionEventBus()
    seen: list[object] = []
    bus.subscribe(seen.append)

    bus.clear()
    bus.emit(RefreshFailed(error=RuntimeError("x"), retry_count=1))

    assert seen == [] and len(bus) == 0


def test_event_repr_masks_token() -> None:
    assert "secret-token" not in repr(TokenRefreshed(token="secret-token-value"))
