"""In-process publish/subscribe channel for session lifecycle events.

One :class:`SessionEventBus` is created per session owner and injected into
every component that publishes or listens; there is no module-level bus.
Delivery is synchronous, in subscription order, on the emitter's context.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, ClassVar, Union

_LOG = logging.getLogger("famlynook.session.events")


@dataclass(frozen=True, slots=True)
class TokenRefreshed:
    type: ClassVar[str] = "token_refreshed"

    token: str

    def __repr__(self) -> str:
        return f"TokenRefreshed(token='{self.token[:6]}****')"


@dataclass(frozen=True, slots=True)
class RefreshFailed:
    type: ClassVar[str] = "refresh_failed"

    error: Exception
    retry_count: int


@dataclass(frozen=True, slots=True)
class AuthenticationRequired:
    type: ClassVar[str] = "authentication_required"

    retry_count: int


@dataclass(frozen=True, slots=True)
class AccessDenied:
    type: ClassVar[str] = "access_denied"

    details: str


SessionEvent = Union[TokenRefreshed, RefreshFailed, AuthenticationRequired, AccessDenied]
EventHandler = Callable[[SessionEvent], object]


class _Subscription:
    """One registration; identity distinguishes repeated handlers."""

    __slots__ = ("handler",)

    def __init__(self, handler: EventHandler) -> None:
        self.handler = handler


class SessionEventBus:
    """Fan session events out to every current subscriber."""

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []

    def __len__(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        """Register *handler* and return an idempotent unsubscribe callable."""
        subscription = _Subscription(handler)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            try:
                self._subscriptions.remove(subscription)
            except ValueError:
                pass  # already removed

        return unsubscribe

    def emit(self, event: SessionEvent) -> None:
        """Invoke every subscriber with *event*; handler failures are isolated."""
        _LOG.debug("Emitting %s to %d subscriber(s)", event.type, len(self._subscriptions))
        for subscription in tuple(self._subscriptions):
            try:
                subscription.handler(event)
            except Exception as exc:
                _LOG.error(
                    "Session event handler %r failed on %s: %s",
                    subscription.handler,
                    event.type,
                    exc,
                    exc_info=True,
                )

    def clear(self) -> None:
        """Drop every subscriber (application shutdown)."""
        self._subscriptions.clear()
