"""Clock abstraction for testable time handling in the session core.

This module defines a `Clock` protocol representing callables that return the
current UNIX timestamp as ``float``.  All time-based decisions inside the
session package (grace periods, refresh cadence) MUST depend on an injected
``Clock`` instance rather than calling ``time.time()`` directly.

Example
-------
>>> from famlynook.session.clock import default_clock, to_millis
>>> isinstance(to_millis(default_clock()), int)
True
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Callable protocol returning *seconds* since the UNIX epoch."""

    def __call__(self) -> float: ...


def default_clock() -> float:
    """Default implementation that delegates to ``time.time()``."""
    return time.time()


def to_millis(seconds: float) -> int:
    """Convert an epoch timestamp in seconds to integer milliseconds."""
    return int(seconds * 1000)
