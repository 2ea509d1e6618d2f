"""Context-carrying loggers for the session core.

Log lines from the pipeline and the session manager are easier to follow
when they name the request and the user they belong to.  Tokens must never
end up in those records, so :func:`get_session_logger` accepts a fixed set
of keyword arguments and drops everything that is ``None``:

``endpoint``
    API path, e.g. ``/api/feed``.
``correlation_id``
    Value of the request's ``X-Correlation-ID`` header.
``user_id``
    Signed-in user, cut to its first 8 characters.

Values passed through ``extra=`` at the call site win over the bound ones.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping


class _SessionLoggerAdapter(logging.LoggerAdapter):
    """Inject whitelisted session context into log records."""

    extra_keys = ("endpoint", "correlation_id", "user_id")

    def __init__(self, logger: logging.Logger, extra: Mapping[str, Any] | None = None):
        bound = {k: v for k, v in (extra or {}).items() if k in self.extra_keys and v is not None}
        if "user_id" in bound:
            bound["user_id"] = str(bound["user_id"])[:8]
        super().__init__(logger, bound)

    def process(self, msg: str, kwargs: MutableMapping[str, Any]):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_session_logger(
    *,
    base_logger_name: str = "famlynook.session",
    endpoint: str | None = None,
    correlation_id: str | None = None,
    user_id: str | int | None = None,
) -> logging.LoggerAdapter:
    """Return a LoggerAdapter pre-filled with session context."""
    logger = logging.getLogger(base_logger_name)
    return _SessionLoggerAdapter(
        logger,
        {
            "endpoint": endpoint,
            "correlation_id": correlation_id,
            "user_id": user_id,
        },
    )
