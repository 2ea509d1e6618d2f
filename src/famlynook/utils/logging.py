"""Logging helpers that keep secrets out of log output."""

from __future__ import annotations


def mask_sensitive(value: str | None, keep_chars: int = 4) -> str:
    """Return *value* with everything after the first *keep_chars* masked.

    >>> mask_sensitive("eyJhbGciOiJIUzI1NiJ9", 6)
    'eyJhbG****'
    >>> mask_sensitive(None)
    '<none>'
    """
    if not value:
        return "<none>"
    if len(value) <= keep_chars:
        return "*" * len(value)
    return f"{value[:keep_chars]}****"
