"""Exception types raised by the session core.

Only lightweight, **data-carrying** exceptions live here so that callers can
turn them into user-facing messages.  ``to_payload()`` never includes tokens.
"""

from __future__ import annotations

from typing import Any


class SessionError(RuntimeError):
    """Base class for every session lifecycle failure."""

    code: str = "session_error"
    default_message: str = "Session error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-serialisable payload **without secrets**."""
        return {"error": self.code, "message": str(self)}


class NoRefreshTokenError(SessionError):
    """No refresh token is persisted (after logout or corrupted storage)."""

    code = "no_refresh_token"
    default_message = "No refresh token available."


class RefreshNetworkError(SessionError):
    """The refresh endpoint could not be reached or answered with an error."""

    code = "refresh_network_error"
    default_message = "Token refresh request failed."

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.status_code is not None:
            payload["status_code"] = self.status_code
        return payload


class RefreshInvalidResponseError(SessionError):
    """The refresh endpoint succeeded but returned no usable access token."""

    code = "refresh_invalid_response"
    default_message = "Invalid refresh response."


class GracePeriodActiveError(SessionError):
    """Refresh skipped because the account was registered moments ago."""

    code = "grace_period_active"
    default_message = "Account is within its registration grace period."


class RetryBudgetExhaustedError(SessionError):
    """Too many consecutive refresh failures; a full login is required."""

    code = "retry_budget_exhausted"
    default_message = "Session expired, please log in again."

    def __init__(self, message: str | None = None, *, retry_count: int = 0) -> None:
        super().__init__(message)
        self.retry_count = retry_count

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["retry_count"] = self.retry_count
        return payload


class AccessDeniedError(SessionError):
    """Domain-level 403 (family membership), unrelated to token validity."""

    code = "access_denied"
    default_message = "You do not have access to this family."

    def __init__(self, message: str | None = None, *, details: str | None = None) -> None:
        super().__init__(message)
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["details"] = self.details
        return payload


class StorageUnavailableError(SessionError):
    """The secret storage backend could not be read or written."""

    code = "storage_unavailable"
    default_message = "Secure storage is unavailable."


class LoginFailedError(SessionError):
    """Login or registration was rejected or could not be completed."""

    code = "login_failed"
    default_message = "Login failed. Please try again."

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.status_code is not None:
            payload["status_code"] = self.status_code
        return payload
