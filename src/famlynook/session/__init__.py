"""Session lifecycle core package.

This namespace hosts the **UI-agnostic** building blocks that keep a FamlyNook
user signed in: credential persistence, single-flight token refresh, the
authenticated request pipeline and the proactive refresh timer.

Sub-modules
-----------
clock
    Test-friendly time abstraction.
models
    Dataclasses for credentials, registration metadata and request descriptors.
errors
    Exception taxonomy of the session core.
store
    Async secret storage backends and the typed ``CredentialStore``.
events
    Session event types and the in-process event bus.
refresh
    ``RefreshCoordinator`` – single-flight, retry-bounded refresh exchange.
pipeline
    ``RequestPipeline`` – token attachment and replay-once after refresh.
scheduler
    ``ProactiveRefreshScheduler`` – background renewal timer.
service
    ``SessionManager`` – login / registration / logout lifecycle.
log_utils
    Structured logging helpers (thin wrapper around :pymod:`logging`).

All public objects are re-exported here for convenience.
"""

from __future__ import annotations

from .clock import Clock, default_clock  # noqa: F401
from .errors import (  # noqa: F401
    AccessDeniedError,
    GracePeriodActiveError,
    LoginFailedError,
    NoRefreshTokenError,
    RefreshInvalidResponseError,
    RefreshNetworkError,
    RetryBudgetExhaustedError,
    SessionError,
    StorageUnavailableError,
)
from .events import (  # noqa: F401
    AccessDenied,
    AuthenticationRequired,
    RefreshFailed,
    SessionEvent,
    SessionEventBus,
    TokenRefreshed,
)
from .log_utils import get_session_logger  # noqa: F401
from .models import ApiRequest, Credential, LoginResult, RetryBudget, ScheduleState, SessionMeta  # noqa: F401
from .pipeline import RequestPipeline  # noqa: F401
from .refresh import RefreshCoordinator  # noqa: F401
from .scheduler import ProactiveRefreshScheduler  # noqa: F401
from .service import SessionManager  # noqa: F401
from .store import (  # noqa: F401
    CredentialStore,
    DiskSecretStore,
    MemorySecretStore,
    SecretName,
    SecretStore,
)

__all__ = [
    # clock
    "Clock",
    "default_clock",
    # errors
    "SessionError",
    "NoRefreshTokenError",
    "RefreshNetworkError",
    "RefreshInvalidResponseError",
    "GracePeriodActiveError",
    "RetryBudgetExhaustedError",
    "AccessDeniedError",
    "StorageUnavailableError",
    "LoginFailedError",
    # events
    "SessionEvent",
    "SessionEventBus",
    "TokenRefreshed",
    "RefreshFailed",
    "AuthenticationRequired",
    "AccessDenied",
    # models
    "ApiRequest",
    "Credential",
    "LoginResult",
    "RetryBudget",
    "ScheduleState",
    "SessionMeta",
    # components
    "CredentialStore",
    "DiskSecretStore",
    "MemorySecretStore",
    "SecretName",
    "SecretStore",
    "RefreshCoordinator",
    "RequestPipeline",
    "ProactiveRefreshScheduler",
    "SessionManager",
    # logging helpers
    "get_session_logger",
]
