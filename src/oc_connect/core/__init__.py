"""Open Console connect core package.

This namespace hosts reusable, **HTTP-agnostic** building blocks for logging
users in via Open Console.

Sub-modules
-----------
clock
    Test-friendly time abstraction and ISO-8601 helpers.
tokens
    Random token generation.
models
    Immutable dataclasses for application sessions and session references.
store
    Storage interface plus memory and JSON-file reference stores.
provider
    ``requests`` client for the Open Console Connect API.
config
    Connection settings.
sessions
    Application session manager (login, refresh, lookup).
state
    Anti-replay ``state`` guard bound to the browser session.
reporter
    Error codes and redirects to the provider's error page.
flow
    Authorization flow controller.
errors
    Exception types used by the core.
log_utils
    Structured logging helpers (thin wrapper around :pymod:`logging`).

All public objects are re-exported here for convenience.
"""

from __future__ import annotations

from .clock import Clock, default_clock, parse_timestamp, utc_now  # noqa: F401
from .tokens import random_token  # noqa: F401
from .models import ApplicationSession, Bearer, LoginParams, ServiceId, SessionRef  # noqa: F401
from .store import DiskSessionStore, MemorySessionStore, SessionStore, default_store  # noqa: F401
from .provider import ProviderClient  # noqa: F401
from .config import ConnectConfig  # noqa: F401
from .sessions import ApplicationSessionManager  # noqa: F401
from .state import StateGuard  # noqa: F401
from .reporter import ErrorCode, ErrorReporter  # noqa: F401
from .flow import AuthorizationFlow, CallbackResult  # noqa: F401
from .errors import (  # noqa: F401
    ConfigurationError,
    ConnectError,
    FlowError,
    NeverLoggedInError,
    ProviderError,
    ProviderRejectedError,
    ProviderUnreachableError,
    SessionNotFoundError,
)
from .log_utils import get_connect_logger  # noqa: F401

__all__ = [
    # clock
    "Clock",
    "default_clock",
    "parse_timestamp",
    "utc_now",
    # tokens
    "random_token",
    # models
    "ApplicationSession",
    "Bearer",
    "LoginParams",
    "ServiceId",
    "SessionRef",
    # store
    "SessionStore",
    "MemorySessionStore",
    "DiskSessionStore",
    "default_store",
    # provider & config
    "ProviderClient",
    "ConnectConfig",
    # session / flow
    "ApplicationSessionManager",
    "StateGuard",
    "ErrorCode",
    "ErrorReporter",
    "AuthorizationFlow",
    "CallbackResult",
    # errors
    "ConnectError",
    "ConfigurationError",
    "NeverLoggedInError",
    "SessionNotFoundError",
    "ProviderError",
    "ProviderUnreachableError",
    "ProviderRejectedError",
    "FlowError",
    # logging helpers
    "get_connect_logger",
]
