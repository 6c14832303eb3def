"""Exception types raised by the Open Console session core.

Only lightweight, **data-carrying** exceptions live here so that web layers
can transform them into HTTP responses or redirects.

Fatal errors (:class:`ConfigurationError` and its subclasses) are meant to
reach the host application.  :class:`FlowError` describes a failed user login
attempt and is always turned into a redirect to the provider's error page.
"""

from __future__ import annotations


class ConnectError(Exception):
    """Base class of all errors raised by ``oc_connect``."""


class ConfigurationError(ConnectError):
    """A required collaborator or setting is missing; not recoverable at runtime."""


class NeverLoggedInError(ConfigurationError):
    """Raised when storage holds no application session for a service."""

    def __init__(self, service_id: str) -> None:
        super().__init__(f"Service {service_id} has never logged-in")
        self.service_id: str = service_id


class SessionNotFoundError(ConnectError, LookupError):
    """Raised when a session reference cannot be resolved where one is required."""


class ProviderError(ConnectError):
    """Communication with Open Console failed."""


class ProviderUnreachableError(ProviderError):
    """The provider could not be reached (network error, timeout)."""


class ProviderRejectedError(ProviderError):
    """The provider answered, but not with ``200 OK``."""

    def __init__(
        self,
        *,
        status: int,
        message: str,
        instance: str | None = None,
        endpoint: str | None = None,
    ) -> None:
        super().__init__(
            f"Application '{instance}' cannot login to '{endpoint}': {message}"
            if instance
            else f"Open Console returned {status}: {message}"
        )
        self.status: int = status
        self.message: str = message
        self.instance: str | None = instance
        self.endpoint: str | None = endpoint


class FlowError(ConnectError):
    """A user login attempt failed; the user must be sent to *location*."""

    def __init__(
        self,
        *,
        code: str,
        location: str,
        message: str | None = None,
    ) -> None:
        super().__init__(message or f"Login flow failed with {code}")
        self.code: str = code
        self.location: str = location
        self.message: str | None = message

    def to_payload(self) -> dict[str, str]:
        """Return a JSON-serialisable payload **without secrets**."""
        payload = {"error": self.code, "location": self.location}
        if self.message:
            payload["message"] = self.message
        return payload
