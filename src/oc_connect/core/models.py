"""Typed, immutable records used by the Open Console session core."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping, Union

from oc_connect.core.clock import parse_timestamp


@dataclass(frozen=True, slots=True)
class LoginParams:
    """Credentials used for ``/application/login``; needed again on refresh."""

    service: str
    secret: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class ApplicationSession:
    """One trust relationship between this application instance and Open Console.

    ``record`` is the provider's login reply exactly as it was persisted; the
    other fields are derived from it.
    """

    bearer: str
    service_id: str
    expires: datetime
    endpoints: Mapping[str, str] = field(default_factory=dict, hash=False)
    deprecates: datetime | None = None
    login_params: LoginParams | None = field(default=None, compare=False)
    record: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_record(
        cls,
        record: Mapping[str, Any],
        login_params: LoginParams | None = None,
    ) -> "ApplicationSession":
        """Build a session from the JSON reply of ``/application/login``.

        Raises
        ------
        ValueError
            If the reply lacks the session bearer or its expiry.
        """
        session = record.get("session") or {}
        bearer = session.get("bearer")
        expires = parse_timestamp(session.get("expires"))
        if not bearer or expires is None:
            raise ValueError("application session record lacks bearer or expires")

        service = record.get("service") or {}
        return cls(
            bearer=bearer,
            service_id=str(service.get("id", "")),
            expires=expires,
            endpoints=MappingProxyType(dict(record.get("endpoints") or {})),
            deprecates=parse_timestamp(session.get("deprecates")),
            login_params=login_params,
            record=record,
        )

    def is_expired(self, now: datetime) -> bool:
        """Return *True* once ``expires`` lies before *now*.

        A session expiring exactly at *now* is still valid.
        """
        return self.expires < now

    def is_deprecated(self, now: datetime) -> bool:
        """Return *True* when Open Console asked to adopt a newer session."""
        return self.deprecates is not None and self.deprecates <= now


@dataclass(frozen=True, slots=True)
class Bearer:
    """Reference to an application session by its bearer token."""

    value: str


@dataclass(frozen=True, slots=True)
class ServiceId:
    """Reference to the current application session of a service."""

    value: str


# A plain ``str`` is an opaque cache key: bearer, service token or service id.
SessionRef = Union[ApplicationSession, Bearer, ServiceId, str]


def ref_key(ref: Bearer | ServiceId | str) -> str:
    """Return the cache key addressed by *ref*."""
    if isinstance(ref, (Bearer, ServiceId)):
        return ref.value
    return ref
