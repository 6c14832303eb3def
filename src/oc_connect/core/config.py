"""Configuration of the Open Console connection.

Settings can be given explicitly, taken from the host application's
configuration (a mapping, usually found under an ``OpenConsole`` key), or read
from the environment.  Explicit values always win.

Environment variables
---------------------
OC_CONNECT_URL   provider base URL (default ``https://connect.open-console.eu``)
OC_SECRET        application secret, required
OC_INSTANCE      symbolic instance name (default: the host's FQDN)
OC_SERVICE       service token assigned by Open Console, required
OC_WEBSITE       public site used for error pages (default ``https://open-console.eu``)
OC_TIMEOUT       provider read timeout in seconds (default 20)
OC_RETENTION     seconds records are kept after expiry (default 86400)
"""

from __future__ import annotations

import logging
import os
import socket
from dataclasses import dataclass, field
from typing import Any, Final, Mapping

from oc_connect.core.errors import ConfigurationError

logger = logging.getLogger("oc-connect.core.config")

DEFAULT_CONNECT: Final[str] = "https://connect.open-console.eu"
DEFAULT_WEBSITE: Final[str] = "https://open-console.eu"
DEFAULT_TIMEOUT: Final[float] = 20.0
DEFAULT_RETENTION: Final[int] = 24 * 3600

_ENV_KEYS: Final[dict[str, str]] = {
    "connect": "OC_CONNECT_URL",
    "secret": "OC_SECRET",
    "instance": "OC_INSTANCE",
    "service": "OC_SERVICE",
    "website": "OC_WEBSITE",
    "timeout": "OC_TIMEOUT",
    "retention": "OC_RETENTION",
}


@dataclass(frozen=True)
class ConnectConfig:
    """Settings needed to talk to Open Console on behalf of one service."""

    secret: str = field(repr=False)
    service: str = field(repr=False)
    connect: str = DEFAULT_CONNECT
    website: str = DEFAULT_WEBSITE
    instance: str = ""
    timeout: float = DEFAULT_TIMEOUT
    retention: int = DEFAULT_RETENTION

    def __post_init__(self) -> None:
        if not self.secret:
            raise ConfigurationError("No secret configured for Open Console")
        if not self.service:
            raise ConfigurationError("No service token configured for Open Console")
        # frozen: normalise via object.__setattr__
        object.__setattr__(self, "connect", (self.connect or DEFAULT_CONNECT).rstrip("/"))
        object.__setattr__(self, "website", (self.website or DEFAULT_WEBSITE).rstrip("/"))
        object.__setattr__(self, "instance", self.instance or socket.getfqdn())
        object.__setattr__(self, "timeout", float(self.timeout))
        object.__setattr__(self, "retention", int(self.retention))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None = None, **overrides: Any) -> "ConnectConfig":
        """Merge application settings with explicit *overrides* (which win)."""
        merged: dict[str, Any] = {k: v for k, v in (mapping or {}).items() if k in _ENV_KEYS}
        merged.update({k: v for k, v in overrides.items() if v is not None})
        unknown = set(merged) - set(_ENV_KEYS)
        if unknown:
            raise ConfigurationError(f"Unknown Open Console settings: {sorted(unknown)}")
        return cls(
            secret=merged.get("secret") or "",
            service=merged.get("service") or "",
            connect=merged.get("connect") or DEFAULT_CONNECT,
            website=merged.get("website") or DEFAULT_WEBSITE,
            instance=merged.get("instance") or "",
            timeout=merged.get("timeout") or DEFAULT_TIMEOUT,
            retention=merged.get("retention") or DEFAULT_RETENTION,
        )

    @classmethod
    def from_env(cls, **overrides: Any) -> "ConnectConfig":
        """Read settings from ``OC_*`` environment variables."""
        values = {name: os.getenv(env) for name, env in _ENV_KEYS.items()}
        values = {k: v for k, v in values.items() if v}
        logger.debug("Open Console settings from environment: %s", sorted(values))
        return cls.from_mapping(values, **overrides)

    @property
    def http_timeout(self) -> tuple[float, float]:
        """``(connect, read)`` timeout for ``requests``."""
        return (min(5.0, self.timeout), self.timeout)
