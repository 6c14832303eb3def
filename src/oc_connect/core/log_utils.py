"""Structured logging helpers for the Open Console session core.

This module purposefully restricts **which** contextual attributes are attached
to log records in order to avoid accidentally leaking credentials.  All helpers
ONLY inject the following *non-sensitive* fields:

- ``service_id``     – The provider-assigned service identifier
- ``session``        – The application session bearer (first 6 chars kept)
- ``instance``       – Symbolic name of this application instance
- ``correlation_id`` – Request correlation id, wired by the web layer

Usage
-----
>>> from oc_connect.core.log_utils import get_connect_logger
>>> log = get_connect_logger(
...     base_logger_name="oc-connect.core.flow",
...     service_id="svc-12",
...     session="f3a9b1c2d4e5f60718293a4b",
... )
>>> log.info("Redirecting user to Open Console")
INFO oc-connect.core.flow service_id=svc-12 session=f3a9b1 ...

The adapter is a thin wrapper around :class:`logging.LoggerAdapter`.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping


def mask_sensitive(value: str | None, keep: int = 4) -> str:
    """Return *value* with everything but the first *keep* characters masked."""
    if not value:
        return "<empty>"
    if len(value) <= keep:
        return "*" * len(value)
    return f"{value[:keep]}****"


class _ConnectLoggerAdapter(logging.LoggerAdapter):
    """Inject whitelisted connect context into log records."""

    extra_keys = ("service_id", "session", "instance", "correlation_id")

    def __init__(self, logger: logging.Logger, extra: Mapping[str, Any] | None = None):
        extra_clean: MutableMapping[str, Any] = {}
        for k in self.extra_keys:
            if not extra or extra.get(k) is None:
                continue
            if k == "session":
                # the bearer is a credential: keep only a short prefix
                extra_clean[k] = str(extra[k])[:6]
            else:
                extra_clean[k] = extra[k]
        super().__init__(logger, extra_clean)

    def process(self, msg: str, kwargs: MutableMapping[str, Any]):
        if "extra" not in kwargs or kwargs["extra"] is None:
            kwargs["extra"] = {}
        # merge but do not overwrite call-site provided extras
        for k, v in self.extra.items():
            kwargs["extra"].setdefault(k, v)
        return msg, kwargs


def get_connect_logger(
    *,
    base_logger_name: str = "oc-connect.core",
    service_id: str | None = None,
    session: str | None = None,
    instance: str | None = None,
    correlation_id: str | None = None,
) -> logging.LoggerAdapter:
    """Return a LoggerAdapter pre-filled with connect context."""
    logger = logging.getLogger(base_logger_name)
    return _ConnectLoggerAdapter(
        logger,
        {
            "service_id": service_id,
            "session": session,
            "instance": instance,
            "correlation_id": correlation_id,
        },
    )
