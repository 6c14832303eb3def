"""Clock abstraction and timestamp helpers for the Open Console session core.

This module defines a `Clock` protocol representing callables that return the
current UNIX timestamp as ``float``.  All expiry decisions inside
``oc_connect.core`` MUST depend on an injected ``Clock`` instance rather than
calling ``time.time()`` or ``datetime.now()`` directly.

Open Console exchanges timestamps as ISO-8601 strings (``2025-03-01T10:00:00Z``).
They are always normalised to timezone-aware UTC ``datetime`` objects before
being compared.

Example
-------
>>> from oc_connect.core.clock import parse_timestamp
>>> parse_timestamp("2025-03-01T10:00:00Z").isoformat()
'2025-03-01T10:00:00+00:00'
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Callable protocol returning *seconds* since the UNIX epoch."""

    def __call__(self) -> float: ...


def default_clock() -> float:
    """Default implementation that delegates to ``time.time()``.

    Returns
    -------
    float
        Seconds since the UNIX epoch.
    """
    return time.time()


def utc_now(clock: Clock = default_clock) -> datetime:
    """Return the current moment as a timezone-aware UTC ``datetime``."""
    return datetime.fromtimestamp(clock(), tz=timezone.utc)


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 timestamp into a UTC ``datetime``.

    Parameters
    ----------
    value:
        ISO-8601 string as sent by the provider, an existing ``datetime``
        or ``None``.

    Returns
    -------
    datetime | None
        Timezone-aware UTC value; ``None`` when *value* is ``None``.

    Raises
    ------
    ValueError
        If *value* is not a valid ISO-8601 timestamp.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    # Naive timestamps are UTC on the wire
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render *value* as ``YYYY-mm-DDTHH:MM:SSZ``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
