"""Storage interface for Open Console session and grant records.

This module introduces the *narrow* persistence interface the session core
depends on (:class:`SessionStore`) plus two reference implementations:

* :class:`MemorySessionStore` – process-local, for tests and throw-away setups.
* :class:`DiskSessionStore` – one JSON file per object, for single-host
  deployments.

Neither is meant as a persistence engine: applications with a database plug
in their own object implementing :class:`SessionStore`.

Every object is saved as an envelope ``{"meta": {...}, "data": {...}}``.  The
``data`` part is the JSON structure handed to :meth:`SessionStore.save`;
``meta`` carries the indexed fields (``id``, ``type``, ``expires``,
``deprecates``, ``service``, ``remove``).  The ``remove`` horizon is
advisory: objects may be cleaned up after it passed, never before.

Environment variables
---------------------
OC_CONNECT_STORAGE_DIR
    Base directory for :class:`DiskSessionStore`.
    Defaults to ``~/.open-console/connect`` when unset.
"""

from __future__ import annotations

import copy
import json
import os
import threading
import time
from datetime import datetime
from hashlib import sha256
from pathlib import Path
from typing import Any, Final, Iterable, Protocol, runtime_checkable

from oc_connect.core.clock import Clock, default_clock, format_timestamp, parse_timestamp, utc_now

OBJECT_TYPES: Final[tuple[str, ...]] = ("appsession", "grant")

# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #


def _ensure_type(type_: str) -> None:
    if type_ not in OBJECT_TYPES:
        raise ValueError(f"unsupported object type '{type_}'")


def _hash(text: str, length: int = 32) -> str:
    return sha256(text.encode()).hexdigest()[:length]


def _stamp(value: str | datetime | None) -> str | None:
    if value is None:
        return None
    return format_timestamp(parse_timestamp(value))  # type: ignore[arg-type]


def _meta(
    type_: str,
    oid: str,
    *,
    expires: str | datetime | None,
    deprecates: str | datetime | None,
    service: str | None,
    remove: str | datetime | None,
) -> dict[str, Any]:
    return {
        "id": oid,
        "type": type_,
        "expires": _stamp(expires),
        "deprecates": _stamp(deprecates),
        "service": service,
        "remove": _stamp(remove),
    }


def _current_for_service(
    envelopes: Iterable[dict[str, Any]], service_id: str, now: datetime
) -> dict[str, Any] | None:
    """Pick the latest non-deprecated appsession envelope for *service_id*."""
    candidates = [
        env
        for env in envelopes
        if env["meta"]["type"] == "appsession" and env["meta"]["service"] == service_id
    ]
    if not candidates:
        return None
    candidates.sort(key=lambda env: env["saved"])
    active = [
        env
        for env in candidates
        if env["meta"]["deprecates"] is None
        or parse_timestamp(env["meta"]["deprecates"]) > now  # type: ignore[operator]
    ]
    return (active or candidates)[-1]


def _atomic_write(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as fh:
        json.dump(data, fh, separators=(",", ":"), sort_keys=True)
    os.replace(tmp, path)  # atomic on POSIX


# --------------------------------------------------------------------------- #
# public interface                                                            #
# --------------------------------------------------------------------------- #


@runtime_checkable
class SessionStore(Protocol):
    """Minimal persistence contract for the Open Console session core."""

    def load(self, type_: str, oid: str) -> dict[str, Any] | None: ...

    def save(
        self,
        type_: str,
        data: dict[str, Any],
        *,
        id: str,  # noqa: A002
        expires: str | datetime | None = None,
        deprecates: str | datetime | None = None,
        service: str | None = None,
        remove: str | datetime | None = None,
    ) -> None: ...

    def find_current_session_for_service(self, service_id: str) -> dict[str, Any] | None: ...


# --------------------------------------------------------------------------- #
# Memory implementation                                                       #
# --------------------------------------------------------------------------- #


class MemorySessionStore(SessionStore):
    """Dict-backed implementation of :class:`SessionStore`."""

    def __init__(self, *, clock: Clock = default_clock) -> None:
        self._clock = clock
        self._objects: dict[tuple[str, str], dict[str, Any]] = {}
        self._counter = 0
        self._lock = threading.Lock()

    def load(self, type_: str, oid: str) -> dict[str, Any] | None:
        _ensure_type(type_)
        with self._lock:
            env = self._objects.get((type_, oid))
            return copy.deepcopy(env["data"]) if env else None

    def save(
        self,
        type_: str,
        data: dict[str, Any],
        *,
        id: str,  # noqa: A002
        expires: str | datetime | None = None,
        deprecates: str | datetime | None = None,
        service: str | None = None,
        remove: str | datetime | None = None,
    ) -> None:
        _ensure_type(type_)
        meta = _meta(
            type_, id, expires=expires, deprecates=deprecates, service=service, remove=remove
        )
        with self._lock:
            self._counter += 1
            self._objects[(type_, id)] = {
                "meta": meta,
                "data": copy.deepcopy(data),
                "saved": self._counter,
            }

    def find_current_session_for_service(self, service_id: str) -> dict[str, Any] | None:
        with self._lock:
            env = _current_for_service(self._objects.values(), service_id, utc_now(self._clock))
            return copy.deepcopy(env["data"]) if env else None

    def meta(self, type_: str, oid: str) -> dict[str, Any] | None:
        """Return the indexed metadata saved with an object."""
        with self._lock:
            env = self._objects.get((type_, oid))
            return dict(env["meta"]) if env else None


# --------------------------------------------------------------------------- #
# Disk implementation                                                         #
# --------------------------------------------------------------------------- #


class DiskSessionStore(SessionStore):
    """JSON-file implementation of :class:`SessionStore`."""

    def __init__(
        self,
        base_dir: str | os.PathLike | None = None,
        *,
        clock: Clock = default_clock,
    ) -> None:
        self.base_dir = Path(
            base_dir
            or os.getenv("OC_CONNECT_STORAGE_DIR")
            or Path.home() / ".open-console" / "connect"
        ).expanduser()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._lock = threading.Lock()

    def _path(self, type_: str, oid: str) -> Path:
        # ids are credentials: never use them as file names
        return self.base_dir / type_ / f"{_hash(oid)}.json"

    def _read(self, path: Path) -> dict[str, Any] | None:
        if not path.exists():
            return None
        with path.open(encoding="utf-8") as fh:
            return json.load(fh)

    def load(self, type_: str, oid: str) -> dict[str, Any] | None:
        _ensure_type(type_)
        env = self._read(self._path(type_, oid))
        return env["data"] if env else None

    def save(
        self,
        type_: str,
        data: dict[str, Any],
        *,
        id: str,  # noqa: A002
        expires: str | datetime | None = None,
        deprecates: str | datetime | None = None,
        service: str | None = None,
        remove: str | datetime | None = None,
    ) -> None:
        _ensure_type(type_)
        meta = _meta(
            type_, id, expires=expires, deprecates=deprecates, service=service, remove=remove
        )
        with self._lock:
            _atomic_write(
                self._path(type_, id),
                {"meta": meta, "data": data, "saved": time.time_ns()},
            )

    def _envelopes(self, type_: str) -> list[dict[str, Any]]:
        envelopes = []
        for p in (self.base_dir / type_).glob("*.json"):
            env = self._read(p)
            if env:
                envelopes.append(env)
        return envelopes

    def find_current_session_for_service(self, service_id: str) -> dict[str, Any] | None:
        env = _current_for_service(
            self._envelopes("appsession"), service_id, utc_now(self._clock)
        )
        return env["data"] if env else None

    def meta(self, type_: str, oid: str) -> dict[str, Any] | None:
        """Return the indexed metadata saved with an object."""
        env = self._read(self._path(type_, oid))
        return env["meta"] if env else None

    # ---------------- maintenance ---------------------------------------- #
    def cleanup(self, now: datetime | None = None) -> int:
        """Delete objects whose ``remove`` horizon has passed; return the count."""
        now = now or utc_now(self._clock)
        removed = 0
        for type_ in OBJECT_TYPES:
            for p in (self.base_dir / type_).glob("*.json"):
                env = self._read(p)
                horizon = parse_timestamp(env["meta"].get("remove")) if env else None
                if horizon is not None and horizon <= now:
                    p.unlink(missing_ok=True)
                    removed += 1
        return removed


# --------------------------------------------------------------------------- #
# Convenience – default singleton                                            #
# --------------------------------------------------------------------------- #

_default_store: DiskSessionStore | None = None


def default_store() -> DiskSessionStore:
    """Return a process-wide singleton :class:`DiskSessionStore`."""
    global _default_store  # noqa: PLW0603
    if _default_store is None:
        _default_store = DiskSessionStore()
    return _default_store
