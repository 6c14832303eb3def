"""Application session manager.

An *application session* is the trust relationship between this application
instance and Open Console.  It is obtained by logging in with the long-lived
service token and a secret, and expires after a while; the provider then
expects a new login.

The manager owns the in-memory cache of sessions.  Each session is reachable
under several keys: its bearer, the service token used to log in and the
provider's service id.  During a refresh the old bearer is re-pointed to the
new session, so requests still carrying the old bearer land in the same slot.

Persisted copies live in the :class:`~oc_connect.core.store.SessionStore`;
this module never deletes them, it only marks a ``remove`` horizon.

Concurrency
-----------
Cache reads and writes happen under one re-entrant lock.  Refreshing is
single-flight per service token: a second thread that finds the same stale
session waits for the running login and adopts its result instead of logging
in again.
"""

from __future__ import annotations

import logging
import threading
from datetime import timedelta

from oc_connect.core.clock import Clock, default_clock, utc_now
from oc_connect.core.config import ConnectConfig
from oc_connect.core.errors import (
    ConfigurationError,
    NeverLoggedInError,
    ProviderError,
    SessionNotFoundError,
)
from oc_connect.core.log_utils import get_connect_logger, mask_sensitive
from oc_connect.core.models import (
    ApplicationSession,
    Bearer,
    LoginParams,
    ServiceId,
    SessionRef,
    ref_key,
)
from oc_connect.core.provider import ProviderClient
from oc_connect.core.store import SessionStore

_LOG = logging.getLogger("oc-connect.core.sessions")


class ApplicationSessionManager:
    """Start, continue and refresh application sessions with Open Console."""

    def __init__(
        self,
        config: ConnectConfig,
        store: SessionStore | None,
        *,
        provider: ProviderClient | None = None,
        clock: Clock = default_clock,
    ) -> None:
        if store is None:
            raise ConfigurationError("No session store given")
        self.config = config
        self.store = store
        self.provider = provider or ProviderClient(config.connect, timeout=config.http_timeout)
        self.clock = clock
        # bearer, service token and service id as mixed keys
        self._cache: dict[str, ApplicationSession] = {}
        self._lock = threading.RLock()
        self._refresh_locks: dict[str, threading.Lock] = {}

    # ------------------------------------------------------------------ #
    # Login                                                              #
    # ------------------------------------------------------------------ #
    def login(self, service: str | None = None, secret: str | None = None) -> ApplicationSession:
        """Create a new application session, even when one already exists.

        *service* and *secret* overrule the configured values.

        Raises
        ------
        ConfigurationError
            No service token or secret available.
        ProviderUnreachableError, ProviderRejectedError
            The login call failed.
        """
        service = service or self.config.service
        secret = secret or self.config.secret
        if not service or not secret:
            raise ConfigurationError("Application login needs a service token and a secret")
        return self._login(LoginParams(service=service, secret=secret))

    def _login(
        self, params: LoginParams, *, replaces: ApplicationSession | None = None
    ) -> ApplicationSession:
        reply = self.provider.login(
            service=params.service, instance=self.config.instance, secret=params.secret
        )
        try:
            session = ApplicationSession.from_record(reply, params)
        except ValueError as exc:
            raise ProviderError(f"Malformed application login reply: {exc}") from exc

        self.store.save(
            "appsession",
            reply,
            id=session.bearer,
            expires=session.expires,  # when the server forgets
            deprecates=session.deprecates,  # when to stop using
            service=session.service_id,  # for search
            remove=session.expires + timedelta(seconds=self.config.retention),
        )

        aliases = [params.service]
        if replaces is not None:
            aliases.append(replaces.bearer)
        self._remember(session, *aliases)

        get_connect_logger(
            base_logger_name="oc-connect.core.sessions",
            service_id=session.service_id,
            session=session.bearer,
            instance=self.config.instance,
        ).info(
            "Application session %s obtained (expires %s)",
            mask_sensitive(session.bearer, 6),
            session.expires.isoformat(),
        )
        return session

    # ------------------------------------------------------------------ #
    # Lookup                                                             #
    # ------------------------------------------------------------------ #
    def get_session(self, ref: SessionRef, *, fresh: bool = False) -> ApplicationSession | None:
        """Start or continue an application session.

        *ref* may be a bearer, a service token, a service id or a session
        object.  When the session has expired (or *fresh* is requested) a new
        login is made with the parameters of the original one.  That may
        fail, in which case ``None`` is returned.
        """
        if isinstance(ref, ApplicationSession):
            session: ApplicationSession | None = self.cached(ref.bearer) or ref
        else:
            session = self.cached(ref_key(ref)) or self._load(ref)
            if session is None:
                return None

        if not fresh and not session.is_expired(utc_now(self.clock)):
            return session

        return self._refresh(session, fresh=fresh)

    def resolve(self, ref: SessionRef) -> ApplicationSession | None:
        """Return *ref* itself when it is a session object, else look it up."""
        if isinstance(ref, ApplicationSession):
            return ref
        return self.get_session(ref)

    def get_session_for_service(self, service_id: str) -> ApplicationSession:
        """Return the latest application session for *service_id* from storage.

        The cache is not trusted here: button rendering must reflect the
        session storage considers current.

        Raises
        ------
        NeverLoggedInError
            Storage knows no session for the service.
        SessionNotFoundError
            The stored record is unusable.
        """
        record = self.store.find_current_session_for_service(service_id)
        if not record:
            raise NeverLoggedInError(service_id)

        try:
            session = ApplicationSession.from_record(record)
        except ValueError as exc:
            raise SessionNotFoundError(
                f"Stored session of service {service_id} is malformed: {exc}"
            ) from exc
        known = self.cached(session.bearer)
        if known is not None and known.login_params is not None:
            session = known
        self._remember(session)
        return session

    def endpoint(self, ref: SessionRef, name: str) -> str | None:
        """Return the URL of a named endpoint, as announced at login."""
        session = self.resolve(ref)
        return session.endpoints.get(name) if session else None

    def cached(self, key: str) -> ApplicationSession | None:
        """Peek into the cache; no storage or network access."""
        with self._lock:
            return self._cache.get(key)

    # ---------------- internal helpers --------------------------------- #
    def _remember(self, session: ApplicationSession, *aliases: str) -> None:
        with self._lock:
            for key in (session.bearer, session.service_id, *aliases):
                if key:
                    self._cache[key] = session

    def _load(self, ref: Bearer | ServiceId | str) -> ApplicationSession | None:
        key = ref_key(ref)
        if isinstance(ref, ServiceId):
            record = self.store.find_current_session_for_service(key)
        else:
            record = self.store.load("appsession", key)

        if not record:
            _LOG.warning("Session %s cannot be found", mask_sensitive(key, 6))
            return None

        try:
            session = ApplicationSession.from_record(record)
        except ValueError as exc:
            _LOG.warning("Session %s is malformed: %s", mask_sensitive(key, 6), exc)
            return None
        self._remember(session, key)
        return session

    def _refresh_lock(self, service: str) -> threading.Lock:
        with self._lock:
            return self._refresh_locks.setdefault(service, threading.Lock())

    def _refresh(self, stale: ApplicationSession, *, fresh: bool) -> ApplicationSession | None:
        # Sessions reloaded from storage do not carry the secret
        params = stale.login_params or LoginParams(
            service=self.config.service, secret=self.config.secret
        )

        with self._refresh_lock(params.service):
            # Another thread may have refreshed while we waited.
            current = self.cached(stale.bearer)
            if (
                current is not None
                and current.bearer != stale.bearer
                and (fresh or not current.is_expired(utc_now(self.clock)))
            ):
                return current

            try:
                return self._login(params, replaces=stale)
            except ProviderError as exc:
                _LOG.warning(
                    "Refresh of application session %s failed: %s",
                    mask_sensitive(stale.bearer, 6),
                    exc,
                )
                return None
