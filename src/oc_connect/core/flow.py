"""Authorization flow controller – login via Open Console.

The flow is a session-oriented variant of the OAuth 2.0 authorization-code
grant:

1. :meth:`AuthorizationFlow.button_setup` – the application renders a login
   button which carries the bearer of its current application session.
2. :meth:`AuthorizationFlow.initiate` – the user clicked the button; a state
   token is remembered in the browser session and the user is redirected to
   ``{connect}/user/login``.
3. :meth:`AuthorizationFlow.accept_callback` – Open Console authenticated the
   user, who now arrives back with ``client_id``, ``state`` and ``code``.
4. :meth:`AuthorizationFlow.fetch_grant` – the application collects the
   user's details via the back-channel.

Steps 2 and 3 never raise to the web framework for user errors: each failure
is funnelled through :class:`~oc_connect.core.reporter.ErrorReporter`, which
raises :class:`~oc_connect.core.errors.FlowError` carrying the redirect to the
provider's error page.

This module is HTTP-framework agnostic: request parameters are passed as a
``Mapping`` and the browser session as a ``MutableMapping``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, MutableMapping, Optional

import requests

from oc_connect.core.errors import ProviderError, ProviderUnreachableError, SessionNotFoundError
from oc_connect.core.log_utils import get_connect_logger, mask_sensitive
from oc_connect.core.models import ApplicationSession, SessionRef
from oc_connect.core.provider import USER_LOGIN_PATH, ProviderClient
from oc_connect.core.reporter import ErrorCode, ErrorReporter
from oc_connect.core.sessions import ApplicationSessionManager
from oc_connect.core.state import StateGuard

_LOG = logging.getLogger("oc-connect.core.flow")

GRANT_ENDPOINT = "user_grant"

# (flow, session, user_code, response-or-None)
GrantErrorHandler = Callable[
    ["AuthorizationFlow", ApplicationSession, str, Optional[requests.Response]], Any
]


@dataclass(frozen=True, slots=True)
class CallbackResult:
    """Outcome of a verified callback: the user code and its context."""

    code: str
    state: str
    session: ApplicationSession


def _default_grant_error(
    flow: "AuthorizationFlow",
    session: ApplicationSession,
    user_code: str,
    response: requests.Response | None,
) -> None:
    status = response.status_code if response is not None else "unreachable"
    _LOG.warning(
        "Failed to get grant for %s: %s", mask_sensitive(user_code, 4), status
    )


class AuthorizationFlow:
    """Drive both halves of the Open Console login redirect."""

    def __init__(
        self,
        sessions: ApplicationSessionManager,
        reporter: ErrorReporter | None = None,
        *,
        state_guard: StateGuard | None = None,
    ) -> None:
        self.sessions = sessions
        self.reporter = reporter or ErrorReporter(sessions.config.website)
        self.state_guard = state_guard or StateGuard()

    @property
    def provider(self) -> ProviderClient:
        return self.sessions.provider

    # ------------------------------------------------------------------ #
    # Button                                                             #
    # ------------------------------------------------------------------ #
    def button_setup(self, service_id: str | None = None) -> dict[str, str] | None:
        """Return the parameters needed to render the login button.

        With *service_id* storage decides which session is current (see
        :meth:`ApplicationSessionManager.get_session_for_service`); otherwise
        the configured service's session is taken, logging in again when it
        expired.  ``None`` means no session is available.
        """
        if service_id:
            session: ApplicationSession | None = self.sessions.get_session_for_service(
                service_id
            )
        else:
            session = self.sessions.get_session(self.sessions.config.service)
        if session is None:
            return None
        return {"session": session.bearer, "service": session.service_id}

    # ------------------------------------------------------------------ #
    # Redirect to Open Console                                           #
    # ------------------------------------------------------------------ #
    def initiate(
        self,
        params: Mapping[str, str],
        browser_session: MutableMapping[str, Any],
        *,
        scope: str | None = None,
        state: str | None = None,
    ) -> str:
        """Handle a click on the login button; return the provider redirect URL.

        Raises
        ------
        FlowError
            ``E10`` when the button passed no session, ``E11`` when that
            session is unknown.
        """
        session_id = params.get("session")
        if not session_id:
            self.reporter.report(ErrorCode.MISSING_SESSION)

        session = self.sessions.get_session(session_id)
        if session is None:
            self.reporter.report(ErrorCode.UNKNOWN_SESSION, session_id)

        state = state or self.state_guard.issue()
        self.state_guard.remember(browser_session, state)

        url = self.provider.url(
            USER_LOGIN_PATH,
            response_type="code",
            state=state,
            client_id=session_id,
            scope=scope or None,
        )
        get_connect_logger(
            base_logger_name="oc-connect.core.flow",
            service_id=session.service_id,
            session=session.bearer,
        ).info("Redirecting user to Open Console login")
        return url

    # ------------------------------------------------------------------ #
    # Callback from Open Console                                         #
    # ------------------------------------------------------------------ #
    def accept_callback(
        self,
        params: Mapping[str, str],
        browser_session: MutableMapping[str, Any],
    ) -> CallbackResult:
        """Verify the user returning from Open Console.

        Raises
        ------
        FlowError
            ``E01`` no client id, ``E02`` unknown session, ``E03`` no state,
            ``E04`` state mismatch, ``E05`` no user code.
        """
        session_id = params.get("client_id")
        if not session_id:
            self.reporter.report(ErrorCode.MISSING_CLIENT_ID)

        session = self.sessions.get_session(session_id)
        if session is None:
            self.reporter.report(ErrorCode.UNKNOWN_CLIENT_SESSION, session_id)

        state = params.get("state")
        if not state:
            self.reporter.report(ErrorCode.MISSING_STATE, session)

        valid = self.state_guard.check(browser_session, state)
        self.state_guard.discard(browser_session)
        if not valid:
            self.reporter.report(ErrorCode.STATE_MISMATCH, session)

        code = params.get("code")
        if not code:
            self.reporter.report(ErrorCode.MISSING_CODE, session)

        return CallbackResult(code=code, state=state, session=session)

    # ------------------------------------------------------------------ #
    # Back-channel                                                       #
    # ------------------------------------------------------------------ #
    def fetch_grant(
        self,
        ref: SessionRef,
        user_code: str,
        *,
        on_error: GrantErrorHandler | None = None,
    ) -> dict[str, Any] | None:
        """Collect the user's details via the back-channel.

        Every application session of this service may ask for the grant (you
        may be in a session transition, or run multiple instances).  A
        provider failure is not raised: *on_error* is called once and
        ``None`` is returned.

        Raises
        ------
        SessionNotFoundError
            *ref* does not resolve to an application session.
        ProviderError
            The session announced no ``user_grant`` endpoint.
        """
        session = self.sessions.resolve(ref)
        if session is None:
            raise SessionNotFoundError(
                f"No application session for grant of {mask_sensitive(user_code, 4)}"
            )

        where = self.sessions.endpoint(session, GRANT_ENDPOINT)
        if not where:
            raise ProviderError(f"Open Console announced no '{GRANT_ENDPOINT}' endpoint")

        handler = on_error or _default_grant_error
        try:
            # The session bearer is our security token.
            resp = self.provider.get_grant(where, code=user_code, bearer=session.bearer)
        except ProviderUnreachableError:
            handler(self, session, user_code, None)
            return None

        if resp.status_code != 200:
            handler(self, session, user_code, resp)
            return None

        try:
            return resp.json()
        except ValueError:
            handler(self, session, user_code, resp)
            return None
