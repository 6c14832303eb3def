"""State parameter guard for the Open Console OAuth 2.0 web-flow.

In OAuth2, the ``state`` parameter is used by the client (by your
application) to guarantee that incoming approvals originate from your login
button, and not from a fake button made by someone else on another website.

The state value is random and unpredictable, and it is administered in the
user's browser session.  That carrier must be tamper-evident: with
Starlette's ``SessionMiddleware`` the cookie is signed, so the user cannot
set or modify the expected state.  No server-side persistence is needed.

Logging
-------
State values are *never* written to logs.
"""

from __future__ import annotations

import hmac
import logging
from typing import Any, Final, MutableMapping

from oc_connect.core.tokens import random_token

_LOG = logging.getLogger("oc-connect.core.state")

STATE_KEY: Final[str] = "connect_state"


class StateGuard:
    """Issue and verify anti-replay state tokens bound to a browser session."""

    def __init__(self, key: str = STATE_KEY) -> None:
        self.key = key

    def issue(self) -> str:
        """Return a new, unguessable state token."""
        return random_token()

    def remember(self, browser_session: MutableMapping[str, Any], token: str) -> None:
        """Store *token* in the user's browser session."""
        browser_session[self.key] = token
        _LOG.debug("Remembered login state in browser session")

    def check(self, browser_session: MutableMapping[str, Any], candidate: str | None) -> bool:
        """Return *True* when *candidate* equals the remembered token exactly."""
        expect = browser_session.get(self.key) or ""
        if not expect or not candidate:
            return False
        return hmac.compare_digest(str(expect).encode(), candidate.encode())

    def discard(self, browser_session: MutableMapping[str, Any]) -> None:
        """Forget the remembered token; a state is only valid for one callback."""
        browser_session.pop(self.key, None)
