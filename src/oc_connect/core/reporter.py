"""Redirect failed logins to the error page hosted by Open Console.

Every failure in the login flow is reported with a short code (``E01`` ..
``E11``).  Open Console renders the user-facing, translated message for it,
so this application does not need an error UI of its own.

A free-form (already translated) message can be reported too; it travels as
the generic code ``E00`` plus a ``message`` parameter.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Final, NoReturn
from urllib.parse import urlencode

from oc_connect.core.errors import FlowError
from oc_connect.core.log_utils import mask_sensitive
from oc_connect.core.models import ApplicationSession, Bearer, ServiceId

_LOG = logging.getLogger("oc-connect.core.reporter")

ERROR_PATH: Final[str] = "/comply/error"
_CODE_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Z][0-9][0-9]$")


class ErrorCode(str, Enum):
    """Error codes understood by the Open Console error page."""

    GENERIC = "E00"
    MISSING_CLIENT_ID = "E01"
    UNKNOWN_CLIENT_SESSION = "E02"
    MISSING_STATE = "E03"
    STATE_MISMATCH = "E04"
    MISSING_CODE = "E05"
    MISSING_SESSION = "E10"
    UNKNOWN_SESSION = "E11"

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_DESCRIPTIONS: Final[dict[ErrorCode, str]] = {
    ErrorCode.GENERIC: "Login failed",
    ErrorCode.MISSING_CLIENT_ID: "Open Console did not return the client id",
    ErrorCode.UNKNOWN_CLIENT_SESSION: "The application session of the callback is unknown",
    ErrorCode.MISSING_STATE: "Open Console did not return the login state",
    ErrorCode.STATE_MISMATCH: "The login state does not match this browser session",
    ErrorCode.MISSING_CODE: "Open Console did not return a user code",
    ErrorCode.MISSING_SESSION: "The login button did not pass its session",
    ErrorCode.UNKNOWN_SESSION: "The session of the login button is unknown or expired",
}


def _session_param(session: ApplicationSession | Bearer | ServiceId | str | None) -> str | None:
    if session is None:
        return None
    if isinstance(session, ApplicationSession):
        return session.bearer
    if isinstance(session, (Bearer, ServiceId)):
        return session.value
    return session or None


class ErrorReporter:
    """Build (and raise) redirects to ``{website}/comply/error``."""

    def __init__(self, website: str) -> None:
        self.website = website.rstrip("/")

    def location(
        self,
        code: ErrorCode | str,
        session: ApplicationSession | Bearer | ServiceId | str | None = None,
    ) -> str:
        """Return the error page URL for *code* (or a free-form message)."""
        value = code.value if isinstance(code, ErrorCode) else str(code)
        if _CODE_RE.match(value):
            form = {"error": value}
        else:
            form = {"error": ErrorCode.GENERIC.value, "message": value}

        session_id = _session_param(session)
        if session_id:
            form["session"] = session_id
        return f"{self.website}{ERROR_PATH}?{urlencode(form)}"

    def report(
        self,
        code: ErrorCode | str,
        session: ApplicationSession | Bearer | ServiceId | str | None = None,
    ) -> NoReturn:
        """Stop processing the request: raise a :class:`FlowError` to redirect."""
        location = self.location(code, session)
        value = code.value if isinstance(code, ErrorCode) else str(code)
        is_code = bool(_CODE_RE.match(value))
        _LOG.info(
            "Login flow failed with %s session=%s",
            value if is_code else ErrorCode.GENERIC.value,
            mask_sensitive(_session_param(session), 6),
        )
        raise FlowError(
            code=value if is_code else ErrorCode.GENERIC.value,
            location=location,
            message=None if is_code else value,
        )
