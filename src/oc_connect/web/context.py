from __future__ import annotations

from dataclasses import dataclass

from starlette.requests import Request

from oc_connect.core.config import ConnectConfig
from oc_connect.core.flow import AuthorizationFlow
from oc_connect.core.sessions import ApplicationSessionManager


@dataclass(frozen=True)
class ConnectAppContext:
    """
    Context holding the Open Console collaborators built at application
    startup.  Stored in ``app.state.connect`` and shared by all requests.
    """

    config: ConnectConfig
    sessions: ApplicationSessionManager
    flow: AuthorizationFlow
    login_on_startup: bool = True


def get_connect_context(request: Request) -> ConnectAppContext:
    """Return the context installed by :func:`oc_connect.web.app.create_app`."""
    context = getattr(request.app.state, "connect", None)
    if context is None:
        raise RuntimeError("Open Console connect context is not installed on this app")
    return context
