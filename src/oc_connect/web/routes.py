"""Browser-facing endpoints for "login via Open Console".

Handlers are intentionally thin:

1. Parse HTTP-layer parameters.
2. Delegate the flow to ``AuthorizationFlow`` (in a worker thread, as the
   provider calls block).
3. Return an appropriate Starlette ``Response`` type.

User-flow failures surface as :class:`~oc_connect.core.errors.FlowError` and
are answered with a ``303`` redirect to the error page hosted by Open Console.

The base path is configurable (default: ``/connect``) so that reverse-proxies
can mount the application under arbitrary prefixes.

SECURITY NOTE
-------------
• No raw secrets (state, bearers, user codes, service tokens) are ever
  logged.
• The ``state`` is kept in ``request.session``; install Starlette's
  ``SessionMiddleware`` so the cookie carrying it is signed.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Union

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from oc_connect.core.errors import FlowError, NeverLoggedInError, SessionNotFoundError
from oc_connect.core.flow import AuthorizationFlow, CallbackResult
from oc_connect.web.correlation import correlation_id

_LOG = logging.getLogger("oc-connect.web.routes")

GrantHandler = Callable[
    [Request, dict[str, Any], CallbackResult], Union[Response, Awaitable[Response]]
]


def _redirect(location: str) -> RedirectResponse:
    # 303 See Other for GET safety across methods
    return RedirectResponse(location, status_code=303)


async def _default_on_grant(
    request: Request, grant: dict[str, Any], result: CallbackResult
) -> Response:
    return JSONResponse({"grant": grant, "service": result.session.service_id})


# --------------------------------------------------------------------------- #
# Public API                                                                  #
# --------------------------------------------------------------------------- #
def connect_routes(
    flow: AuthorizationFlow,
    *,
    base_path: str = "/connect",
    on_grant: GrantHandler | None = None,
    service_id: str | None = None,
) -> list[Route]:
    """Return the login endpoints, mounted under *base_path*.

    *service_id* selects the session the login button advertises; by default
    it is the session of the configured service token.
    """
    grant_handler = on_grant or _default_on_grant

    # ----- GET /connect/button -------------------------------------------- #
    async def _button(request: Request) -> Response:
        try:
            setup = await run_in_threadpool(flow.button_setup, service_id)
        except (NeverLoggedInError, SessionNotFoundError) as err:
            _LOG.warning("No login button available: %s", err)
            setup = None
        if setup is None:
            return JSONResponse({"error": "no application session"}, status_code=503)
        return JSONResponse(setup)

    # ----- GET /connect/login --------------------------------------------- #
    async def _login(request: Request) -> Response:
        try:
            location = await run_in_threadpool(
                flow.initiate,
                request.query_params,
                request.session,
                scope=request.query_params.get("scope"),
            )
        except FlowError as err:
            return _redirect(err.location)

        _LOG.info(
            "Login button clicked correlation_id=%s",
            correlation_id(request),
        )
        return _redirect(location)

    # ----- GET /connect/callback ------------------------------------------ #
    async def _callback(request: Request) -> Response:
        try:
            result = await run_in_threadpool(
                flow.accept_callback, request.query_params, request.session
            )
        except FlowError as err:
            return _redirect(err.location)

        grant = await run_in_threadpool(flow.fetch_grant, result.session, result.code)
        if grant is None:
            return _redirect(
                flow.reporter.location(
                    "Open Console did not release the user grant", result.session
                )
            )

        _LOG.info(
            "Login via Open Console accepted service=%s correlation_id=%s",
            result.session.service_id,
            correlation_id(request),
        )
        response = grant_handler(request, grant, result)
        if inspect.isawaitable(response):
            response = await response
        return response

    return [
        Route(f"{base_path}/button", _button, methods=["GET"]),
        Route(f"{base_path}/login", _login, methods=["GET"]),
        Route(f"{base_path}/callback", _callback, methods=["GET"]),
    ]


def register_connect_routes(
    app: Starlette,
    flow: AuthorizationFlow,
    *,
    base_path: str = "/connect",
    on_grant: GrantHandler | None = None,
    service_id: str | None = None,
) -> None:
    """Attach the login endpoints to *app* under *base_path*."""
    app.router.routes.extend(
        connect_routes(flow, base_path=base_path, on_grant=on_grant, service_id=service_id)
    )
