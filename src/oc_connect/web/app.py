"""Starlette application factory for "login via Open Console"."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.middleware import Middleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from oc_connect.core.clock import Clock, default_clock
from oc_connect.core.config import ConnectConfig
from oc_connect.core.flow import AuthorizationFlow
from oc_connect.core.provider import ProviderClient
from oc_connect.core.sessions import ApplicationSessionManager
from oc_connect.core.store import SessionStore
from oc_connect.web.context import ConnectAppContext, get_connect_context
from oc_connect.web.correlation import CorrelationIdMiddleware
from oc_connect.web.routes import GrantHandler, connect_routes

logger = logging.getLogger("oc-connect.web.app")


async def health_check(request: Request) -> JSONResponse:
    context = get_connect_context(request)
    return JSONResponse({"status": "ok", "instance": context.config.instance})


@asynccontextmanager
async def connect_lifespan(app: Starlette) -> AsyncIterator[None]:
    context: ConnectAppContext = app.state.connect
    logger.info("Open Console connect lifespan starting...")
    if context.login_on_startup:
        # ProviderError propagates: an application that cannot log in must not start
        session = await run_in_threadpool(context.sessions.login)
        logger.info(
            "Instance '%s' logged in for service %s",
            context.config.instance,
            session.service_id,
        )
    try:
        yield
    finally:
        logger.info("Open Console connect lifespan shutdown complete.")


def create_app(
    config: ConnectConfig,
    store: SessionStore | None,
    *,
    session_secret: str,
    base_path: str = "/connect",
    login_on_startup: bool = True,
    provider: ProviderClient | None = None,
    on_grant: GrantHandler | None = None,
    button_service_id: str | None = None,
    https_only: bool = True,
    clock: Clock = default_clock,
) -> Starlette:
    """Build a Starlette app serving the Open Console login endpoints.

    Args:
        config: Connection settings.
        store: Persistence for application sessions (required).
        session_secret: Key signing the browser session cookie which carries
            the login state.
        base_path: Prefix of the login endpoints.
        login_on_startup: Log the application in when the app starts.
        provider: Preconfigured provider client, mostly for tests.
        on_grant: Produces the response once the user grant arrived.
        button_service_id: Service whose stored session the login button
            advertises; defaults to the configured service token.
        https_only: Only send the session cookie over HTTPS.
        clock: Time source for expiry decisions.

    Returns:
        The configured application; ``app.state.connect`` holds the
        :class:`ConnectAppContext`.

    Raises:
        ConfigurationError: When the store is missing.
    """
    sessions = ApplicationSessionManager(config, store, provider=provider, clock=clock)
    flow = AuthorizationFlow(sessions)

    app = Starlette(
        routes=[
            Route("/health", health_check, methods=["GET"]),
            *connect_routes(
                flow, base_path=base_path, on_grant=on_grant, service_id=button_service_id
            ),
        ],
        middleware=[
            Middleware(CorrelationIdMiddleware),
            Middleware(
                SessionMiddleware,
                secret_key=session_secret,
                session_cookie="oc_connect",
                same_site="lax",
                https_only=https_only,
            ),
        ],
        lifespan=connect_lifespan,
    )
    app.state.connect = ConnectAppContext(
        config=config,
        sessions=sessions,
        flow=flow,
        login_on_startup=login_on_startup,
    )
    return app
