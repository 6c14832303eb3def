"""Starlette integration of the Open Console login flow."""

from __future__ import annotations

from .app import create_app  # noqa: F401
from .context import ConnectAppContext, get_connect_context  # noqa: F401
from .correlation import CorrelationIdMiddleware  # noqa: F401
from .routes import connect_routes, register_connect_routes  # noqa: F401

__all__ = [
    "create_app",
    "ConnectAppContext",
    "get_connect_context",
    "CorrelationIdMiddleware",
    "connect_routes",
    "register_connect_routes",
]
