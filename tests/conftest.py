"""Shared fixtures wiring the session core to a fake Open Console provider."""

from __future__ import annotations

import pytest

from connect_fakes import (
    CONNECT,
    INSTANCE,
    SECRET,
    SERVICE_TOKEN,
    WEBSITE,
    FakeClock,
    FakeProviderHttp,
)
from oc_connect.core.config import ConnectConfig
from oc_connect.core.provider import ProviderClient
from oc_connect.core.sessions import ApplicationSessionManager
from oc_connect.core.store import MemorySessionStore


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def fake_http(clock: FakeClock) -> FakeProviderHttp:
    return FakeProviderHttp(clock)


@pytest.fixture()
def config() -> ConnectConfig:
    return ConnectConfig(
        secret=SECRET,
        service=SERVICE_TOKEN,
        connect=CONNECT,
        website=WEBSITE,
        instance=INSTANCE,
    )


@pytest.fixture()
def provider(config: ConnectConfig, fake_http: FakeProviderHttp) -> ProviderClient:
    return ProviderClient(config.connect, http=fake_http, timeout=config.http_timeout)  # type: ignore[arg-type]


@pytest.fixture()
def store(clock: FakeClock) -> MemorySessionStore:
    return MemorySessionStore(clock=clock)


@pytest.fixture()
def manager(
    config: ConnectConfig,
    store: MemorySessionStore,
    provider: ProviderClient,
    clock: FakeClock,
) -> ApplicationSessionManager:
    return ApplicationSessionManager(config, store, provider=provider, clock=clock)


# --------------------------------------------------------------------------- #
# Integration marker handling                                                 #
# --------------------------------------------------------------------------- #
def pytest_addoption(parser):
    """Add integration option to pytest."""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run integration tests",
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly requested.

    Tests marked with 'ci_safe' are always run because they stub every call
    to Open Console.
    """
    if not config.getoption("--integration", default=False):
        skip_integration = pytest.mark.skip(reason="Need --integration option to run")
        for item in items:
            if "integration" in item.keywords and "ci_safe" not in item.keywords:
                item.add_marker(skip_integration)
