"""End-to-end login via Open Console with a disk-backed session store.

The provider is stubbed, so these tests are safe for CI.
"""

from __future__ import annotations

from pathlib import Path
from urllib.parse import parse_qs, urlsplit

import pytest
from starlette.testclient import TestClient

from connect_fakes import NOW, SERVICE_ID, FakeClock, FakeProviderHttp
from oc_connect.core.config import ConnectConfig
from oc_connect.core.provider import ProviderClient
from oc_connect.core.store import DiskSessionStore
from oc_connect.web import create_app

pytestmark = [pytest.mark.integration, pytest.mark.ci_safe]

SESSION_SECRET = "integration-cookie-key"


def _app(config, store, provider, clock, *, login_on_startup: bool = True):
    return create_app(
        config,
        store,
        session_secret=SESSION_SECRET,
        login_on_startup=login_on_startup,
        provider=provider,
        https_only=False,
        clock=clock,
    )


def _user_login(tc: TestClient, bearer: str) -> dict:
    resp = tc.get("/connect/login", params={"session": bearer}, follow_redirects=False)
    assert resp.status_code == 303
    state = parse_qs(urlsplit(resp.headers["location"]).query)["state"][0]
    resp = tc.get("/connect/callback", params={"client_id": bearer, "state": state, "code": "u-1"})
    assert resp.status_code == 200
    return resp.json()


def test_login_flow_survives_restart(
    tmp_path: Path,
    config: ConnectConfig,
    provider: ProviderClient,
    fake_http: FakeProviderHttp,
    clock: FakeClock,
) -> None:
    with TestClient(_app(config, DiskSessionStore(tmp_path), provider, clock)) as tc:
        bearer = tc.get("/connect/button").json()["session"]
        assert _user_login(tc, bearer)["service"] == SERVICE_ID

    # A new process: empty cache, same storage, no startup login
    restarted = _app(config, DiskSessionStore(tmp_path), provider, clock, login_on_startup=False)
    with TestClient(restarted) as tc:
        button = restarted.state.connect.flow.button_setup(SERVICE_ID)
        assert button == {"session": bearer, "service": SERVICE_ID}
        assert _user_login(tc, bearer)["grant"] == fake_http.grant_body

    assert fake_http.login_count == 1
    assert len(fake_http.gets) == 2


def test_expired_session_refreshed_during_user_login(
    tmp_path: Path,
    config: ConnectConfig,
    provider: ProviderClient,
    fake_http: FakeProviderHttp,
    clock: FakeClock,
) -> None:
    store = DiskSessionStore(tmp_path)
    with TestClient(_app(config, store, provider, clock)) as tc:
        bearer = tc.get("/connect/button").json()["session"]

    restarted = _app(config, store, provider, clock, login_on_startup=False)
    clock.now = NOW + 3601
    with TestClient(restarted) as tc:
        _user_login(tc, bearer)

    assert fake_http.login_count == 2
    assert fake_http.gets[-1]["headers"] == {"Authorization": "Bearer bearer-2"}
    assert store.load("appsession", "bearer-1") is not None
    assert store.load("appsession", "bearer-2") is not None
