"""Unit tests for the /connect endpoints and the application factory."""

from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.testclient import TestClient

from connect_fakes import (
    CONNECT,
    INSTANCE,
    NOW,
    SERVICE_ID,
    WEBSITE,
    FakeClock,
    FakeProviderHttp,
)
from oc_connect.core.config import ConnectConfig
from oc_connect.core.errors import ConfigurationError
from oc_connect.core.provider import ProviderClient
from oc_connect.core.store import MemorySessionStore
from oc_connect.web import create_app, get_connect_context

# --------------------------------------------------------------------------- #
# Constants                                                                   #
# --------------------------------------------------------------------------- #
SESSION_SECRET = "cookie-signing-key"
GRANT = {"user": {"email": "user@example.test"}}


# --------------------------------------------------------------------------- #
# Fixtures                                                                    #
# --------------------------------------------------------------------------- #
@pytest.fixture()
def asgi_app(
    config: ConnectConfig, store: MemorySessionStore, provider: ProviderClient, clock: FakeClock
) -> Starlette:
    """Starlette app without startup login; tests log in explicitly."""
    app = create_app(
        config,
        store,
        session_secret=SESSION_SECRET,
        login_on_startup=False,
        provider=provider,
        https_only=False,
        clock=clock,
    )
    return app


@pytest.fixture()
async def client(asgi_app: Starlette):
    """Async HTTP client bound to the Starlette app."""
    transport = httpx.ASGITransport(app=asgi_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


def _login(app: Starlette) -> str:
    return app.state.connect.sessions.login().bearer


async def _start(client: httpx.AsyncClient, bearer: str) -> str:
    resp = await client.get("/connect/login", params={"session": bearer})
    assert resp.status_code == 303
    return parse_qs(urlsplit(resp.headers["location"]).query)["state"][0]


def _error(resp: httpx.Response) -> dict[str, list[str]]:
    assert resp.status_code == 303
    location = resp.headers["location"]
    assert location.startswith(f"{WEBSITE}/comply/error?")
    return parse_qs(urlsplit(location).query)


# --------------------------------------------------------------------------- #
# Health / correlation                                                        #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_health(client: httpx.AsyncClient) -> None:
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "instance": INSTANCE}
    assert resp.headers["x-correlation-id"]


@pytest.mark.anyio
async def test_correlation_id_is_adopted(client: httpx.AsyncClient) -> None:
    resp = await client.get("/health", headers={"X-Correlation-ID": "req-123"})
    assert resp.headers["x-correlation-id"] == "req-123"


# --------------------------------------------------------------------------- #
# Button                                                                      #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_button_without_session(client: httpx.AsyncClient) -> None:
    resp = await client.get("/connect/button")
    assert resp.status_code == 503
    assert resp.json() == {"error": "no application session"}


@pytest.mark.anyio
async def test_button(asgi_app: Starlette, client: httpx.AsyncClient) -> None:
    bearer = _login(asgi_app)
    resp = await client.get("/connect/button")
    assert resp.json() == {"session": bearer, "service": SERVICE_ID}


@pytest.mark.anyio
async def test_button_ignores_service_from_request(
    asgi_app: Starlette, client: httpx.AsyncClient
) -> None:
    resp = await client.get("/connect/button", params={"service_id": "svc-nope"})
    assert resp.status_code == 503

    bearer = _login(asgi_app)
    resp = await client.get("/connect/button", params={"service_id": "svc-nope"})
    assert resp.status_code == 200
    assert resp.json() == {"session": bearer, "service": SERVICE_ID}


# --------------------------------------------------------------------------- #
# Login redirect                                                              #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_login_redirects_to_provider(asgi_app: Starlette, client: httpx.AsyncClient) -> None:
    bearer = _login(asgi_app)
    resp = await client.get("/connect/login", params={"session": bearer, "scope": "email"})

    assert resp.status_code == 303
    location = resp.headers["location"]
    assert location.startswith(f"{CONNECT}/user/login?")
    query = parse_qs(urlsplit(location).query)
    assert query["client_id"] == [bearer]
    assert query["response_type"] == ["code"]
    assert query["scope"] == ["email"]
    assert "oc_connect" in resp.cookies


@pytest.mark.anyio
async def test_login_without_session_param(client: httpx.AsyncClient) -> None:
    assert _error(await client.get("/connect/login")) == {"error": ["E10"]}


@pytest.mark.anyio
async def test_login_unknown_session(client: httpx.AsyncClient) -> None:
    query = _error(await client.get("/connect/login", params={"session": "nope"}))
    assert query == {"error": ["E11"], "session": ["nope"]}


@pytest.mark.anyio
async def test_login_refresh_with_non_json_reply(
    asgi_app: Starlette,
    client: httpx.AsyncClient,
    fake_http: FakeProviderHttp,
    clock: FakeClock,
) -> None:
    bearer = _login(asgi_app)
    clock.now = NOW + 3601
    fake_http.login_body = "<html>maintenance</html>"

    query = _error(await client.get("/connect/login", params={"session": bearer}))
    assert query == {"error": ["E11"], "session": [bearer]}


# --------------------------------------------------------------------------- #
# Callback                                                                    #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_callback_returns_grant(asgi_app: Starlette, client: httpx.AsyncClient) -> None:
    bearer = _login(asgi_app)
    state = await _start(client, bearer)

    resp = await client.get(
        "/connect/callback", params={"client_id": bearer, "state": state, "code": "u-1"}
    )

    assert resp.status_code == 200
    assert resp.json() == {"grant": GRANT, "service": SERVICE_ID}


@pytest.mark.anyio
async def test_callback_state_mismatch(asgi_app: Starlette, client: httpx.AsyncClient) -> None:
    bearer = _login(asgi_app)
    await _start(client, bearer)

    resp = await client.get(
        "/connect/callback", params={"client_id": bearer, "state": "forged", "code": "u-1"}
    )
    assert _error(resp) == {"error": ["E04"], "session": [bearer]}


@pytest.mark.anyio
async def test_callback_replay_rejected(asgi_app: Starlette, client: httpx.AsyncClient) -> None:
    bearer = _login(asgi_app)
    state = await _start(client, bearer)
    params = {"client_id": bearer, "state": state, "code": "u-1"}

    assert (await client.get("/connect/callback", params=params)).status_code == 200
    assert _error(await client.get("/connect/callback", params=params))["error"] == ["E04"]


@pytest.mark.anyio
async def test_callback_missing_client_id(client: httpx.AsyncClient) -> None:
    assert _error(await client.get("/connect/callback"))["error"] == ["E01"]


@pytest.mark.anyio
async def test_callback_grant_refused(
    asgi_app: Starlette, client: httpx.AsyncClient, fake_http: FakeProviderHttp
) -> None:
    bearer = _login(asgi_app)
    state = await _start(client, bearer)
    fake_http.grant_status = 403

    resp = await client.get(
        "/connect/callback", params={"client_id": bearer, "state": state, "code": "u-1"}
    )
    query = _error(resp)
    assert query["error"] == ["E00"]
    assert query["message"] == ["Open Console did not release the user grant"]
    assert query["session"] == [bearer]


# --------------------------------------------------------------------------- #
# Application factory                                                         #
# --------------------------------------------------------------------------- #
def test_startup_logs_in(
    config: ConnectConfig,
    store: MemorySessionStore,
    provider: ProviderClient,
    fake_http: FakeProviderHttp,
    clock: FakeClock,
) -> None:
    app = create_app(
        config, store, session_secret=SESSION_SECRET, provider=provider, https_only=False, clock=clock
    )
    with TestClient(app) as tc:
        assert fake_http.login_count == 1
        assert tc.get("/connect/button").json()["session"] == "bearer-1"


def test_custom_grant_handler_and_prefix(
    config: ConnectConfig,
    store: MemorySessionStore,
    provider: ProviderClient,
    clock: FakeClock,
) -> None:
    def on_grant(request: Request, grant: dict, result) -> PlainTextResponse:
        return PlainTextResponse(f"welcome {grant['user']['email']} via {result.session.service_id}")

    app = create_app(
        config,
        store,
        session_secret=SESSION_SECRET,
        base_path="/oc",
        provider=provider,
        on_grant=on_grant,
        https_only=False,
        clock=clock,
    )
    with TestClient(app) as tc:
        bearer = tc.get("/oc/button").json()["session"]
        login = tc.get("/oc/login", params={"session": bearer}, follow_redirects=False)
        state = parse_qs(urlsplit(login.headers["location"]).query)["state"][0]
        resp = tc.get("/oc/callback", params={"client_id": bearer, "state": state, "code": "c"})

    assert resp.status_code == 200
    assert resp.text == f"welcome user@example.test via {SERVICE_ID}"


def test_create_app_requires_store(config: ConnectConfig) -> None:
    with pytest.raises(ConfigurationError):
        create_app(config, None, session_secret=SESSION_SECRET)


def test_context_missing() -> None:
    app = Starlette()
    request = Request({"type": "http", "app": app, "headers": []})
    with pytest.raises(RuntimeError):
        get_connect_context(request)


def test_button_for_configured_service(
    config: ConnectConfig,
    store: MemorySessionStore,
    provider: ProviderClient,
    clock: FakeClock,
) -> None:
    def app_for(service_id: str):
        return create_app(
            config,
            store,
            session_secret=SESSION_SECRET,
            provider=provider,
            button_service_id=service_id,
            https_only=False,
            clock=clock,
        )

    with TestClient(app_for("svc-never-logged-in")) as tc:
        resp = tc.get("/connect/button")
        assert resp.status_code == 503
        assert resp.json() == {"error": "no application session"}

    with TestClient(app_for(SERVICE_ID)) as tc:
        assert tc.get("/connect/button").json()["service"] == SERVICE_ID
