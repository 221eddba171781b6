"""Shared fixtures and a fake provider API for wearable integration tests."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

import httpx
import pytest

from wearsync.config import Settings
from wearsync.wearables.adapters import build_adapters
from wearsync.wearables.base import Connection, ProviderAdapter
from wearsync.wearables.config_loader import ProviderCatalog, load_provider_catalog
from wearsync.wearables.oauth1 import SignatureEngine
from wearsync.wearables.stores import Stores, memory_stores

# Canonical test identities
TEST_USER_ID = "12345678-1234-5678-1234-567812345678"
TEST_CLIENT_ID = "c0ffee00-0000-4000-8000-000000000001"
TEST_NOW = datetime(2026, 2, 23, 12, 0, tzinfo=timezone.utc)
TEST_TIMESTAMP = int(TEST_NOW.timestamp())
TEST_NONCE = "kllo9940pd9333jh"

JWT_SECRET = "test-supabase-jwt-secret-at-least-32-bytes"
SYNC_KEY = "test-sync-all-key"


# ---------------------------------------------------------------------------
# Fake provider API
# ---------------------------------------------------------------------------


class FakeProviderAPI:
    """Routes outgoing httpx requests to canned responses.

    Routes are keyed by (METHOD, scheme://host/path); the query string is
    ignored for matching but kept on the recorded request.

    Usage::

        api.add("POST", "https://api.fitbit.com/oauth2/token", json={...})
        api.add("GET", url, status=500, text="boom")
        api.add("GET", url, handler=lambda request: httpx.Response(200, json=...))
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self,
        method: str,
        url: str,
        *,
        status: int = 200,
        json: Any = None,
        text: str | None = None,
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
    ) -> None:
        if handler is None:
            def handler(request: httpx.Request) -> httpx.Response:
                if text is not None:
                    return httpx.Response(status, text=text)
                return httpx.Response(status, json=json if json is not None else {})
        self.routes[(method.upper(), url)] = handler

    def calls(self, url: str, method: str | None = None) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if _route_url(r) == url and (method is None or r.method == method.upper())
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, _route_url(request)))
        if handler is None:
            return httpx.Response(404, json={"error": "not mocked"})
        return handler(request)


def _route_url(request: httpx.Request) -> str:
    return f"{request.url.scheme}://{request.url.host}{request.url.path}"


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Settings with every provider configured."""
    return Settings(
        app_url="https://app.example.com",
        api_public_url="https://api.example.com",
        supabase_jwt_secret=JWT_SECRET,
        google_fit_client_id="gf-client-id",
        google_fit_client_secret="gf-client-secret",
        fitbit_client_id="fb-client-id",
        fitbit_client_secret="fb-client-secret",
        garmin_consumer_key="garmin-consumer-key",
        garmin_consumer_secret="garmin-consumer-secret",
        sync_all_key=SYNC_KEY,
        oauth_state_secret="",
    )


@pytest.fixture
def catalog() -> ProviderCatalog:
    """Real providers.yaml, with Fitbit pacing disabled so tests run fast."""
    loaded = load_provider_catalog()
    loaded.providers["fitbit"].request_delay_ms = 0
    return loaded


@pytest.fixture
def signer() -> SignatureEngine:
    """Signing engine with a pinned clock and nonce."""
    return SignatureEngine(clock=lambda: TEST_TIMESTAMP, nonce_fn=lambda: TEST_NONCE)


@pytest.fixture
def api() -> FakeProviderAPI:
    return FakeProviderAPI()


@pytest.fixture
def http_client(api: FakeProviderAPI) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(api))


@pytest.fixture
def adapters(
    settings: Settings,
    catalog: ProviderCatalog,
    signer: SignatureEngine,
    http_client: httpx.AsyncClient,
) -> dict[str, ProviderAdapter]:
    return build_adapters(settings, signer, catalog=catalog, http_client=http_client)


@pytest.fixture
def stores() -> Stores:
    """In-memory stores with one known profile."""
    return memory_stores({TEST_USER_ID: TEST_CLIENT_ID})


def make_connection(provider: str, **overrides: Any) -> Connection:
    fields: dict[str, Any] = {
        "id": f"conn-{provider}",
        "client_id": TEST_CLIENT_ID,
        "provider": provider,
        "access_token": f"{provider}-access-token",
    }
    fields.update(overrides)
    return Connection(**fields)


def fixed_clock(when: datetime = TEST_NOW) -> Callable[[], datetime]:
    return lambda: when
