"""HTTP-level tests for the wearable endpoints via FastAPI's TestClient."""

from __future__ import annotations

import time
from urllib.parse import parse_qs, urlsplit

import httpx
import jwt as pyjwt
import pytest
from fastapi.testclient import TestClient

from wearsync.config import Settings
from wearsync.main import create_app
from wearsync.wearables.config_loader import ProviderCatalog
from wearsync.wearables.oauth1 import SignatureEngine
from wearsync.wearables.service import build_wearable_services
from wearsync.wearables.state import encode_state
from wearsync.wearables.stores import Stores
from wearsync.wearables.tests.conftest import (
    JWT_SECRET,
    SYNC_KEY,
    TEST_CLIENT_ID,
    TEST_USER_ID,
    FakeProviderAPI,
    make_connection,
)

BASE = "/api/v1/wearables"
INTEGRATIONS = "https://app.example.com/dashboard/client/integrations"
AGGREGATE_URL = "https://www.googleapis.com/fitness/v1/users/me/dataset:aggregate"


def make_token(sub: str = TEST_USER_ID, *, audience: str = "authenticated", expires_in: int = 3600) -> str:
    claims = {
        "sub": sub,
        "aud": audience,
        "role": "authenticated",
        "email": "client@example.com",
        "exp": int(time.time()) + expires_in,
    }
    return pyjwt.encode(claims, JWT_SECRET, algorithm="HS256")


def auth(sub: str = TEST_USER_ID) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(sub)}"}


@pytest.fixture
def client(
    settings: Settings,
    stores: Stores,
    http_client: httpx.AsyncClient,
    signer: SignatureEngine,
    catalog: ProviderCatalog,
) -> TestClient:
    services = build_wearable_services(
        settings, stores=stores, http_client=http_client, signer=signer, catalog=catalog
    )
    # no context manager: the lifespan (DB pool, reaper) is not started
    return TestClient(create_app(settings, services), follow_redirects=False)


def _add(stores: Stores, provider: str, **overrides) -> str:
    connection = make_connection(provider, **overrides)
    stores.connections.rows[connection.id] = connection
    return connection.id


class TestHealth:
    def test_health_is_public(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["database"] == "unreachable"
        assert body["status"] == "degraded"


class TestAuthentication:
    def test_missing_bearer(self, client: TestClient) -> None:
        response = client.post(f"{BASE}/authorize", json={"provider": "fitbit"})
        assert response.status_code == 401
        assert response.json() == {"error": "Missing or invalid Authorization header"}

    def test_expired_token(self, client: TestClient) -> None:
        token = make_token(expires_in=-60)
        response = client.post(
            f"{BASE}/authorize", json={"provider": "fitbit"}, headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401
        assert response.json() == {"error": "Token expired"}

    def test_wrong_audience(self, client: TestClient) -> None:
        token = make_token(audience="anon")
        response = client.post(
            f"{BASE}/authorize", json={"provider": "fitbit"}, headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid token"}


class TestAuthorizeRoute:
    def test_returns_auth_url(self, client: TestClient) -> None:
        response = client.post(f"{BASE}/authorize", json={"provider": "fitbit"}, headers=auth())
        assert response.status_code == 200
        assert response.json()["authUrl"].startswith("https://www.fitbit.com/oauth2/authorize?")

    def test_unknown_provider(self, client: TestClient) -> None:
        response = client.post(f"{BASE}/authorize", json={"provider": "whoop"}, headers=auth())
        assert response.status_code == 400
        assert response.json() == {"error": "Unsupported provider: whoop"}

    def test_apple_health(self, client: TestClient) -> None:
        response = client.post(f"{BASE}/authorize", json={"provider": "apple_health"}, headers=auth())
        assert response.status_code == 400
        assert response.json() == {"error": "Apple Health requires the native app"}

    def test_garmin_provider_failure_is_400(self, client: TestClient, api: FakeProviderAPI) -> None:
        api.add(
            "POST",
            "https://connectapi.garmin.com/oauth-service/oauth/request_token",
            status=503,
            text="maintenance",
        )
        response = client.post(f"{BASE}/authorize", json={"provider": "garmin"}, headers=auth())
        assert response.status_code == 400
        assert "maintenance" not in response.text


class TestCallbackRoute:
    def test_callback_needs_no_auth_and_redirects(
        self, client: TestClient, stores: Stores, api: FakeProviderAPI
    ) -> None:
        api.add(
            "POST",
            "https://api.fitbit.com/oauth2/token",
            json={"access_token": "fa", "expires_in": 28800, "user_id": "ABC123"},
        )
        state = encode_state(TEST_USER_ID, "fitbit")

        response = client.get(f"{BASE}/callback", params={"code": "c0de", "state": state})

        assert response.status_code == 302
        assert response.headers["location"] == f"{INTEGRATIONS}?connected=fitbit"
        assert len(stores.connections.rows) == 1

    def test_unknown_oauth_token_redirects_with_error(self, client: TestClient) -> None:
        response = client.get(f"{BASE}/callback", params={"oauth_token": "x", "oauth_verifier": "y"})
        assert response.status_code == 302
        location = response.headers["location"]
        assert location.startswith(f"{INTEGRATIONS}?")
        assert parse_qs(urlsplit(location).query)["error"] == [
            "Authorization session expired. Please try connecting again."
        ]

    def test_no_params_still_redirects(self, client: TestClient) -> None:
        response = client.get(f"{BASE}/callback")
        assert response.status_code == 302
        assert "error=Invalid+callback+parameters" in response.headers["location"]


class TestSyncRoute:
    def test_sync_own_connection(self, client: TestClient, stores: Stores, api: FakeProviderAPI) -> None:
        api.add("POST", AGGREGATE_URL, json={"bucket": []})
        connection_id = _add(stores, "google_fit")

        response = client.post(f"{BASE}/sync", json={"connectionId": connection_id}, headers=auth())

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["dataPoints"] == 0
        assert body["status"] == "success"
        assert stores.connections.rows[connection_id].last_synced_at is not None

    def test_partial_sync_reports_failures(self, client: TestClient, stores: Stores) -> None:
        connection_id = _add(stores, "google_fit")

        response = client.post(f"{BASE}/sync", json={"connectionId": connection_id}, headers=auth())

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["status"] == "partial"
        assert {f["endpoint"] for f in body["failures"]} == {"steps", "heart_rate", "calories"}

    def test_someone_elses_connection(self, client: TestClient, stores: Stores) -> None:
        connection_id = _add(stores, "google_fit", client_id="another-client")
        response = client.post(f"{BASE}/sync", json={"connectionId": connection_id}, headers=auth())
        assert response.status_code == 400
        assert response.json() == {"error": "Connection not found or inactive"}

    def test_caller_without_profile(self, client: TestClient) -> None:
        response = client.post(
            f"{BASE}/sync", json={"connectionId": "conn-x"}, headers=auth("no-profile-user")
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Client profile not found"}


class TestSyncAllRoute:
    @pytest.mark.parametrize("headers", [{}, {"X-Sync-Key": "wrong"}, {"X-Sync-Key": ""}])
    def test_requires_sync_key(self, client: TestClient, stores: Stores, headers: dict) -> None:
        _add(stores, "google_fit")

        response = client.post(f"{BASE}/sync-all", headers=headers)

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid sync key"}
        assert stores.connections.rows["conn-google_fit"].last_synced_at is None

    def test_syncs_active_connections(self, client: TestClient, stores: Stores, api: FakeProviderAPI) -> None:
        api.add("POST", AGGREGATE_URL, json={"bucket": []})
        _add(stores, "google_fit")
        _add(stores, "apple_health")

        response = client.post(f"{BASE}/sync-all", headers={"X-Sync-Key": SYNC_KEY})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["synced"] == 1
        assert body["errors"] == 0
        assert body["results"] == [
            {
                "connectionId": "conn-google_fit",
                "provider": "google_fit",
                "dataPoints": 0,
                "status": "success",
                "error": None,
            }
        ]


class TestConnectionsRoute:
    def test_list_hides_tokens(self, client: TestClient, stores: Stores) -> None:
        _add(stores, "fitbit", provider_user_id="ABC123", refresh_token="secret-refresh")
        _add(stores, "google_fit", id="foreign", client_id="another-client")

        response = client.get(f"{BASE}/connections", headers=auth())

        assert response.status_code == 200
        [connection] = response.json()
        assert connection["id"] == "conn-fitbit"
        assert connection["providerUserId"] == "ABC123"
        assert connection["isActive"] is True
        assert "secret-refresh" not in response.text
        assert "fitbit-access-token" not in response.text

    def test_revoke_is_soft_delete(self, client: TestClient, stores: Stores) -> None:
        connection_id = _add(stores, "garmin", token_secret="s")

        response = client.delete(f"{BASE}/connections/{connection_id}", headers=auth())

        assert response.status_code == 204
        assert stores.connections.rows[connection_id].is_active is False
        assert stores.connections.rows[connection_id].client_id == TEST_CLIENT_ID

    def test_revoke_unknown(self, client: TestClient) -> None:
        response = client.delete(f"{BASE}/connections/missing", headers=auth())
        assert response.status_code == 400
