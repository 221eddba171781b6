"""Tests for CallbackHandler — every outcome is a redirect, never an exception."""

from __future__ import annotations

from datetime import timedelta
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from wearsync.config import Settings
from wearsync.wearables.authorize import AuthorizationStarter
from wearsync.wearables.base import OAuthTokens, ProviderAdapter, TempToken
from wearsync.wearables.callback import GENERIC_FAILURE, CallbackHandler, CallbackOutcome
from wearsync.wearables.errors import ErrorCode
from wearsync.wearables.state import encode_state
from wearsync.wearables.stores import Stores
from wearsync.wearables.tests.conftest import (
    TEST_CLIENT_ID,
    TEST_NOW,
    TEST_USER_ID,
    FakeProviderAPI,
    fixed_clock,
)

REQUEST_TOKEN_URL = "https://connectapi.garmin.com/oauth-service/oauth/request_token"
ACCESS_TOKEN_URL = "https://connectapi.garmin.com/oauth-service/oauth/access_token"
FITBIT_TOKEN_URL = "https://api.fitbit.com/oauth2/token"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
SESSION_EXPIRED = "Authorization session expired. Please try connecting again."


@pytest.fixture
def handler(adapters: dict[str, ProviderAdapter], stores: Stores, settings: Settings) -> CallbackHandler:
    return CallbackHandler(
        adapters, stores.connections, stores.temp_tokens, stores.profiles, settings, clock=fixed_clock()
    )


@pytest.fixture
def starter(adapters: dict[str, ProviderAdapter], stores: Stores, settings: Settings) -> AuthorizationStarter:
    return AuthorizationStarter(adapters, stores.temp_tokens, settings, clock=fixed_clock())


def _park_garmin_token(stores: Stores, token: str = "R1", secret: str = "S1", user_id: str = TEST_USER_ID) -> None:
    stores.temp_tokens.rows[(user_id, "garmin")] = TempToken(
        user_id=user_id,
        provider="garmin",
        oauth_token=token,
        oauth_token_secret=secret,
        created_at=TEST_NOW,
        expires_at=TEST_NOW + timedelta(minutes=10),
    )


class TestGarminCallback:
    @pytest.mark.asyncio
    async def test_full_flow_then_replay_fails(
        self,
        starter: AuthorizationStarter,
        handler: CallbackHandler,
        stores: Stores,
        api: FakeProviderAPI,
    ) -> None:
        api.add("POST", REQUEST_TOKEN_URL, text="oauth_token=R&oauth_token_secret=S")
        api.add("POST", ACCESS_TOKEN_URL, text="oauth_token=FINAL&oauth_token_secret=FINALSECRET")

        await starter.start(TEST_USER_ID, "garmin")
        assert (TEST_USER_ID, "garmin") in stores.temp_tokens.rows

        outcome = await handler.handle({"oauth_token": "R", "oauth_verifier": "V"})

        assert outcome == CallbackOutcome(provider="garmin")
        [connection] = await stores.connections.list_for_client(TEST_CLIENT_ID)
        assert connection.provider == "garmin"
        assert connection.access_token == "FINAL"
        assert connection.token_secret == "FINALSECRET"
        assert connection.token_expires_at is None
        assert connection.is_active
        assert stores.temp_tokens.rows == {}

        replay = await handler.handle({"oauth_token": "R", "oauth_verifier": "V"})
        assert replay.error == SESSION_EXPIRED
        assert replay.code == ErrorCode.SESSION_EXPIRED.value
        assert len(api.calls(ACCESS_TOKEN_URL)) == 1

    @pytest.mark.asyncio
    async def test_unknown_token_redirects_with_error(self, handler: CallbackHandler) -> None:
        location = await handler.respond({"oauth_token": "nope", "oauth_verifier": "V"})
        query = parse_qs(urlsplit(location).query)
        assert location.startswith("https://app.example.com/dashboard/client/integrations?")
        assert query == {"error": [SESSION_EXPIRED]}

    @pytest.mark.asyncio
    async def test_expired_temp_token_is_session_expired(
        self, adapters: dict[str, ProviderAdapter], stores: Stores, settings: Settings
    ) -> None:
        _park_garmin_token(stores)
        late = CallbackHandler(
            adapters, stores.connections, stores.temp_tokens, stores.profiles, settings,
            clock=fixed_clock(TEST_NOW + timedelta(minutes=11)),
        )
        outcome = await late.handle({"oauth_token": "R1", "oauth_verifier": "V"})
        assert outcome.error == SESSION_EXPIRED

    @pytest.mark.asyncio
    async def test_access_token_rejection(
        self, handler: CallbackHandler, stores: Stores, api: FakeProviderAPI
    ) -> None:
        _park_garmin_token(stores)
        api.add("POST", ACCESS_TOKEN_URL, status=401, text="oauth_problem=token_rejected&secret=S1")

        outcome = await handler.handle({"oauth_token": "R1", "oauth_verifier": "V"})

        assert outcome.error == "Garmin Connect rejected the access_token request (401)"
        assert "S1" not in outcome.error
        assert await stores.connections.list_for_client(TEST_CLIENT_ID) == []
        # still pending: the user can retry the confirm step until the token expires
        assert (TEST_USER_ID, "garmin") in stores.temp_tokens.rows

    @pytest.mark.asyncio
    async def test_missing_profile(
        self, handler: CallbackHandler, stores: Stores, api: FakeProviderAPI
    ) -> None:
        _park_garmin_token(stores, user_id="user-without-profile")
        api.add("POST", ACCESS_TOKEN_URL, text="oauth_token=A&oauth_token_secret=B")

        outcome = await handler.handle({"oauth_token": "R1", "oauth_verifier": "V"})

        assert outcome.error == "Client profile not found"
        assert stores.connections.rows == {}


class TestOAuth2Callback:
    @pytest.mark.asyncio
    async def test_fitbit_code_persists_provider_user_id(
        self, handler: CallbackHandler, stores: Stores, api: FakeProviderAPI
    ) -> None:
        api.add(
            "POST",
            FITBIT_TOKEN_URL,
            json={"access_token": "fa", "refresh_token": "fr", "expires_in": 28800, "user_id": "ABC123"},
        )
        state = encode_state(TEST_USER_ID, "fitbit")

        location = await handler.respond({"code": "c0de", "state": state})

        assert location == "https://app.example.com/dashboard/client/integrations?connected=fitbit"
        [connection] = await stores.connections.list_for_client(TEST_CLIENT_ID)
        assert connection.provider_user_id == "ABC123"
        assert connection.refresh_token == "fr"
        assert connection.token_expires_at is not None

    @pytest.mark.asyncio
    async def test_reconnect_overwrites_and_reactivates(
        self, handler: CallbackHandler, stores: Stores, api: FakeProviderAPI
    ) -> None:
        tokens = iter(["first", "second"])
        api.add(
            "POST",
            GOOGLE_TOKEN_URL,
            handler=lambda request: httpx.Response(200, json={"access_token": next(tokens), "expires_in": 3600}),
        )
        state = encode_state(TEST_USER_ID, "google_fit")

        await handler.handle({"code": "a", "state": state})
        [first] = await stores.connections.list_for_client(TEST_CLIENT_ID)
        await stores.connections.deactivate(first.id, TEST_CLIENT_ID)
        await handler.handle({"code": "b", "state": state})

        [connection] = await stores.connections.list_for_client(TEST_CLIENT_ID)
        assert connection.id == first.id
        assert connection.access_token == "second"
        assert connection.is_active

    @pytest.mark.asyncio
    async def test_malformed_state(self, handler: CallbackHandler) -> None:
        outcome = await handler.handle({"code": "c", "state": "%%%garbage"})
        assert outcome.error == "Invalid state parameter"

    @pytest.mark.asyncio
    async def test_state_for_oauth1_provider_rejected(self, handler: CallbackHandler) -> None:
        outcome = await handler.handle({"code": "c", "state": encode_state(TEST_USER_ID, "garmin")})
        assert outcome.error == "Invalid state parameter"

    @pytest.mark.asyncio
    async def test_tampered_signed_state(
        self, adapters: dict[str, ProviderAdapter], stores: Stores, settings: Settings, api: FakeProviderAPI
    ) -> None:
        signed = settings.model_copy(update={"oauth_state_secret": "state-secret"})
        handler = CallbackHandler(adapters, stores.connections, stores.temp_tokens, stores.profiles, signed)
        genuine = encode_state("someone-else", "fitbit", secret="state-secret")
        forged = encode_state(TEST_USER_ID, "fitbit") + "." + genuine.partition(".")[2]

        outcome = await handler.handle({"code": "c", "state": forged})

        assert outcome.error == "Invalid state parameter"
        assert api.requests == []


class TestDispatch:
    @pytest.mark.asyncio
    async def test_provider_error_param(self, handler: CallbackHandler) -> None:
        location = await handler.respond({"error": "access_denied", "error_description": "User denied access"})
        assert parse_qs(urlsplit(location).query) == {"error": ["User denied access"]}

    @pytest.mark.asyncio
    async def test_bare_error_param(self, handler: CallbackHandler) -> None:
        outcome = await handler.handle({"error": "access_denied"})
        assert outcome.error == "access_denied"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "params",
        [{}, {"code": "only-code"}, {"state": "only-state"}, {"oauth_token": "no-verifier"}],
    )
    async def test_invalid_callback(self, handler: CallbackHandler, params: dict) -> None:
        outcome = await handler.handle(params)
        assert outcome.error == "Invalid callback parameters"

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_generic_error(
        self, handler: CallbackHandler, stores: Stores
    ) -> None:
        async def explode(user_id: str) -> str:
            raise RuntimeError("db exploded with secret details")

        _park_garmin_token(stores)
        stores.profiles.resolve = explode  # type: ignore[method-assign]
        handler._adapters["garmin"].exchange = _fake_exchange  # type: ignore[method-assign]

        outcome = await handler.handle({"oauth_token": "R1", "oauth_verifier": "V"})

        assert outcome.error == GENERIC_FAILURE

    def test_redirect_url_encodes_message(self, handler: CallbackHandler) -> None:
        url = handler.redirect_url(CallbackOutcome(error="Bad thing & more?"))
        assert url.endswith("?error=Bad+thing+%26+more%3F")


async def _fake_exchange(grant):
    return OAuthTokens(access_token="a", token_secret="b", token_type="OAuth1")
