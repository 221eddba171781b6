"""Finish a provider connection from the browser redirect.

The callback is reached by a full-page redirect, so there is nobody to read
a JSON error: every outcome, including unexpected failures, ends as a 302
back to the integrations page with ``?connected=<provider>`` or
``?error=<message>``.

Dispatch on the query parameters:
    oauth_token + oauth_verifier → Garmin (OAuth 1.0a)
    code + state                 → OAuth2 (Google Fit, Fitbit)
    error                        → provider-reported denial
    anything else                → invalid callback
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Mapping
from urllib.parse import urlencode

from wearsync.config import Settings
from wearsync.wearables.base import AuthorizationGrant, ProviderAdapter, utc_now
from wearsync.wearables.errors import (
    InvalidCallbackError,
    ProfileNotFoundError,
    SessionExpiredError,
    WearableError,
)
from wearsync.wearables.state import decode_state
from wearsync.wearables.stores.base import ConnectionStore, ProfileResolver, TempTokenStore

logger = logging.getLogger("wearsync.wearables.callback")

GENERIC_FAILURE = "Failed to complete connection"


@dataclass
class CallbackOutcome:
    """Either ``provider`` (connected) or ``error`` (message for the user)."""

    provider: str | None = None
    error: str | None = None
    code: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CallbackHandler:
    def __init__(
        self,
        adapters: dict[str, ProviderAdapter],
        connections: ConnectionStore,
        temp_tokens: TempTokenStore,
        profiles: ProfileResolver,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._adapters = adapters
        self._connections = connections
        self._temp_tokens = temp_tokens
        self._profiles = profiles
        self._settings = settings
        self._clock = clock

    async def handle(self, params: Mapping[str, str]) -> CallbackOutcome:
        """Complete the flow.  Never raises."""
        try:
            if params.get("oauth_token") and params.get("oauth_verifier"):
                provider = await self._handle_oauth1(params["oauth_token"], params["oauth_verifier"])
            elif params.get("code") and params.get("state"):
                provider = await self._handle_oauth2(params["code"], params["state"])
            elif params.get("error"):
                message = params.get("error_description") or params["error"]
                logger.info("Provider returned an authorization error: %s", message)
                return CallbackOutcome(error=message)
            else:
                raise InvalidCallbackError()
        except WearableError as exc:
            logger.warning("Callback failed (%s): %s", exc.code.value, exc.message)
            return CallbackOutcome(error=exc.message, code=exc.code.value)
        except Exception:
            logger.exception("Unexpected error completing wearable connection")
            return CallbackOutcome(error=GENERIC_FAILURE)

        logger.info("Connected provider %s", provider)
        return CallbackOutcome(provider=provider)

    def redirect_url(self, outcome: CallbackOutcome) -> str:
        if outcome.ok:
            query = {"connected": outcome.provider}
        else:
            query = {"error": outcome.error}
        return f"{self._settings.integrations_url}?{urlencode(query)}"

    async def respond(self, params: Mapping[str, str]) -> str:
        """``handle`` then ``redirect_url``: the Location for the 302."""
        return self.redirect_url(await self.handle(params))

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    async def _handle_oauth1(self, oauth_token: str, verifier: str) -> str:
        temp = await self._temp_tokens.get_by_token(oauth_token, self._clock())
        if temp is None:
            raise SessionExpiredError()

        adapter = self._adapter(temp.provider)
        tokens = await adapter.exchange(
            AuthorizationGrant(
                oauth_token=temp.oauth_token,
                oauth_token_secret=temp.oauth_token_secret,
                oauth_verifier=verifier,
            )
        )

        client_id = await self._resolve_profile(temp.user_id)
        await self._connections.upsert(client_id, temp.provider, tokens)
        # single use: a replayed callback must fail the lookup
        await self._temp_tokens.delete(oauth_token)
        return temp.provider

    async def _handle_oauth2(self, code: str, raw_state: str) -> str:
        state = decode_state(raw_state, self._settings.oauth_state_secret)
        adapter = self._adapter(state.provider)
        if adapter.endpoints.auth_type != "oauth2":
            raise InvalidCallbackError("Invalid state parameter")

        tokens = await adapter.exchange(AuthorizationGrant(code=code))
        client_id = await self._resolve_profile(state.user_id)
        await self._connections.upsert(client_id, state.provider, tokens)
        return state.provider

    def _adapter(self, provider: str) -> ProviderAdapter:
        adapter = self._adapters.get(provider)
        if adapter is None:
            raise InvalidCallbackError(f"Unsupported provider: {provider}")
        return adapter

    async def _resolve_profile(self, user_id: str) -> str:
        client_id = await self._profiles.resolve(user_id)
        if client_id is None:
            raise ProfileNotFoundError()
        return client_id
