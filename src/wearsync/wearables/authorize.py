"""Start a provider connection: produce the URL the browser is sent to.

OAuth2 providers get a ``state`` correlation token and need no server-side
state.  Garmin (OAuth1) first obtains a request token; its secret is parked
as a TempToken keyed by (user, provider) until the callback consumes it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from wearsync.config import Settings
from wearsync.wearables.base import ProviderAdapter, TempToken, utc_now
from wearsync.wearables.errors import ProviderRejectedError, UnsupportedProviderError
from wearsync.wearables.state import encode_state
from wearsync.wearables.stores.base import TempTokenStore

logger = logging.getLogger("wearsync.wearables.authorize")


class AuthorizationStarter:
    def __init__(
        self,
        adapters: dict[str, ProviderAdapter],
        temp_tokens: TempTokenStore,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._adapters = adapters
        self._temp_tokens = temp_tokens
        self._settings = settings
        self._clock = clock

    async def start(self, user_id: str, provider: str) -> str:
        """Return the provider authorize URL for ``user_id``.

        Raises:
            UnsupportedProviderError: Unknown provider, or Apple Health.
            ConfigurationError:       Provider credentials are missing.
            ProviderRejectedError:    Garmin refused the request-token call.
        """
        adapter = self._adapters.get(provider)
        if adapter is None:
            raise UnsupportedProviderError(f"Unsupported provider: {provider}")

        state = encode_state(user_id, provider, self._settings.oauth_state_secret)
        redirect = await adapter.build_auth_url(user_id, state)

        if redirect.request_token:
            if not redirect.request_token_secret:
                raise ProviderRejectedError(provider, "Provider did not return a request token secret")
            now = self._clock()
            # a retry for the same (user, provider) replaces any pending token
            await self._temp_tokens.upsert(
                TempToken(
                    user_id=user_id,
                    provider=provider,
                    oauth_token=redirect.request_token,
                    oauth_token_secret=redirect.request_token_secret,
                    created_at=now,
                    expires_at=now + timedelta(seconds=self._settings.temp_token_ttl_seconds),
                )
            )

        logger.info("Authorization started: user=%s provider=%s", user_id, provider)
        return redirect.url
