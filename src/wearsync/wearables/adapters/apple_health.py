"""Apple Health adapter.

HealthKit has no server-side OAuth or REST API: data can only be read on the
device and pushed by the native app.  Authorization therefore always fails
with an explicit error, and a server-side sync finds nothing to fetch.
"""

from __future__ import annotations

import logging

from wearsync.wearables.base import (
    AuthorizationGrant,
    AuthorizationRedirect,
    Connection,
    FetchResult,
    OAuthTokens,
    ProviderAdapter,
    SyncWindow,
)
from wearsync.wearables.errors import UnsupportedProviderError

logger = logging.getLogger("wearsync.wearables.apple_health")

NATIVE_APP_REQUIRED = "Apple Health requires the native app"


class AppleHealthAdapter(ProviderAdapter):
    PROVIDER = "apple_health"
    DISPLAY_NAME = "Apple Health"

    def is_configured(self) -> bool:
        return True

    async def build_auth_url(self, user_id: str, state: str) -> AuthorizationRedirect:
        raise UnsupportedProviderError(NATIVE_APP_REQUIRED)

    async def exchange(self, grant: AuthorizationGrant) -> OAuthTokens:
        raise UnsupportedProviderError(NATIVE_APP_REQUIRED)

    async def fetch(self, connection: Connection, window: SyncWindow) -> FetchResult:
        logger.debug("Apple Health: data is pushed from the native app, nothing to fetch")
        return FetchResult()
