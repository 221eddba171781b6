"""Fitbit Web API adapter (OAuth2 authorization code, HTTP Basic client auth).

Environment variables:
    FITBIT_CLIENT_ID      — OAuth2 client ID
    FITBIT_CLIENT_SECRET  — OAuth2 client secret

API base: https://api.fitbit.com

Endpoints used (one call each per day of the window):
    /1/user/{id}/activities/date/{date}.json          — steps, calories, active minutes
    /1/user/{id}/activities/heart/date/{date}/1d.json — resting heart rate
    /1.2/user/{id}/sleep/date/{date}.json             — minutes asleep
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Callable
from urllib.parse import urlencode

from wearsync.wearables.base import (
    STOP_STATUSES,
    AuthorizationGrant,
    AuthorizationRedirect,
    Connection,
    DataType,
    FetchResult,
    NormalizedRecord,
    OAuthTokens,
    ProviderAdapter,
    SyncWindow,
)
from wearsync.wearables.errors import ProviderRejectedError

logger = logging.getLogger("wearsync.wearables.fitbit")


class FitbitAdapter(ProviderAdapter):
    """Fitbit adapter.

    The token response carries ``user_id``; data calls are scoped by it, so it
    is persisted as the connection's ``provider_user_id``.
    """

    PROVIDER = "fitbit"
    DISPLAY_NAME = "Fitbit"

    def is_configured(self) -> bool:
        return bool(self._settings.fitbit_client_id and self._settings.fitbit_client_secret)

    async def build_auth_url(self, user_id: str, state: str) -> AuthorizationRedirect:
        self._require_configured()
        params = {
            "response_type": "code",
            "client_id": self._settings.fitbit_client_id,
            "redirect_uri": self._settings.callback_url,
            "scope": " ".join(self.endpoints.scopes),
            "state": state,
        }
        return AuthorizationRedirect(url=f"{self.endpoints.authorize_url}?{urlencode(params)}")

    async def exchange(self, grant: AuthorizationGrant) -> OAuthTokens:
        """Exchange the code, authenticating the client with HTTP Basic."""
        self._require_configured()
        response = await self._request(
            "POST",
            self.endpoints.token_url,
            endpoint="token",
            auth=(self._settings.fitbit_client_id, self._settings.fitbit_client_secret),
            data={
                "grant_type": "authorization_code",
                "code": grant.code or "",
                "client_id": self._settings.fitbit_client_id,
                "redirect_uri": self._settings.callback_url,
            },
        )
        data = response.json()
        if not data.get("access_token"):
            raise ProviderRejectedError(self.PROVIDER, "Fitbit did not return an access token")

        return OAuthTokens(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=self._expires_at(data.get("expires_in")),
            provider_user_id=data.get("user_id"),
            token_type=data.get("token_type", "Bearer"),
            scope=(data.get("scope") or "").split(),
        )

    async def fetch(self, connection: Connection, window: SyncWindow) -> FetchResult:
        """Walk the window day by day, pacing calls by ``request_delay_ms``."""
        result = FetchResult()
        user = connection.provider_user_id or "-"
        headers = {"Authorization": f"Bearer {connection.access_token}"}
        delay_s = self.endpoints.request_delay_ms / 1000.0
        base = self.endpoints.api_base
        stopped: set[str] = set()

        for day in window.days():
            feeds = {
                "activities": (f"{base}/1/user/{user}/activities/date/{day}.json", self.normalize_activity_summary),
                "heart": (f"{base}/1/user/{user}/activities/heart/date/{day}/1d.json", self.normalize_heart),
                "sleep": (f"{base}/1.2/user/{user}/sleep/date/{day}.json", self.normalize_sleep),
            }
            for endpoint, (url, normalize) in feeds.items():
                if endpoint in stopped:
                    continue
                error = await self._run_endpoint(
                    result, f"{endpoint} {day}", self._fetch_day(url, endpoint, headers, day, normalize)
                )
                if isinstance(error, ProviderRejectedError) and error.status in STOP_STATUSES:
                    stopped.add(endpoint)
            if delay_s:
                await asyncio.sleep(delay_s)

        if stopped:
            logger.warning("Fitbit: stopped %s early for connection %s", sorted(stopped), connection.id)
        return result

    async def _fetch_day(
        self,
        url: str,
        endpoint: str,
        headers: dict[str, str],
        day: date,
        normalize: Callable[[date, dict], list[NormalizedRecord]],
    ) -> list[NormalizedRecord]:
        response = await self._request("GET", url, endpoint=endpoint, headers=headers)
        return normalize(day, response.json())

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def normalize_activity_summary(self, day: date, payload: dict) -> list[NormalizedRecord]:
        summary = payload.get("summary") or {}
        records = [
            self._record(DataType.STEPS, day, summary.get("steps"), summary),
            self._record(DataType.CALORIES, day, summary.get("caloriesOut"), summary),
        ]
        very = summary.get("veryActiveMinutes")
        if very is not None:
            fairly = summary.get("fairlyActiveMinutes") or 0
            records.append(
                self._record(DataType.ACTIVE_MINUTES, day, very + fairly, summary, drop_zero=False)
            )
        return [r for r in records if r is not None]

    def normalize_heart(self, day: date, payload: dict) -> list[NormalizedRecord]:
        entries = payload.get("activities-heart") or []
        if not entries:
            return []
        value = entries[0].get("value") or {}
        record = self._record(DataType.HEART_RATE, day, value.get("restingHeartRate"), entries[0])
        return [record] if record else []

    def normalize_sleep(self, day: date, payload: dict) -> list[NormalizedRecord]:
        summary = payload.get("summary") or {}
        record = self._record(DataType.SLEEP, day, summary.get("totalMinutesAsleep"), summary)
        return [record] if record else []
