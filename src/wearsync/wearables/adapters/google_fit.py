"""Google Fit REST API adapter (OAuth2 authorization code).

Environment variables:
    GOOGLE_FIT_CLIENT_ID      — OAuth2 client ID
    GOOGLE_FIT_CLIENT_SECRET  — OAuth2 client secret

API base: https://www.googleapis.com/fitness/v1/users/me

Endpoints used:
    /dataset:aggregate    — one query per metric, bucketed into UTC calendar days
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from urllib.parse import urlencode

from wearsync.wearables.base import (
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

logger = logging.getLogger("wearsync.wearables.google_fit")

_DAY_MILLIS = 86_400_000

# Canonical data type → Google Fit aggregate data source
_AGGREGATE_TYPES: dict[DataType, str] = {
    DataType.STEPS: "com.google.step_count.delta",
    DataType.HEART_RATE: "com.google.heart_rate.bpm",
    DataType.CALORIES: "com.google.calories.expended",
}


class GoogleFitAdapter(ProviderAdapter):
    """Google Fit adapter.

    Tokens expire (``expires_in``); the authorize URL asks for offline access
    so Google also issues a refresh token.
    """

    PROVIDER = "google_fit"
    DISPLAY_NAME = "Google Fit"

    def is_configured(self) -> bool:
        return bool(self._settings.google_fit_client_id and self._settings.google_fit_client_secret)

    async def build_auth_url(self, user_id: str, state: str) -> AuthorizationRedirect:
        self._require_configured()
        params = {
            "client_id": self._settings.google_fit_client_id,
            "redirect_uri": self._settings.callback_url,
            "response_type": "code",
            "scope": " ".join(self.endpoints.scopes),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return AuthorizationRedirect(url=f"{self.endpoints.authorize_url}?{urlencode(params)}")

    async def exchange(self, grant: AuthorizationGrant) -> OAuthTokens:
        """Exchange the authorization code using the client-secret grant."""
        self._require_configured()
        response = await self._request(
            "POST",
            self.endpoints.token_url,
            endpoint="token",
            data={
                "grant_type": "authorization_code",
                "code": grant.code or "",
                "client_id": self._settings.google_fit_client_id,
                "client_secret": self._settings.google_fit_client_secret,
                "redirect_uri": self._settings.callback_url,
            },
        )
        data = response.json()
        if not data.get("access_token"):
            raise ProviderRejectedError(self.PROVIDER, "Google Fit did not return an access token")

        return OAuthTokens(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=self._expires_at(data.get("expires_in")),
            token_type=data.get("token_type", "Bearer"),
            scope=(data.get("scope") or "").split(),
        )

    async def fetch(self, connection: Connection, window: SyncWindow) -> FetchResult:
        result = FetchResult()
        for data_type in _AGGREGATE_TYPES:
            await self._run_endpoint(
                result,
                data_type.value,
                self._aggregate(connection.access_token, data_type, window),
            )
        return result

    async def _aggregate(
        self, access_token: str, data_type: DataType, window: SyncWindow
    ) -> list[NormalizedRecord]:
        response = await self._request(
            "POST",
            f"{self.endpoints.api_base}/dataset:aggregate",
            endpoint=f"aggregate {data_type.value}",
            headers={"Authorization": f"Bearer {access_token}"},
            json={
                "aggregateBy": [{"dataTypeName": _AGGREGATE_TYPES[data_type]}],
                "bucketByTime": {"durationMillis": _DAY_MILLIS},
                # buckets start at 00:00 UTC so each one is a calendar day
                "startTimeMillis": window.day_start_millis,
                "endTimeMillis": window.end_millis,
            },
        )
        return self.normalize_aggregate(data_type, response.json())

    def normalize_aggregate(self, data_type: DataType, payload: dict) -> list[NormalizedRecord]:
        """Turn an aggregate response into one record per non-empty day bucket.

        Buckets whose value is zero or absent produce no record, so "no data"
        stays distinct from a measured zero.
        """
        records: list[NormalizedRecord] = []
        for bucket in payload.get("bucket", []):
            start_ms = bucket.get("startTimeMillis")
            if start_ms is None:
                continue
            day = datetime.fromtimestamp(int(start_ms) / 1000, tz=timezone.utc).date()

            readings: list[float] = []
            for dataset in bucket.get("dataset", []):
                for point in dataset.get("point", []):
                    values = point.get("value") or []
                    if not values:
                        continue
                    # heart_rate.summary is [avg, max, min]; the others carry one value
                    first = values[0]
                    readings.append(float(first.get("intVal", first.get("fpVal", 0)) or 0))

            if not readings:
                continue
            if data_type is DataType.HEART_RATE:
                value = sum(readings) / len(readings)
            else:
                value = sum(readings)

            record = self._record(data_type, day, round(value, 2), bucket)
            if record is not None:
                records.append(record)
        return records
