"""Garmin Connect Health API adapter.

Uses OAuth 1.0a (not OAuth2).  Garmin requires a consumer key/secret pair
registered with the Garmin Health API program; every request is signed with
the SignatureEngine.

Environment variables:
    GARMIN_CONSUMER_KEY     — OAuth 1.0a consumer key
    GARMIN_CONSUMER_SECRET  — OAuth 1.0a consumer secret

API base: https://apis.garmin.com/wellness-api/rest

Endpoints used:
    /dailies              — Daily summaries (steps, calories, active time, RHR, stress)
    /sleeps               — Sleep summaries
    /activities           — User activities (workouts)

Each query spans at most 24h of upload time, so the sync window is walked in
86400-second slices.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict
from datetime import date, datetime, timezone
from urllib.parse import parse_qsl, urlencode

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

logger = logging.getLogger("wearsync.wearables.garmin")

_SLICE_SECONDS = 86400

# Garmin stressQualifier → canonical stress level
GARMIN_STRESS_LEVELS: dict[str, int] = {
    "unknown": 0,
    "calm": 1,
    "balanced": 2,
    "stressful": 3,
    "very_stressful": 4,
}


class GarminAdapter(ProviderAdapter):
    """Garmin Connect Health API adapter (OAuth 1.0a).

    Access tokens do not expire, so connections carry ``token_expires_at=None``
    and there is no refresh step.
    """

    PROVIDER = "garmin"
    DISPLAY_NAME = "Garmin Connect"

    def is_configured(self) -> bool:
        return bool(self._settings.garmin_consumer_key and self._settings.garmin_consumer_secret)

    # ------------------------------------------------------------------
    # OAuth 1.0a handshake
    # ------------------------------------------------------------------

    async def build_auth_url(self, user_id: str, state: str) -> AuthorizationRedirect:
        """Obtain a request token and point the user at Garmin's confirm page.

        The request-token call is signed with an empty token secret and binds
        the token to our callback URL.  ``state`` is unused: OAuth1 correlates
        through the request token itself.
        """
        self._require_configured()
        endpoints = self.endpoints
        header = self._signer.sign(
            "POST",
            endpoints.request_token_url,
            self._settings.garmin_consumer_key,
            self._settings.garmin_consumer_secret,
            oauth_callback=self._settings.callback_url,
        )
        response = await self._request(
            "POST",
            endpoints.request_token_url,
            endpoint="request_token",
            headers={"Authorization": header},
        )
        token, secret = self._parse_token_pair(response.text, "request token")

        logger.info("Garmin: issued request token for user %s", user_id)
        return AuthorizationRedirect(
            url=f"{endpoints.authorize_url}?{urlencode({'oauth_token': token})}",
            request_token=token,
            request_token_secret=secret,
        )

    async def exchange(self, grant: AuthorizationGrant) -> OAuthTokens:
        """Trade the request token + verifier for the long-lived access token pair."""
        self._require_configured()
        if not (grant.oauth_token and grant.oauth_verifier):
            raise ProviderRejectedError(self.PROVIDER, "Garmin callback is missing the verifier")

        header = self._signer.sign(
            "POST",
            self.endpoints.access_token_url,
            self._settings.garmin_consumer_key,
            self._settings.garmin_consumer_secret,
            token=grant.oauth_token,
            token_secret=grant.oauth_token_secret,
            oauth_verifier=grant.oauth_verifier,
        )
        response = await self._request(
            "POST",
            self.endpoints.access_token_url,
            endpoint="access_token",
            headers={"Authorization": header},
        )
        token, secret = self._parse_token_pair(response.text, "access token")
        return OAuthTokens(
            access_token=token,
            token_secret=secret,
            expires_at=None,
            token_type="OAuth1",
        )

    def _parse_token_pair(self, body: str, what: str) -> tuple[str, str]:
        """Read ``oauth_token``/``oauth_token_secret`` from a form-encoded body."""
        fields = dict(parse_qsl(body.strip()))
        token = fields.get("oauth_token") or fields.get("access_token")
        secret = fields.get("oauth_token_secret") or fields.get("access_token_secret")
        if not token or not secret:
            logger.warning("Garmin %s response did not contain a token pair", what)
            raise ProviderRejectedError(self.PROVIDER, f"Garmin did not return a {what}")
        return token, secret

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def fetch(self, connection: Connection, window: SyncWindow) -> FetchResult:
        """Fetch dailies, sleeps and activities concurrently."""
        result = FetchResult()
        feeds = {
            "dailies": self.normalize_dailies,
            "sleeps": self.normalize_sleeps,
            "activities": self.normalize_activities,
        }
        await asyncio.gather(
            *(
                self._run_endpoint(result, name, self._fetch_feed(result, connection, name, normalize, window))
                for name, normalize in feeds.items()
            )
        )
        return result

    async def _fetch_feed(
        self, result: FetchResult, connection: Connection, feed: str, normalize, window: SyncWindow
    ) -> list[NormalizedRecord]:
        """Walk the window in 24h slices, then normalize what the slices returned.

        A failed slice is filed as ``"<feed> <slice start>"`` and the walk goes on,
        except after 401/403/429 where every later slice would fail the same way.
        """
        items: list[dict] = []
        start_ts = int(window.start.timestamp())
        end_ts = int(window.end.timestamp())
        for slice_start in range(start_ts, end_ts, _SLICE_SECONDS):
            params = {
                "uploadStartTimeInSeconds": slice_start,
                "uploadEndTimeInSeconds": min(slice_start + _SLICE_SECONDS, end_ts),
            }
            try:
                payload = await self._get(f"{self.endpoints.api_base}/{feed}", params, connection, feed)
            except ProviderRejectedError as exc:
                self._record_failure(result, f"{feed} {slice_start}", exc.message)
                if exc.status in STOP_STATUSES:
                    logger.warning("Garmin: stopped %s early for connection %s", feed, connection.id)
                    break
                continue
            except json.JSONDecodeError as exc:
                self._record_failure(result, f"{feed} {slice_start}", f"Invalid JSON: {exc}")
                continue
            items.extend(self._as_list(payload, feed))
        # activities are summed per day, so normalize the whole feed at once
        return normalize(items)

    async def _get(self, url: str, params: dict, connection: Connection, feed: str) -> object:
        """Signed GET against the Health API with the user's token pair."""
        header = self._signer.sign(
            "GET",
            url,
            self._settings.garmin_consumer_key,
            self._settings.garmin_consumer_secret,
            token=connection.access_token,
            token_secret=connection.token_secret,
            query=params,
        )
        response = await self._request(
            "GET", url, endpoint=feed, params=params, headers={"Authorization": header}
        )
        return response.json()

    @staticmethod
    def _as_list(payload: object, feed: str) -> list[dict]:
        # The Health API answers with a bare list; summaries pushed elsewhere wrap it
        if isinstance(payload, list):
            return [p for p in payload if isinstance(p, dict)]
        if isinstance(payload, dict):
            wrapped = payload.get(feed) or payload.get(f"{feed[:-1]}List") or []
            return [p for p in wrapped if isinstance(p, dict)]
        return []

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def normalize_dailies(self, dailies: list[dict]) -> list[NormalizedRecord]:
        """One daily summary can yield steps, calories, active minutes, RHR and stress."""
        records: list[NormalizedRecord] = []
        for data in dailies:
            day = self._calendar_date(data)
            if day is None:
                continue

            active_seconds = self._safe_float(data.get("activeTimeInSeconds"))
            candidates = [
                self._record(DataType.STEPS, day, data.get("steps", data.get("totalSteps")), data),
                self._record(DataType.CALORIES, day, data.get("activeKilocalories"), data),
                self._record(
                    DataType.ACTIVE_MINUTES,
                    day,
                    round(active_seconds / 60) if active_seconds is not None else None,
                    data,
                    drop_zero=False,
                ),
                self._record(
                    DataType.HEART_RATE, day, data.get("restingHeartRateInBeatsPerMinute"), data
                ),
                self._record(
                    DataType.STRESS,
                    day,
                    self.stress_level(data.get("stressQualifier")),
                    data,
                    drop_zero=False,
                ),
            ]
            records.extend(r for r in candidates if r is not None)
        return records

    def normalize_sleeps(self, sleeps: list[dict]) -> list[NormalizedRecord]:
        records: list[NormalizedRecord] = []
        for data in sleeps:
            day = self._calendar_date(data)
            seconds = self._safe_float(data.get("durationInSeconds"))
            if day is None or seconds is None:
                continue
            record = self._record(DataType.SLEEP, day, round(seconds / 60), data)
            if record:
                records.append(record)
        return records

    def normalize_activities(self, activities: list[dict]) -> list[NormalizedRecord]:
        """Sum workout durations per local day into one ``workout`` record."""
        minutes: dict[date, float] = defaultdict(float)
        per_day: dict[date, list[dict]] = defaultdict(list)
        for act in activities:
            start = self._safe_float(act.get("startTimeInSeconds"))
            duration = self._safe_float(act.get("durationInSeconds"))
            if start is None or duration is None:
                continue
            offset = self._safe_float(act.get("startTimeOffsetInSeconds")) or 0
            day = datetime.fromtimestamp(start + offset, tz=timezone.utc).date()
            minutes[day] += duration / 60
            per_day[day].append(act)

        records: list[NormalizedRecord] = []
        for day in sorted(minutes):
            record = self._record(
                DataType.WORKOUT, day, round(minutes[day], 1), {"activities": per_day[day]}
            )
            if record:
                records.append(record)
        return records

    @staticmethod
    def stress_level(qualifier: object) -> int | None:
        """Map a stressQualifier (``balanced``, ``stressful_awake``, ...) to 0–4."""
        if not isinstance(qualifier, str):
            return None
        key = qualifier.strip().lower().removesuffix("_awake")
        return GARMIN_STRESS_LEVELS.get(key)

    @staticmethod
    def _calendar_date(data: dict) -> date | None:
        value = data.get("calendarDate")
        if not value:
            return None
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError:
            logger.warning("Garmin: unparseable calendarDate %r", value)
            return None
