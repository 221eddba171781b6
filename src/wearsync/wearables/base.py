"""Canonical data models and the provider adapter base class.

Every provider variant subclasses ProviderAdapter and implements the three
seams the flows need: ``build_auth_url`` (AuthorizationStarter),
``exchange`` (CallbackHandler) and ``fetch`` (SyncEngine).  Vendor payloads
are normalized into NormalizedRecord values with a canonical
(data_type, unit) pair before anything is persisted.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Iterator

import httpx

from wearsync.config import Settings
from wearsync.wearables.config_loader import (
    ProviderCatalog,
    ProviderEndpoints,
    get_provider_catalog,
)
from wearsync.wearables.errors import (
    ConfigurationError,
    PartialSyncError,
    ProviderRejectedError,
    WearableError,
)
from wearsync.wearables.oauth1 import SignatureEngine

logger = logging.getLogger("wearsync.wearables")

# Statuses after which the rest of a window would fail the same way
STOP_STATUSES = frozenset({401, 403, 429})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DataType(str, Enum):
    STEPS = "steps"
    HEART_RATE = "heart_rate"
    CALORIES = "calories"
    ACTIVE_MINUTES = "active_minutes"
    SLEEP = "sleep"
    WORKOUT = "workout"
    STRESS = "stress"


# One unit per data type, whatever the vendor calls it
CANONICAL_UNITS: dict[DataType, str] = {
    DataType.STEPS: "steps",
    DataType.HEART_RATE: "bpm",
    DataType.CALORIES: "kcal",
    DataType.ACTIVE_MINUTES: "minutes",
    DataType.SLEEP: "minutes",
    DataType.WORKOUT: "minutes",
    DataType.STRESS: "level",
}


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------


@dataclass
class OAuthTokens:
    """Final credentials returned by a provider's token exchange.

    Attributes:
        access_token:     Bearer token (OAuth2) or access token (OAuth1).
        refresh_token:    OAuth2 refresh token, if issued.
        token_secret:     OAuth1 access token secret; None for OAuth2.
        expires_at:       UTC expiry.  None means the token does not expire.
        provider_user_id: Provider-scoped user id (Fitbit scopes data calls by it).
        token_type:       "Bearer" or "OAuth1".
        scope:            Granted scopes.
    """

    access_token: str
    refresh_token: str | None = None
    token_secret: str | None = None
    expires_at: datetime | None = None
    provider_user_id: str | None = None
    token_type: str = "Bearer"
    scope: list[str] = field(default_factory=list)


@dataclass
class AuthorizationRedirect:
    """Where to send the user, plus the OAuth1 request token pair to park."""

    url: str
    request_token: str | None = None
    request_token_secret: str | None = None


@dataclass
class AuthorizationGrant:
    """What the provider handed back on the callback."""

    code: str | None = None
    oauth_token: str | None = None
    oauth_token_secret: str | None = None
    oauth_verifier: str | None = None


# ---------------------------------------------------------------------------
# Persistence rows
# ---------------------------------------------------------------------------


@dataclass
class Connection:
    """A client's link to one provider.  Unique on (client_id, provider).

    ``token_expires_at`` of None means non-expiring (Garmin), not unknown.
    """

    id: str
    client_id: str
    provider: str
    access_token: str
    refresh_token: str | None = None
    token_secret: str | None = None
    token_expires_at: datetime | None = None
    provider_user_id: str | None = None
    is_active: bool = True
    last_synced_at: datetime | None = None


@dataclass
class TempToken:
    """OAuth1 request token parked between authorization start and callback."""

    user_id: str
    provider: str
    oauth_token: str
    oauth_token_secret: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass
class NormalizedRecord:
    """One vendor metric on one day, in canonical form."""

    data_type: DataType
    recorded_at: date
    value: float
    source: str
    raw_payload: dict = field(default_factory=dict)

    @property
    def unit(self) -> str:
        return CANONICAL_UNITS[self.data_type]


@dataclass
class HealthRecord:
    """Stored health data point.  Upsert key: (client_id, data_type, recorded_at, source)."""

    client_id: str
    wearable_connection_id: str
    data_type: str
    recorded_at: date
    value: float
    unit: str
    source: str
    raw_payload: dict = field(default_factory=dict)

    @classmethod
    def from_normalized(cls, record: NormalizedRecord, connection: Connection) -> "HealthRecord":
        return cls(
            client_id=connection.client_id,
            wearable_connection_id=connection.id,
            data_type=record.data_type.value,
            recorded_at=record.recorded_at,
            value=record.value,
            unit=record.unit,
            source=record.source,
            raw_payload=record.raw_payload,
        )

    @property
    def upsert_key(self) -> tuple[str, str, date, str]:
        return (self.client_id, self.data_type, self.recorded_at, self.source)


# ---------------------------------------------------------------------------
# Sync window / fetch result
# ---------------------------------------------------------------------------


@dataclass
class SyncWindow:
    """Trailing time range a sync covers."""

    start: datetime
    end: datetime

    @classmethod
    def trailing(cls, days: int, now: datetime | None = None) -> "SyncWindow":
        end = now or utc_now()
        return cls(start=end - timedelta(days=days), end=end)

    def days(self) -> Iterator[date]:
        """Each calendar date the window touches, oldest first."""
        current = self.start.date()
        while current <= self.end.date():
            yield current
            current += timedelta(days=1)

    @property
    def start_millis(self) -> int:
        return int(self.start.timestamp() * 1000)

    @property
    def day_start_millis(self) -> int:
        """Epoch millis of 00:00 UTC on the window's first day."""
        first = self.start.astimezone(timezone.utc).date()
        return int(datetime(first.year, first.month, first.day, tzinfo=timezone.utc).timestamp() * 1000)

    @property
    def end_millis(self) -> int:
        return int(self.end.timestamp() * 1000)


@dataclass
class FetchResult:
    """Records fetched in one sync plus the endpoints that failed."""

    records: list[NormalizedRecord] = field(default_factory=list)
    failures: list[PartialSyncError] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Abstract base adapter
# ---------------------------------------------------------------------------


class ProviderAdapter(ABC):
    """Base class for all provider variants.

    Subclasses must implement:
        - is_configured()
        - build_auth_url()
        - exchange()
        - fetch()
    """

    #: Slug matching the wearable_provider enum (e.g. 'garmin').
    PROVIDER: str = "unknown"

    #: Human-readable name for logs and error messages.
    DISPLAY_NAME: str = "Unknown Provider"

    def __init__(
        self,
        settings: Settings,
        catalog: ProviderCatalog | None = None,
        signer: SignatureEngine | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            settings:    App settings (credentials, callback URL, timeouts).
            catalog:     Provider catalog; defaults to the bundled providers.yaml.
            signer:      OAuth1 signing engine (used by Garmin).
            http_client: Shared httpx client.  When None a short-lived client
                         with the configured timeout is opened per request.
        """
        self._settings = settings
        self._catalog = catalog or get_provider_catalog()
        self._signer = signer or SignatureEngine()
        self._http_client = http_client
        self._timeout = settings.http_timeout_seconds

    @property
    def endpoints(self) -> ProviderEndpoints:
        return self._catalog.provider(self.PROVIDER)

    @abstractmethod
    def is_configured(self) -> bool:
        """True when the credentials this provider needs are present."""

    @abstractmethod
    async def build_auth_url(self, user_id: str, state: str) -> AuthorizationRedirect:
        """Produce the provider authorize URL for a user.

        Args:
            user_id: Authenticated user id.
            state:   Correlation token carried through OAuth2 redirects.

        Raises:
            ConfigurationError:    Credentials are missing.
            ProviderRejectedError: The provider refused a handshake step.
        """

    @abstractmethod
    async def exchange(self, grant: AuthorizationGrant) -> OAuthTokens:
        """Trade the callback grant (code or verifier) for final tokens."""

    @abstractmethod
    async def fetch(self, connection: Connection, window: SyncWindow) -> FetchResult:
        """Fetch and normalize the window's data.

        Endpoint failures are recorded in ``FetchResult.failures`` and never
        abort the other endpoints.
        """

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _require_configured(self) -> None:
        if not self.is_configured():
            logger.error("%s credentials are not configured", self.DISPLAY_NAME)
            raise ConfigurationError(f"{self.DISPLAY_NAME} integration is not configured")

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                yield client

    async def _request(
        self, method: str, url: str, *, endpoint: str, **kwargs: Any
    ) -> httpx.Response:
        """Send a request; non-2xx and network failures become ProviderRejectedError.

        The response body is logged (truncated) but never put in the error message.
        """
        kwargs.setdefault("timeout", self._timeout)
        try:
            async with self._http() as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            logger.warning(
                "%s %s request failed: %s", self.DISPLAY_NAME, endpoint, exc.__class__.__name__
            )
            raise ProviderRejectedError(
                self.PROVIDER, f"Could not reach {self.DISPLAY_NAME}. Please try again."
            ) from exc

        if not response.is_success:
            logger.warning(
                "%s %s %s → %d: %s",
                self.DISPLAY_NAME, method, endpoint, response.status_code, response.text[:200],
            )
            raise ProviderRejectedError(
                self.PROVIDER,
                f"{self.DISPLAY_NAME} rejected the {endpoint} request ({response.status_code})",
                status=response.status_code,
            )
        return response

    async def _run_endpoint(
        self, result: FetchResult, endpoint: str, work: Awaitable[list[NormalizedRecord]]
    ) -> WearableError | None:
        """Await one endpoint's work, filing any failure instead of raising it.

        Returns the WearableError that was filed, so callers can react to its
        status.  Cancellation still propagates.
        """
        try:
            result.records.extend(await work)
        except WearableError as exc:
            self._record_failure(result, endpoint, exc.message)
            return exc
        except json.JSONDecodeError as exc:
            self._record_failure(result, endpoint, f"Invalid JSON: {exc}")
        except Exception as exc:
            # a payload whose shape does not match what the normalizer expects
            logger.exception("%s endpoint %s crashed", self.DISPLAY_NAME, endpoint)
            self._record_failure(result, endpoint, f"{exc.__class__.__name__}: {exc}")
        return None

    def _record_failure(self, result: FetchResult, endpoint: str, message: str) -> None:
        logger.warning("%s endpoint %s failed: %s", self.DISPLAY_NAME, endpoint, message)
        result.failures.append(PartialSyncError(self.PROVIDER, endpoint, message))

    def _record(
        self,
        data_type: DataType,
        day: date,
        value: object,
        raw: dict,
        drop_zero: bool = True,
    ) -> NormalizedRecord | None:
        """Build a record, or None for absent (and, by default, zero) values."""
        number = self._safe_float(value)
        if number is None or (drop_zero and number == 0):
            return None
        return NormalizedRecord(
            data_type=data_type,
            recorded_at=day,
            value=number,
            source=self.PROVIDER,
            raw_payload=raw,
        )

    @staticmethod
    def _safe_float(value: object) -> float | None:
        """Safely coerce a value to float, returning None on failure."""
        if value is None or isinstance(value, bool):
            return None
        try:
            return float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _expires_at(expires_in: object, now: datetime | None = None) -> datetime | None:
        """``now + expires_in`` seconds, or None when the provider reports no TTL."""
        try:
            seconds = int(expires_in)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        return (now or utc_now()) + timedelta(seconds=seconds)
