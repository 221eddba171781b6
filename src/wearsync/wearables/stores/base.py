"""Persistence interfaces consumed by the OAuth flows and the sync engine.

The flows only talk to these ABCs; ``postgres`` backs them with the Supabase
tables and ``memory`` keeps everything in dicts (tests, local runs).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from wearsync.wearables.base import Connection, HealthRecord, OAuthTokens, TempToken


class ConnectionStore(ABC):
    """wearable_connections — unique on (client_id, provider)."""

    @abstractmethod
    async def get(self, connection_id: str) -> Connection | None: ...

    @abstractmethod
    async def upsert(self, client_id: str, provider: str, tokens: OAuthTokens) -> Connection:
        """Insert or overwrite the client's connection and mark it active."""

    @abstractmethod
    async def list_for_client(self, client_id: str) -> list[Connection]: ...

    @abstractmethod
    async def list_active(self) -> list[Connection]: ...

    @abstractmethod
    async def mark_synced(self, connection_id: str, synced_at: datetime) -> None: ...

    @abstractmethod
    async def deactivate(self, connection_id: str, client_id: str) -> bool:
        """Soft-delete a connection.  Returns False when the client does not own it."""


class TempTokenStore(ABC):
    """oauth_temp_tokens — unique on (user_id, provider), last writer wins."""

    @abstractmethod
    async def upsert(self, token: TempToken) -> None: ...

    @abstractmethod
    async def get_by_token(self, oauth_token: str, now: datetime) -> TempToken | None:
        """Look up a request token; expired rows are treated as absent."""

    @abstractmethod
    async def delete(self, oauth_token: str) -> None: ...

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        """Remove expired rows and return how many were removed."""


class HealthRecordStore(ABC):
    """health_data_sync — unique on (client_id, data_type, recorded_at, source)."""

    @abstractmethod
    async def upsert_many(self, records: list[HealthRecord]) -> int:
        """Upsert records and return how many were written."""


class ProfileResolver(ABC):
    """Maps an authenticated user id to the internal client profile id."""

    @abstractmethod
    async def resolve(self, user_id: str) -> str | None: ...
