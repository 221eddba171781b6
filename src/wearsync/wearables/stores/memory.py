"""In-memory store implementations.

Same uniqueness rules as the Postgres tables, kept in dicts.  Used by the
test suite and for running the service without a database.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import date, datetime

from wearsync.wearables.base import Connection, HealthRecord, OAuthTokens, TempToken
from wearsync.wearables.stores.base import (
    ConnectionStore,
    HealthRecordStore,
    ProfileResolver,
    TempTokenStore,
)


class InMemoryConnectionStore(ConnectionStore):
    def __init__(self) -> None:
        self.rows: dict[str, Connection] = {}

    def _find(self, client_id: str, provider: str) -> Connection | None:
        for conn in self.rows.values():
            if conn.client_id == client_id and conn.provider == provider:
                return conn
        return None

    async def get(self, connection_id: str) -> Connection | None:
        conn = self.rows.get(connection_id)
        return replace(conn) if conn else None

    async def upsert(self, client_id: str, provider: str, tokens: OAuthTokens) -> Connection:
        existing = self._find(client_id, provider)
        conn = Connection(
            id=existing.id if existing else str(uuid.uuid4()),
            client_id=client_id,
            provider=provider,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_secret=tokens.token_secret,
            token_expires_at=tokens.expires_at,
            provider_user_id=tokens.provider_user_id,
            is_active=True,
            last_synced_at=existing.last_synced_at if existing else None,
        )
        self.rows[conn.id] = conn
        return replace(conn)

    async def list_for_client(self, client_id: str) -> list[Connection]:
        return [replace(c) for c in self.rows.values() if c.client_id == client_id]

    async def list_active(self) -> list[Connection]:
        return [replace(c) for c in self.rows.values() if c.is_active]

    async def mark_synced(self, connection_id: str, synced_at: datetime) -> None:
        if connection_id in self.rows:
            self.rows[connection_id].last_synced_at = synced_at

    async def deactivate(self, connection_id: str, client_id: str) -> bool:
        conn = self.rows.get(connection_id)
        if conn is None or conn.client_id != client_id:
            return False
        conn.is_active = False
        return True


class InMemoryTempTokenStore(TempTokenStore):
    def __init__(self) -> None:
        self.rows: dict[tuple[str, str], TempToken] = {}

    async def upsert(self, token: TempToken) -> None:
        self.rows[(token.user_id, token.provider)] = token

    async def get_by_token(self, oauth_token: str, now: datetime) -> TempToken | None:
        for token in self.rows.values():
            if token.oauth_token == oauth_token and not token.is_expired(now):
                return token
        return None

    async def delete(self, oauth_token: str) -> None:
        for key in [k for k, t in self.rows.items() if t.oauth_token == oauth_token]:
            del self.rows[key]

    async def delete_expired(self, now: datetime) -> int:
        expired = [k for k, t in self.rows.items() if t.is_expired(now)]
        for key in expired:
            del self.rows[key]
        return len(expired)


class InMemoryHealthRecordStore(HealthRecordStore):
    def __init__(self) -> None:
        self.rows: dict[tuple[str, str, date, str], HealthRecord] = {}

    async def upsert_many(self, records: list[HealthRecord]) -> int:
        for record in records:
            self.rows[record.upsert_key] = record
        return len(records)


class InMemoryProfileResolver(ProfileResolver):
    def __init__(self, profiles: dict[str, str] | None = None) -> None:
        self.profiles: dict[str, str] = dict(profiles or {})

    async def resolve(self, user_id: str) -> str | None:
        return self.profiles.get(user_id)
