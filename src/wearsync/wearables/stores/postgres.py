"""Postgres-backed stores over the Supabase tables.

Tables:
    wearable_connections  — one row per (client_id, provider)
    oauth_temp_tokens     — one row per (user_id, provider), short-lived
    health_data_sync      — one row per (client_id, data_type, recorded_at, source)
    client_profiles       — read-only, user_id → client profile id
"""

from __future__ import annotations

import json
import logging
from datetime import datetime

import asyncpg

from wearsync.services import database as db
from wearsync.wearables.base import Connection, HealthRecord, OAuthTokens, TempToken
from wearsync.wearables.stores.base import (
    ConnectionStore,
    HealthRecordStore,
    ProfileResolver,
    TempTokenStore,
)
from wearsync.wearables.sync.dedup import (
    CONNECTION_CONFLICT,
    HEALTH_DATA_CONFLICT,
    TEMP_TOKEN_CONFLICT,
    build_upsert_query,
)

logger = logging.getLogger("wearsync.wearables.stores")

_CONNECTION_COLUMNS = [
    "client_id",
    "provider",
    "access_token",
    "refresh_token",
    "token_secret",
    "token_expires_at",
    "provider_user_id",
    "scopes",
]
_CONNECTION_SELECT = (
    "SELECT id, client_id, provider, access_token, refresh_token, token_secret, "
    "token_expires_at, provider_user_id, is_active, last_synced_at "
    "FROM wearable_connections"
)

_UPSERT_CONNECTION = build_upsert_query(
    "wearable_connections",
    _CONNECTION_COLUMNS,
    CONNECTION_CONFLICT,
    extra_updates={"is_active": "TRUE"},
    returning=["id", "last_synced_at"],
)

_UPSERT_TEMP_TOKEN = build_upsert_query(
    "oauth_temp_tokens",
    ["user_id", "provider", "oauth_token", "oauth_token_secret", "created_at", "expires_at"],
    TEMP_TOKEN_CONFLICT,
    touch_updated_at=False,
)

_HEALTH_COLUMNS = [
    "client_id",
    "wearable_connection_id",
    "data_type",
    "recorded_at",
    "value",
    "unit",
    "source",
    "raw_data",
]
_UPSERT_HEALTH = build_upsert_query("health_data_sync", _HEALTH_COLUMNS, HEALTH_DATA_CONFLICT)


def _connection_from_row(row: asyncpg.Record) -> Connection:
    return Connection(
        id=str(row["id"]),
        client_id=str(row["client_id"]),
        provider=str(row["provider"]),
        access_token=row["access_token"],
        refresh_token=row["refresh_token"],
        token_secret=row["token_secret"],
        token_expires_at=row["token_expires_at"],
        provider_user_id=row["provider_user_id"],
        is_active=bool(row["is_active"]),
        last_synced_at=row["last_synced_at"],
    )


class PostgresConnectionStore(ConnectionStore):
    async def get(self, connection_id: str) -> Connection | None:
        try:
            row = await db.fetchrow(f"{_CONNECTION_SELECT} WHERE id = $1::uuid", connection_id)
        except asyncpg.DataError:
            # not a uuid
            return None
        return _connection_from_row(row) if row else None

    async def upsert(self, client_id: str, provider: str, tokens: OAuthTokens) -> Connection:
        row = await db.fetchrow(
            _UPSERT_CONNECTION,
            client_id,
            provider,
            tokens.access_token,
            tokens.refresh_token,
            tokens.token_secret,
            tokens.expires_at,
            tokens.provider_user_id,
            tokens.scope or None,
        )
        logger.info("Upserted %s connection for client %s", provider, client_id)
        return Connection(
            id=str(row["id"]),
            client_id=client_id,
            provider=provider,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_secret=tokens.token_secret,
            token_expires_at=tokens.expires_at,
            provider_user_id=tokens.provider_user_id,
            is_active=True,
            last_synced_at=row["last_synced_at"],
        )

    async def list_for_client(self, client_id: str) -> list[Connection]:
        rows = await db.fetch(
            f"{_CONNECTION_SELECT} WHERE client_id = $1 ORDER BY provider", client_id
        )
        return [_connection_from_row(r) for r in rows]

    async def list_active(self) -> list[Connection]:
        rows = await db.fetch(f"{_CONNECTION_SELECT} WHERE is_active = TRUE")
        return [_connection_from_row(r) for r in rows]

    async def mark_synced(self, connection_id: str, synced_at: datetime) -> None:
        await db.execute(
            "UPDATE wearable_connections SET last_synced_at = $2, updated_at = NOW() "
            "WHERE id = $1::uuid",
            connection_id,
            synced_at,
        )

    async def deactivate(self, connection_id: str, client_id: str) -> bool:
        try:
            status = await db.execute(
                "UPDATE wearable_connections SET is_active = FALSE, updated_at = NOW() "
                "WHERE id = $1::uuid AND client_id = $2",
                connection_id,
                client_id,
            )
        except asyncpg.DataError:
            return False
        # asyncpg returns the command tag, e.g. "UPDATE 1"
        return status.split()[-1] != "0"


class PostgresTempTokenStore(TempTokenStore):
    async def upsert(self, token: TempToken) -> None:
        await db.execute(
            _UPSERT_TEMP_TOKEN,
            token.user_id,
            token.provider,
            token.oauth_token,
            token.oauth_token_secret,
            token.created_at,
            token.expires_at,
        )

    async def get_by_token(self, oauth_token: str, now: datetime) -> TempToken | None:
        row = await db.fetchrow(
            "SELECT user_id, provider, oauth_token, oauth_token_secret, created_at, expires_at "
            "FROM oauth_temp_tokens WHERE oauth_token = $1 AND expires_at > $2",
            oauth_token,
            now,
        )
        if row is None:
            return None
        return TempToken(
            user_id=str(row["user_id"]),
            provider=row["provider"],
            oauth_token=row["oauth_token"],
            oauth_token_secret=row["oauth_token_secret"],
            created_at=row["created_at"],
            expires_at=row["expires_at"],
        )

    async def delete(self, oauth_token: str) -> None:
        await db.execute("DELETE FROM oauth_temp_tokens WHERE oauth_token = $1", oauth_token)

    async def delete_expired(self, now: datetime) -> int:
        status = await db.execute("DELETE FROM oauth_temp_tokens WHERE expires_at <= $1", now)
        return int(status.split()[-1])


class PostgresHealthRecordStore(HealthRecordStore):
    async def upsert_many(self, records: list[HealthRecord]) -> int:
        if not records:
            return 0
        await db.executemany(
            _UPSERT_HEALTH,
            [
                (
                    r.client_id,
                    r.wearable_connection_id,
                    r.data_type,
                    r.recorded_at,
                    r.value,
                    r.unit,
                    r.source,
                    json.dumps(r.raw_payload, default=str),
                )
                for r in records
            ],
        )
        return len(records)


class PostgresProfileResolver(ProfileResolver):
    async def resolve(self, user_id: str) -> str | None:
        value = await db.fetchval("SELECT id FROM client_profiles WHERE user_id = $1", user_id)
        return str(value) if value is not None else None
