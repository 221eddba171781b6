"""Persistence for connections, temp tokens and health records."""

from __future__ import annotations

from dataclasses import dataclass

from wearsync.wearables.stores.base import (
    ConnectionStore,
    HealthRecordStore,
    ProfileResolver,
    TempTokenStore,
)
from wearsync.wearables.stores.memory import (
    InMemoryConnectionStore,
    InMemoryHealthRecordStore,
    InMemoryProfileResolver,
    InMemoryTempTokenStore,
)
from wearsync.wearables.stores.postgres import (
    PostgresConnectionStore,
    PostgresHealthRecordStore,
    PostgresProfileResolver,
    PostgresTempTokenStore,
)

__all__ = [
    "ConnectionStore",
    "HealthRecordStore",
    "ProfileResolver",
    "TempTokenStore",
    "Stores",
    "memory_stores",
    "postgres_stores",
]


@dataclass
class Stores:
    """The four collaborators the flows and sync engine persist through."""

    connections: ConnectionStore
    temp_tokens: TempTokenStore
    health_records: HealthRecordStore
    profiles: ProfileResolver


def postgres_stores() -> Stores:
    return Stores(
        connections=PostgresConnectionStore(),
        temp_tokens=PostgresTempTokenStore(),
        health_records=PostgresHealthRecordStore(),
        profiles=PostgresProfileResolver(),
    )


def memory_stores(profiles: dict[str, str] | None = None) -> Stores:
    return Stores(
        connections=InMemoryConnectionStore(),
        temp_tokens=InMemoryTempTokenStore(),
        health_records=InMemoryHealthRecordStore(),
        profiles=InMemoryProfileResolver(profiles),
    )
