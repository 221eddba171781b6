"""Pull the trailing window of health data for one connection and persist it.

Flow for ``sync_connection``:
1. Load the connection; unknown or inactive connections are rejected
2. Build the trailing window (``sync_window_days`` ending now)
3. Let the provider adapter fetch and normalize every endpoint
4. Collapse in-batch duplicates and upsert into health_data_sync
5. Stamp ``last_synced_at`` (even when nothing was found)

Endpoint failures never abort the run; they come back on the report.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from wearsync.wearables.base import HealthRecord, ProviderAdapter, SyncWindow, utc_now
from wearsync.wearables.errors import ConnectionNotFoundError, PartialSyncError
from wearsync.wearables.stores.base import ConnectionStore, HealthRecordStore
from wearsync.wearables.sync.dedup import collapse_records

logger = logging.getLogger("wearsync.wearables.sync.engine")


@dataclass
class SyncReport:
    """Outcome of one connection sync.

    Attributes:
        connection_id: Connection that was synced.
        provider:      Provider slug.
        data_points:   Records upserted.
        failures:      Endpoint-level failures (the rest still persisted).
        synced_at:     UTC timestamp written to ``last_synced_at``.
    """

    connection_id: str
    provider: str
    data_points: int = 0
    failures: list[PartialSyncError] = field(default_factory=list)
    synced_at: datetime | None = None

    @property
    def status(self) -> str:
        """'success' when every endpoint answered, otherwise 'partial'."""
        return "partial" if self.failures else "success"


class SyncEngine:
    """Sync one connection at a time; stateless between calls.

    Runs for different connections may execute concurrently; each writes
    only its own rows and the upsert is idempotent on the record key.
    """

    def __init__(
        self,
        connections: ConnectionStore,
        health_records: HealthRecordStore,
        adapters: dict[str, ProviderAdapter],
        window_days: int = 7,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._connections = connections
        self._health_records = health_records
        self._adapters = adapters
        self._window_days = window_days
        self._clock = clock

    async def sync_connection(self, connection_id: str, client_id: str | None = None) -> SyncReport:
        """Sync the trailing window for one connection.

        Args:
            connection_id: Connection to sync.
            client_id:     When given, the connection must belong to this client.

        Raises:
            ConnectionNotFoundError: Unknown, inactive, or someone else's connection.
        """
        connection = await self._connections.get(connection_id)
        if connection is None or not connection.is_active:
            raise ConnectionNotFoundError()
        if client_id is not None and connection.client_id != client_id:
            logger.warning("Client %s tried to sync connection %s it does not own", client_id, connection_id)
            raise ConnectionNotFoundError()

        now = self._clock()
        report = SyncReport(connection_id=connection.id, provider=connection.provider)
        adapter = self._adapters.get(connection.provider)

        if adapter is None or adapter.endpoints.auth_type == "native":
            logger.info(
                "Sync %s: %s has no server-side API, nothing to fetch",
                connection.id, connection.provider,
            )
        else:
            window = SyncWindow.trailing(self._window_days, now)
            fetched = await adapter.fetch(connection, window)
            report.failures = fetched.failures

            records = collapse_records(
                [HealthRecord.from_normalized(r, connection) for r in fetched.records]
            )
            report.data_points = await self._health_records.upsert_many(records)

        await self._connections.mark_synced(connection.id, now)
        report.synced_at = now

        logger.info(
            "Sync %s (%s): %d data points, %d endpoint failures",
            connection.id, connection.provider, report.data_points, len(report.failures),
        )
        return report
