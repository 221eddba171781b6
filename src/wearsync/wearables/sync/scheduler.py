"""Sync every active connection in one pass.

Triggered by the scheduled ``/sync-all`` call:
1. List active connections
2. Skip providers without a server-side API (Apple Health)
3. Run ``SyncEngine.sync_connection`` for each, ``max_concurrent`` at a time
4. Collect per-connection results; one failure never stops the rest

Sync intervals per provider come from providers.yaml (``sync_intervals``).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from wearsync.wearables.base import Connection, utc_now
from wearsync.wearables.config_loader import ProviderCatalog, get_provider_catalog
from wearsync.wearables.errors import WearableError
from wearsync.wearables.stores.base import ConnectionStore
from wearsync.wearables.sync.engine import SyncEngine

logger = logging.getLogger("wearsync.wearables.sync.scheduler")


@dataclass
class SyncResult:
    """Result of one connection's sync within a sync-all run.

    Attributes:
        connection_id: Connection synced.
        provider:      Provider slug.
        data_points:   Records written.
        status:        'success', 'partial', 'error'.
        error:         Error message if status == 'error'.
    """

    connection_id: str
    provider: str
    data_points: int = 0
    status: str = "success"
    error: str | None = None


@dataclass
class SyncAllSummary:
    results: list[SyncResult] = field(default_factory=list)

    @property
    def synced(self) -> int:
        return sum(1 for r in self.results if r.status != "error")

    @property
    def errors(self) -> int:
        return sum(1 for r in self.results if r.status == "error")


class SyncScheduler:
    """Run the SyncEngine over all active connections with bounded concurrency.

    Usage::

        scheduler = SyncScheduler(engine, stores.connections, max_concurrent=5)
        summary = await scheduler.sync_all_active()
    """

    def __init__(
        self,
        engine: SyncEngine,
        connections: ConnectionStore,
        catalog: ProviderCatalog | None = None,
        max_concurrent: int = 5,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._engine = engine
        self._connections = connections
        self._catalog = catalog or get_provider_catalog()
        self._max_concurrent = max_concurrent
        self._clock = clock

    async def sync_all_active(self, due_only: bool = False) -> SyncAllSummary:
        """Sync every active connection.

        Args:
            due_only: Only sync connections whose provider interval has elapsed.

        Returns:
            SyncAllSummary with one SyncResult per attempted connection.
        """
        connections = [c for c in await self._connections.list_active() if self._syncable(c)]
        if due_only:
            connections = [c for c in connections if self.should_sync(c.provider, c.last_synced_at)]

        if not connections:
            logger.info("SyncScheduler: no active connections to sync")
            return SyncAllSummary()

        logger.info("SyncScheduler: syncing %d connections", len(connections))
        semaphore = asyncio.Semaphore(self._max_concurrent)
        results = await asyncio.gather(*(self._run_one(c, semaphore) for c in connections))

        summary = SyncAllSummary(results=list(results))
        logger.info(
            "SyncScheduler: %d synced, %d errors", summary.synced, summary.errors
        )
        return summary

    async def _run_one(self, connection: Connection, semaphore: asyncio.Semaphore) -> SyncResult:
        async with semaphore:
            try:
                report = await self._engine.sync_connection(connection.id)
            except WearableError as exc:
                logger.warning("Sync failed for %s (%s): %s", connection.id, connection.provider, exc.message)
                return SyncResult(connection.id, connection.provider, status="error", error=exc.message)
            except Exception as exc:
                logger.exception("Sync crashed for %s (%s)", connection.id, connection.provider)
                return SyncResult(
                    connection.id, connection.provider, status="error", error=exc.__class__.__name__
                )
        return SyncResult(
            connection.id, connection.provider, data_points=report.data_points, status=report.status
        )

    def _syncable(self, connection: Connection) -> bool:
        try:
            return self._catalog.provider(connection.provider).auth_type != "native"
        except KeyError:
            logger.warning("Skipping connection %s: unknown provider %r", connection.id, connection.provider)
            return False

    def should_sync(self, provider: str, last_sync_at: datetime | None) -> bool:
        """Return True if a connection is due for a sync.

        Args:
            provider:     Provider slug.
            last_sync_at: UTC datetime of last sync (None = never).
        """
        if last_sync_at is None:
            return True
        elapsed = (self._clock() - last_sync_at).total_seconds()
        return elapsed >= self._catalog.sync_interval(provider)
