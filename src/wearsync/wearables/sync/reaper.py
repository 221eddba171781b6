"""Periodic removal of expired OAuth1 request tokens.

A TempToken lives ``temp_token_ttl_seconds`` (10 minutes by default).  Lookups
already ignore expired rows; the reaper keeps the table from growing with
abandoned authorizations.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime
from typing import Callable

from wearsync.wearables.base import utc_now
from wearsync.wearables.stores.base import TempTokenStore

logger = logging.getLogger("wearsync.wearables.sync.reaper")


class TempTokenReaper:
    def __init__(
        self,
        store: TempTokenStore,
        interval_seconds: float = 300,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._interval = interval_seconds
        self._clock = clock
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def reap_once(self) -> int:
        removed = await self._store.delete_expired(self._clock())
        if removed:
            logger.info("Reaped %d expired OAuth temp tokens", removed)
        return removed

    async def _loop(self) -> None:
        while True:
            try:
                await self.reap_once()
            except Exception:
                # keep the loop alive across transient DB errors
                logger.exception("Temp token reap failed")
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="temp-token-reaper")
        logger.info("Temp token reaper started (every %ss)", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Temp token reaper stopped")
