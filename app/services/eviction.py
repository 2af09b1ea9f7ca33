"""
Periodic TTL sweep for rate-limit state.

State is created lazily and never deleted by the gate itself; this
worker keeps every backend bounded by removing keys with no attempt
within the TTL and no lockout reaching past it, along with attempt log
entries older than the TTL (in-memory store).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Protocol

logger = logging.getLogger(__name__)


class EvictableStore(Protocol):
    async def evict(self, before: datetime) -> int:
        ...


class StateEvictionWorker:
    """Runs ``store.evict()`` every *interval* seconds in the background."""

    def __init__(
        self,
        store: EvictableStore,
        *,
        interval: float,
        ttl: timedelta,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._store = store
        self._interval = interval
        self._ttl = ttl
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    # ── Lifecycle ──────────────────────────────────────────────────────

    async def start(self) -> None:
        self._task = asyncio.create_task(self._loop(), name="state-eviction")
        logger.info("State eviction started (every %ds, ttl %s)", self._interval, self._ttl)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
            logger.info("State eviction stopped")

    # ── Background loop ───────────────────────────────────────────────

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("State eviction failed, retrying next interval")

    async def sweep(self) -> int:
        """One eviction pass; returns how many states were removed."""
        removed = await self._store.evict(self._clock() - self._ttl)
        if removed:
            logger.info("Evicted %d idle rate limit states", removed)
        return removed
