"""
Keyed state store for rate-limit state.

The gate depends only on the RateLimitStore protocol, so any backing
store can be substituted.  Two implementations ship here:

  • InMemoryStateStore – per-process dict, one asyncio.Lock per key
  • SqliteStateStore   – the aiosqlite database from app.db

``update()`` is the only write path for state and is atomic per key:
N concurrent increments for one key always yield N.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from app import db
from app.errors import StorageUnavailable
from app.models import AttemptRecord, RateLimitState

logger = logging.getLogger(__name__)

# Receives the current state (None for a fresh key), returns the new one.
StateMutation = Callable[[RateLimitState | None], RateLimitState]


def _idle(state: RateLimitState, before: datetime) -> bool:
    last_seen = state.updated_at or state.window_start
    return last_seen < before and (state.lockout_until is None or state.lockout_until < before)


class RateLimitStore(Protocol):
    """Protocol that every state backend must satisfy."""

    async def get(self, key: str) -> RateLimitState | None:
        """Return the state for *key*, or None if never written."""
        ...

    async def put(self, key: str, state: RateLimitState) -> None:
        """Unconditionally replace the state for *key*."""
        ...

    async def update(self, key: str, mutate: StateMutation) -> RateLimitState:
        """Atomically read-modify-write the state for *key*."""
        ...

    async def append_attempt(self, record: AttemptRecord) -> None:
        """Append to the attempt log."""
        ...

    async def evict(self, before: datetime) -> int:
        """Drop keys with no attempt since *before* and no lockout past it,
        plus log entries older than *before*.  Returns how many keys went."""
        ...


class InMemoryStateStore:
    """Dict-backed store with per-key locking."""

    def __init__(self) -> None:
        self._states: dict[str, RateLimitState] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.attempts: list[AttemptRecord] = []

    async def get(self, key: str) -> RateLimitState | None:
        return self._states.get(key)

    async def put(self, key: str, state: RateLimitState) -> None:
        async with self._locks[key]:
            self._states[key] = state

    async def update(self, key: str, mutate: StateMutation) -> RateLimitState:
        async with self._locks[key]:
            state = mutate(self._states.get(key))
            self._states[key] = state
            return state

    async def append_attempt(self, record: AttemptRecord) -> None:
        self.attempts.append(record)

    async def evict(self, before: datetime) -> int:
        removed = 0
        for key, state in list(self._states.items()):
            lock = self._locks.get(key)
            if lock is not None and lock.locked():
                continue
            if _idle(state, before):
                del self._states[key]
                removed += 1
        # Locks of keys that no longer hold state.
        for key in [k for k, lock in self._locks.items() if k not in self._states and not lock.locked()]:
            del self._locks[key]
        self.attempts[:] = [r for r in self.attempts if r.timestamp >= before]
        return removed

    def clear(self) -> None:
        """Drop all state (tests, admin tooling)."""
        self._states.clear()
        self._locks.clear()
        self.attempts.clear()


class SqliteStateStore:
    """
    Store backed by the shared aiosqlite connection.

    All writes share one connection, so they are serialized by a
    store-wide lock; ``BEGIN IMMEDIATE`` additionally guards against other
    processes writing the same database file.
    """

    def __init__(self) -> None:
        self._write_lock = asyncio.Lock()

    async def get(self, key: str) -> RateLimitState | None:
        self._connection()
        try:
            return await db.get_state(key)
        except Exception as exc:
            raise StorageUnavailable(f"reading state for {key!r}: {exc!r}") from exc

    async def put(self, key: str, state: RateLimitState) -> None:
        await self.update(key, lambda _current: state)

    async def update(self, key: str, mutate: StateMutation) -> RateLimitState:
        async with self._write_lock:
            conn = self._connection()
            try:
                await conn.execute("BEGIN IMMEDIATE")
                state = mutate(await db.get_state(key))
                await db.upsert_state(key, state)
                await conn.commit()
            except Exception as exc:
                await self._rollback(conn)
                raise StorageUnavailable(f"updating state for {key!r}: {exc!r}") from exc
            return state

    async def append_attempt(self, record: AttemptRecord) -> None:
        async with self._write_lock:
            conn = self._connection()
            try:
                await db.insert_attempt(record)
                await conn.commit()
            except Exception as exc:
                await self._rollback(conn)
                raise StorageUnavailable(f"logging attempt: {exc!r}") from exc

    async def evict(self, before: datetime) -> int:
        """Remove states with no attempt since *before*; returns how many went."""
        async with self._write_lock:
            self._connection()
            try:
                return await db.delete_states_before(before)
            except Exception as exc:
                raise StorageUnavailable(f"evicting states: {exc!r}") from exc

    # ── Internals ──────────────────────────────────────────────────────

    @staticmethod
    def _connection():
        if not db.connected():
            raise StorageUnavailable("database not initialized")
        return db.get_db()

    @staticmethod
    async def _rollback(conn) -> None:
        try:
            await conn.rollback()
        except Exception:
            logger.warning("Rollback failed", exc_info=True)
