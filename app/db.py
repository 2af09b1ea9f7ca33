"""
SQLite database layer using aiosqlite.

Stores per-key rate-limit state and the append-only attempt log.
Tables are created automatically on first connect.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

import aiosqlite

from app.config import DB_PATH
from app.models import AttemptRecord, RateLimitState

logger = logging.getLogger(__name__)

# ── Module-level connection ───────────────────────────────────────────────

_db: aiosqlite.Connection | None = None


async def init_db() -> None:
    """Open the database and create tables if they don't exist."""
    global _db
    db_path = Path(DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    _db = await aiosqlite.connect(str(db_path))
    _db.row_factory = aiosqlite.Row  # dict-like rows
    await _db.execute("PRAGMA journal_mode=WAL")

    await _db.executescript(_SCHEMA)
    await _db.commit()
    logger.info("Database initialized at %s", db_path)


async def close_db() -> None:
    """Close the database connection."""
    global _db
    if _db is not None:
        await _db.close()
        _db = None
        logger.info("Database connection closed")


def connected() -> bool:
    """True between init_db() and close_db()."""
    return _db is not None


def get_db() -> aiosqlite.Connection:
    """Return the active database connection (must call init_db first)."""
    assert _db is not None, "Database not initialized, call init_db() first"
    return _db


# ── Schema ────────────────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS rate_limit_state (
    rate_key        TEXT PRIMARY KEY,   -- normalized email
    attempts        INTEGER NOT NULL DEFAULT 0,
    window_start    TEXT NOT NULL,
    lockout_until   TEXT,
    updated_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_state_updated ON rate_limit_state(updated_at);

CREATE TABLE IF NOT EXISTS auth_attempts (
    id              TEXT PRIMARY KEY,
    email           TEXT NOT NULL,
    identity        TEXT NOT NULL,
    success         INTEGER NOT NULL,
    user_agent      TEXT,
    attempted_at    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_attempts_email ON auth_attempts(email);
"""


# ── Helpers ───────────────────────────────────────────────────────────────


def _iso(dt: datetime | None) -> str | None:
    """UTC ISO-8601, so stored timestamps compare correctly as text."""
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).isoformat()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_state(row: aiosqlite.Row) -> RateLimitState:
    """Convert a database row to a RateLimitState model."""
    return RateLimitState(
        attempts=row["attempts"],
        window_start=row["window_start"],
        lockout_until=row["lockout_until"],
        updated_at=row["updated_at"],
    )


# ══════════════════════════════════════════════════════════════════════════
#                    RATE LIMIT STATE REPOSITORY
# ══════════════════════════════════════════════════════════════════════════


async def get_state(rate_key: str) -> RateLimitState | None:
    """Fetch the state for a key, or None if it has never been seen."""
    db = get_db()
    async with db.execute(
        "SELECT * FROM rate_limit_state WHERE rate_key = ?", (rate_key,)
    ) as cur:
        row = await cur.fetchone()
    return _row_to_state(row) if row else None


async def upsert_state(rate_key: str, state: RateLimitState) -> None:
    """Insert or replace the state for a key (caller commits)."""
    db = get_db()
    await db.execute(
        """
        INSERT INTO rate_limit_state (rate_key, attempts, window_start, lockout_until, updated_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(rate_key) DO UPDATE SET
            attempts = excluded.attempts,
            window_start = excluded.window_start,
            lockout_until = excluded.lockout_until,
            updated_at = excluded.updated_at
        """,
        (
            rate_key,
            state.attempts,
            _iso(state.window_start),
            _iso(state.lockout_until),
            _iso(state.updated_at) or _now_iso(),
        ),
    )


async def delete_states_before(cutoff: datetime) -> int:
    """Delete states with no attempt since *cutoff* and no lockout running past it.

    Returns the number of rows removed.
    """
    db = get_db()
    stamp = _iso(cutoff)
    cur = await db.execute(
        """
        DELETE FROM rate_limit_state
        WHERE updated_at < ?
          AND (lockout_until IS NULL OR lockout_until < ?)
        """,
        (stamp, stamp),
    )
    await db.commit()
    return cur.rowcount


# ══════════════════════════════════════════════════════════════════════════
#                    ATTEMPT LOG REPOSITORY
# ══════════════════════════════════════════════════════════════════════════


async def insert_attempt(record: AttemptRecord) -> None:
    """Append one attempt to the log (caller commits)."""
    db = get_db()
    await db.execute(
        """
        INSERT INTO auth_attempts (id, email, identity, success, user_agent, attempted_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            str(uuid4()),
            record.email,
            record.identity,
            int(record.success),
            record.user_agent,
            _iso(record.timestamp),
        ),
    )


async def count_attempts(email: str) -> int:
    """Number of logged attempts for an email."""
    db = get_db()
    async with db.execute(
        "SELECT COUNT(*) FROM auth_attempts WHERE email = ?", (email,)
    ) as cur:
        row = await cur.fetchone()
    return row[0] if row else 0
