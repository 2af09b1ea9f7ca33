"""
Application configuration from environment variables.

All settings have sensible defaults for local development.
A .env file in the project root is loaded automatically (if present).
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file before reading any env vars
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# ── Environment ───────────────────────────────────────────────────────────

ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "info").upper()

# ── Paths ─────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"

# SQLite database file
DB_PATH: str = os.getenv("DB_PATH", str(DATA_DIR / "auth_gate.db"))

# "sqlite" persists attempt state across restarts, "memory" keeps it in-process.
STATE_BACKEND: str = os.getenv("STATE_BACKEND", "sqlite").lower()

# ── Proxies ───────────────────────────────────────────────────────────────

# Comma-separated peer addresses whose X-Forwarded-For / X-Real-IP headers
# are believed.  Empty: forwarded headers are ignored, the socket peer is used.
TRUSTED_PROXIES: frozenset[str] = frozenset(
    p.strip() for p in os.getenv("TRUSTED_PROXIES", "").split(",") if p.strip()
)

# ── Lockout policy ────────────────────────────────────────────────────────

# Failures before the first lockout engages.
RATE_LIMIT_THRESHOLD: int = int(os.getenv("RATE_LIMIT_THRESHOLD", "5"))

# First lockout length; doubles with each further failure up to the cap.
BASE_LOCKOUT_MINUTES: int = int(os.getenv("BASE_LOCKOUT_MINUTES", "1"))
MAX_LOCKOUT_MINUTES: int = int(os.getenv("MAX_LOCKOUT_MINUTES", "60"))

# A failure streak older than this (with no lockout active) starts over.
ATTEMPT_WINDOW_MINUTES: int = int(os.getenv("ATTEMPT_WINDOW_MINUTES", "15"))

# ── Client identity ───────────────────────────────────────────────────────

# First-party lookup endpoint (tier 1).  Left empty, tier 1 is skipped.
IDENTITY_ENDPOINT_URL: str = os.getenv("IDENTITY_ENDPOINT_URL", "")
IDENTITY_API_KEY: str = os.getenv("IDENTITY_API_KEY", "")
IDENTITY_ENDPOINT_TIMEOUT: float = float(os.getenv("IDENTITY_ENDPOINT_TIMEOUT", "2.0"))

# Public IP-echo service (tier 2).
PUBLIC_IP_ECHO_URL: str = os.getenv("PUBLIC_IP_ECHO_URL", "https://api.ipify.org?format=json")
PUBLIC_IP_ECHO_TIMEOUT: float = float(os.getenv("PUBLIC_IP_ECHO_TIMEOUT", "2.0"))

# ── State eviction ────────────────────────────────────────────────────────

# States idle for longer than this are removed by the eviction sweep.
STATE_TTL_HOURS: float = float(os.getenv("STATE_TTL_HOURS", "24"))

# How often the sweep runs (seconds).  0 disables it.
STATE_EVICTION_INTERVAL: float = float(os.getenv("STATE_EVICTION_INTERVAL", "3600"))


def sqlite_backend() -> bool:
    """True when attempt state should be kept in the SQLite database.

    Controlled by STATE_BACKEND env var:
      • "sqlite" (default): persist in DB_PATH
      • "memory": per-process dict, lost on restart
    """
    return STATE_BACKEND != "memory"
