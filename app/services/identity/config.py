"""
Client identity lookup configuration.

Constants describing how to talk to the two lookup services and how
fallback identifiers are rendered.
"""

from __future__ import annotations

from app.config import (
    IDENTITY_API_KEY,
    IDENTITY_ENDPOINT_TIMEOUT,
    IDENTITY_ENDPOINT_URL,
    PUBLIC_IP_ECHO_TIMEOUT,
    PUBLIC_IP_ECHO_URL,
)

# ── Endpoints ─────────────────────────────────────────────────────────────

# Tier 1: our own edge function, sees the real client address.
EDGE_LOOKUP_URL = IDENTITY_ENDPOINT_URL
EDGE_LOOKUP_TIMEOUT = IDENTITY_ENDPOINT_TIMEOUT

# Tier 2: third-party echo service answering {"ip": "..."}.
PUBLIC_ECHO_URL = PUBLIC_IP_ECHO_URL
PUBLIC_ECHO_TIMEOUT = PUBLIC_IP_ECHO_TIMEOUT

# ── Fallback identifiers ──────────────────────────────────────────────────

# Distinguishes fingerprint identifiers from network-sourced addresses.
FINGERPRINT_PREFIX = "browser-"

# Returned only if even the fingerprint cannot be computed.
UNKNOWN_CLIENT = "unknown-client"

# ── HTTP defaults ─────────────────────────────────────────────────────────

DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": "AuthGate/0.1",
    "Accept": "application/json",
}


def edge_headers() -> dict[str, str]:
    """Headers for the first-party endpoint (carries the auth context)."""
    headers = dict(DEFAULT_HEADERS)
    if IDENTITY_API_KEY:
        headers["Authorization"] = f"Bearer {IDENTITY_API_KEY}"
    return headers
