"""
Client identity resolution – ordered fallback chain.

Tiers are tried in strict order and the first success wins:

1.  First-party lookup endpoint   → IdentityTier.NETWORK_EDGE
2.  Public IP-echo service        → IdentityTier.PUBLIC_API
3.  Environment fingerprint       → IdentityTier.FINGERPRINT
4.  Fixed sentinel                → IdentityTier.UNKNOWN

Each network tier gets one attempt under its own deadline, so the
worst-case latency is the sum of the two timeouts.  A call that misses
its deadline is abandoned (we stop awaiting it) and the chain moves on.
``resolve()`` never raises.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from app.errors import GateError, MalformedResponse, NetworkFailure
from app.services.fingerprint import EnvironmentSignals, generate_fingerprint, local_signals
from app.services.identity.client import IpLookupClient
from app.services.identity.config import FINGERPRINT_PREFIX, UNKNOWN_CLIENT

logger = logging.getLogger(__name__)


class IdentityTier(str, enum.Enum):
    NETWORK_EDGE = "network_edge"
    PUBLIC_API = "public_api"
    FINGERPRINT = "fingerprint"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ClientIdentity:
    value: str  # never empty
    tier: IdentityTier


@dataclass(frozen=True)
class NetworkTier:
    """One network strategy in the chain."""
    tier: IdentityTier
    fetch: Callable[[], Awaitable[str]]
    timeout: float


class ClientIdentityResolver:
    """Resolves the best available identifier for the calling client."""

    def __init__(
        self,
        tiers: Sequence[NetworkTier],
        *,
        signal_provider: Callable[[], EnvironmentSignals] = local_signals,
        fingerprint: Callable[[EnvironmentSignals], str] = generate_fingerprint,
    ) -> None:
        self._tiers = list(tiers)
        self._signal_provider = signal_provider
        self._fingerprint = fingerprint
        # Calls that missed their deadline, referenced until they settle.
        self._abandoned: set[asyncio.Future[str]] = set()

    @classmethod
    def from_clients(
        cls,
        edge: IpLookupClient,
        public: IpLookupClient,
        *,
        edge_timeout: float,
        public_timeout: float,
        **kwargs,
    ) -> ClientIdentityResolver:
        return cls(
            [
                NetworkTier(IdentityTier.NETWORK_EDGE, edge.lookup, edge_timeout),
                NetworkTier(IdentityTier.PUBLIC_API, public.lookup, public_timeout),
            ],
            **kwargs,
        )

    # ── Public API ─────────────────────────────────────────────────────

    async def resolve(self, signals: EnvironmentSignals | None = None) -> ClientIdentity:
        """Walk the chain; *signals* overrides the provider for the fingerprint tier."""
        for tier in self._tiers:
            value = await self._try_tier(tier)
            if value is not None:
                return ClientIdentity(value=value, tier=tier.tier)

        try:
            if signals is None:
                signals = self._signal_provider()
            fingerprint = self._fingerprint(signals)
            if not fingerprint:
                raise ValueError("empty fingerprint")
        except Exception:
            logger.exception("All client identity methods failed")
            return ClientIdentity(value=UNKNOWN_CLIENT, tier=IdentityTier.UNKNOWN)

        logger.info("Client identity fell back to environment fingerprint")
        return ClientIdentity(
            value=f"{FINGERPRINT_PREFIX}{fingerprint}",
            tier=IdentityTier.FINGERPRINT,
        )

    # ── Tiers ──────────────────────────────────────────────────────────

    async def _try_tier(self, tier: NetworkTier) -> str | None:
        try:
            value = await self._await_within(tier.fetch(), tier.timeout)
            if not isinstance(value, str) or not value.strip():
                raise MalformedResponse("empty identifier")
        except GateError as exc:
            logger.warning("Identity tier %s failed: %s", tier.tier.value, exc)
            return None
        except Exception:
            logger.warning("Identity tier %s failed unexpectedly", tier.tier.value, exc_info=True)
            return None
        return value.strip()

    async def _await_within(self, call: Awaitable[str], timeout: float) -> str:
        task = asyncio.ensure_future(call)
        done, _pending = await asyncio.wait({task}, timeout=timeout)
        if not done:
            self._abandoned.add(task)
            task.add_done_callback(self._settle_abandoned)
            raise NetworkFailure(f"no answer within {timeout}s")
        return task.result()

    def _settle_abandoned(self, task: asyncio.Future[str]) -> None:
        self._abandoned.discard(task)
        if not task.cancelled():
            # Retrieve the outcome so asyncio does not report it as unhandled.
            task.exception()
