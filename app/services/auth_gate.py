"""
Auth gate – process-wide facade over the attempt-gating components.

Wires the identity resolver, state store, gate and recorder from
app.config, owns their lifecycle, and exposes the three public
operations callers need around a credential check:

    decision = await auth_gate.check_rate_limit(email, identity)
    await auth_gate.record_attempt(email, identity, success)
    identity = await auth_gate.get_client_identity()

All three are total: they never raise into the authentication flow.
Components can be injected for tests; anything not injected is built
from configuration on first use.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from app.config import (
    ATTEMPT_WINDOW_MINUTES,
    BASE_LOCKOUT_MINUTES,
    MAX_LOCKOUT_MINUTES,
    RATE_LIMIT_THRESHOLD,
    STATE_EVICTION_INTERVAL,
    STATE_TTL_HOURS,
    sqlite_backend,
)
from app.services.attempt_recorder import AttemptRecorder
from app.services.eviction import StateEvictionWorker
from app.services.fingerprint import EnvironmentSignals
from app.services.identity.client import IpLookupClient
from app.services.identity.config import (
    EDGE_LOOKUP_TIMEOUT,
    EDGE_LOOKUP_URL,
    PUBLIC_ECHO_TIMEOUT,
    PUBLIC_ECHO_URL,
    edge_headers,
)
from app.services.identity.resolver import (
    ClientIdentity,
    ClientIdentityResolver,
    IdentityTier,
    NetworkTier,
)
from app.services.rate_limit_gate import LockoutPolicy, RateLimitDecision, RateLimitGate
from app.services.state_store import InMemoryStateStore, RateLimitStore, SqliteStateStore

logger = logging.getLogger(__name__)


def policy_from_config() -> LockoutPolicy:
    return LockoutPolicy(
        threshold=RATE_LIMIT_THRESHOLD,
        base_lockout_minutes=BASE_LOCKOUT_MINUTES,
        max_lockout_minutes=MAX_LOCKOUT_MINUTES,
        attempt_window_minutes=ATTEMPT_WINDOW_MINUTES or None,
    )


class AuthGate:
    def __init__(
        self,
        *,
        store: RateLimitStore | None = None,
        resolver: ClientIdentityResolver | None = None,
        policy: LockoutPolicy | None = None,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._policy = policy
        self._gate: RateLimitGate | None = None
        self._recorder: AttemptRecorder | None = None
        self._clients: list[IpLookupClient] = []
        self._worker: StateEvictionWorker | None = None

    # ── Wiring ─────────────────────────────────────────────────────────

    def configure(self) -> None:
        """Build every component that was not injected."""
        if self._store is None:
            self._store = SqliteStateStore() if sqlite_backend() else InMemoryStateStore()
        if self._resolver is None:
            edge = IpLookupClient(EDGE_LOOKUP_URL, timeout=EDGE_LOOKUP_TIMEOUT, headers=edge_headers())
            public = IpLookupClient(PUBLIC_ECHO_URL, timeout=PUBLIC_ECHO_TIMEOUT)
            self._clients.extend([edge, public])
            self._resolver = ClientIdentityResolver.from_clients(
                edge,
                public,
                edge_timeout=EDGE_LOOKUP_TIMEOUT,
                public_timeout=PUBLIC_ECHO_TIMEOUT,
            )
        self._gate = RateLimitGate(self._store, self._policy or policy_from_config())
        self._recorder = AttemptRecorder(self._resolver, self._gate)
        logger.info(
            "Auth gate configured (store=%s, threshold=%d)",
            type(self._store).__name__, self._gate.policy.threshold,
        )

    @property
    def gate(self) -> RateLimitGate:
        if self._gate is None:
            self.configure()
        return self._gate

    @property
    def resolver(self) -> ClientIdentityResolver:
        if self._resolver is None:
            self.configure()
        return self._resolver

    @property
    def recorder(self) -> AttemptRecorder:
        if self._recorder is None:
            self.configure()
        return self._recorder

    # ── Lifecycle ──────────────────────────────────────────────────────

    async def start(self) -> None:
        """Configure if needed and start the eviction sweep."""
        if self._gate is None:
            self.configure()
        if STATE_EVICTION_INTERVAL > 0:
            self._worker = StateEvictionWorker(
                self._store,
                interval=STATE_EVICTION_INTERVAL,
                ttl=timedelta(hours=STATE_TTL_HOURS),
            )
            await self._worker.start()

    async def stop(self) -> None:
        """Stop background work and close all HTTP clients."""
        if self._worker is not None:
            await self._worker.stop()
            self._worker = None
        for client in self._clients:
            await client.close()
        self._clients.clear()

    # ── Public operations ──────────────────────────────────────────────

    async def check_rate_limit(self, email: str, identity: str) -> RateLimitDecision:
        decision = await self.gate.check(email)
        if not decision.allowed:
            logger.info("Rate limit denied %s (client %s)", email, identity)
        return decision

    async def record_attempt(
        self,
        email: str,
        identity: str,
        success: bool,
        user_agent: str | None = None,
    ) -> None:
        await self.gate.record(email, success, identity=identity, user_agent=user_agent)

    async def resolve_identity(self, signals: EnvironmentSignals | None = None) -> ClientIdentity:
        return await self.resolver.resolve(signals)

    async def get_client_identity(self, signals: EnvironmentSignals | None = None) -> str:
        return (await self.resolve_identity(signals)).value

    async def resolve_request_identity(
        self,
        address: str,
        signals: EnvironmentSignals,
    ) -> ClientIdentity:
        """Identity of a remote caller, as seen by this service.

        Here the service itself is the first-party edge: the caller's
        address is tier 1, and the public echo tier is skipped because it
        would only report the server's own address.
        """

        async def edge() -> str:
            return address

        resolver = ClientIdentityResolver(
            [NetworkTier(IdentityTier.NETWORK_EDGE, edge, EDGE_LOOKUP_TIMEOUT)],
        )
        return await resolver.resolve(signals)


# ── Singleton instance ────────────────────────────────────────────────────
auth_gate = AuthGate()
