"""
One authentication submission, end to end.

    identity = resolve()                     (fresh every attempt)
    decision = gate.check(email)
    denied?  → report it, never touch credentials
    allowed? → success = await validate()
               gate.record(email, success)   (exactly once, even if validate raises)

Exceptions raised by ``validate`` belong to the caller and propagate
unchanged after the failure has been recorded.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from app.services.fingerprint import EnvironmentSignals
from app.services.identity.resolver import ClientIdentity, ClientIdentityResolver
from app.services.rate_limit_gate import RateLimitDecision, RateLimitGate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptOutcome:
    identity: ClientIdentity
    decision: RateLimitDecision
    # None when the gate denied the attempt and validation never ran.
    success: bool | None = None

    @property
    def allowed(self) -> bool:
        return self.decision.allowed


class AttemptRecorder:
    def __init__(self, resolver: ClientIdentityResolver, gate: RateLimitGate) -> None:
        self._resolver = resolver
        self._gate = gate

    async def submit(
        self,
        email: str,
        validate: Callable[[], Awaitable[bool]],
        *,
        signals: EnvironmentSignals | None = None,
        user_agent: str | None = None,
    ) -> AttemptOutcome:
        identity = await self._resolver.resolve(signals)
        decision = await self._gate.check(email)

        if not decision.allowed:
            logger.info(
                "Attempt for %s from %s denied (%ds left)",
                email, identity.value, decision.remaining_seconds,
            )
            return AttemptOutcome(identity=identity, decision=decision)

        success = False
        try:
            success = bool(await validate())
        finally:
            await self._gate.record(
                email,
                success,
                identity=identity.value,
                user_agent=user_agent,
            )

        return AttemptOutcome(identity=identity, decision=decision, success=success)
