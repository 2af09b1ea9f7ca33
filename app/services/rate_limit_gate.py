"""
Rate-limit decision and recording engine.

Each key (a normalized email) moves between two states:

  Open    – fewer failures than the threshold, or the last lockout ran out
  Locked  – ``lockout_until`` is in the future; ``check()`` denies

Locked returns to Open only through a successful attempt or natural
expiry.  Expiry is evaluated lazily on the next ``check()``/``record()``;
there is no background timer.

Infrastructure failures never lock users out: ``check()`` fails open and
``record()`` drops the write with a warning.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from app.models import AttemptRecord, RateLimitState
from app.services.identity.config import UNKNOWN_CLIENT
from app.services.state_store import RateLimitStore

logger = logging.getLogger(__name__)

# Doubling beyond this is far past any sane cap.
_MAX_BACKOFF_EXPONENT = 32


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_key(email: str) -> str:
    """Rate-limit key for an email: the identity is never part of it."""
    return email.strip().lower()


@dataclass(frozen=True)
class LockoutPolicy:
    threshold: int = 5
    base_lockout_minutes: int = 1
    max_lockout_minutes: int = 60
    # None disables window decay: failures then only reset on success.
    attempt_window_minutes: int | None = 15

    def backoff_minutes(self, attempts: int) -> int:
        """``min(max, base * 2**(attempts - threshold))`` – non-decreasing."""
        exponent = min(max(0, attempts - self.threshold), _MAX_BACKOFF_EXPONENT)
        return min(self.max_lockout_minutes, self.base_lockout_minutes * 2**exponent)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining_seconds: int
    attempts: int
    lockout_minutes: int

    @classmethod
    def allow(cls, attempts: int = 0) -> RateLimitDecision:
        return cls(allowed=True, remaining_seconds=0, attempts=attempts, lockout_minutes=0)

    def denial_message(self) -> str:
        minutes = math.ceil(self.remaining_seconds / 60)
        unit = "minute" if minutes == 1 else "minutes"
        return f"Too many failed login attempts. Please try again in {minutes} {unit}."


class RateLimitGate:
    """Answers allow/deny and records outcomes against a RateLimitStore."""

    def __init__(
        self,
        store: RateLimitStore,
        policy: LockoutPolicy | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._policy = policy or LockoutPolicy()
        self._clock = clock

    @property
    def policy(self) -> LockoutPolicy:
        return self._policy

    # ── Decision ───────────────────────────────────────────────────────

    async def check(self, key: str) -> RateLimitDecision:
        key = normalize_key(key)
        now = self._clock()
        try:
            state = await self._store.get(key)
        except Exception:
            logger.warning("Rate limit state unavailable for %s – failing open", key, exc_info=True)
            return RateLimitDecision.allow()

        if state is None:
            return RateLimitDecision.allow()

        if self._locked(state, now):
            remaining = max(1, math.ceil((state.lockout_until - now).total_seconds()))
            return RateLimitDecision(
                allowed=False,
                remaining_seconds=remaining,
                attempts=state.attempts,
                lockout_minutes=math.ceil(remaining / 60),
            )

        return RateLimitDecision.allow(attempts=self._effective_attempts(state, now))

    # ── Recording ──────────────────────────────────────────────────────

    async def record(
        self,
        key: str,
        success: bool,
        *,
        identity: str = "",
        user_agent: str | None = None,
    ) -> None:
        key = normalize_key(key)
        now = self._clock()
        mutate = self._reset(now) if success else self._fail(now)

        try:
            state = await self._store.update(key, mutate)
        except Exception:
            logger.warning("Dropping rate limit update for %s", key, exc_info=True)
        else:
            if state.lockout_until is not None and not success:
                logger.info(
                    "%s locked until %s after %d failures",
                    key, state.lockout_until.isoformat(), state.attempts,
                )

        record = AttemptRecord(
            email=key,
            identity=identity or UNKNOWN_CLIENT,
            timestamp=now,
            success=success,
            user_agent=user_agent,
        )
        try:
            await self._store.append_attempt(record)
        except Exception:
            logger.warning("Dropping attempt log entry for %s", key, exc_info=True)

    # ── State transitions ──────────────────────────────────────────────

    @staticmethod
    def _reset(now: datetime) -> Callable[[RateLimitState | None], RateLimitState]:
        def mutate(_state: RateLimitState | None) -> RateLimitState:
            return RateLimitState(attempts=0, window_start=now, lockout_until=None, updated_at=now)
        return mutate

    def _fail(self, now: datetime) -> Callable[[RateLimitState | None], RateLimitState]:
        policy = self._policy

        def mutate(state: RateLimitState | None) -> RateLimitState:
            if state is None:
                attempts, window_start, lockout_until = 0, now, None
            else:
                attempts = self._effective_attempts(state, now)
                window_start = state.window_start if attempts else now
                lockout_until = state.lockout_until if self._locked(state, now) else None

            attempts += 1
            if attempts >= policy.threshold:
                candidate = now + timedelta(minutes=policy.backoff_minutes(attempts))
                # An active lockout is never shortened.
                if lockout_until is None or candidate > lockout_until:
                    lockout_until = candidate

            return RateLimitState(
                attempts=attempts,
                window_start=window_start,
                lockout_until=lockout_until,
                updated_at=now,
            )

        return mutate

    @staticmethod
    def _locked(state: RateLimitState, now: datetime) -> bool:
        return state.lockout_until is not None and state.lockout_until > now

    def _effective_attempts(self, state: RateLimitState, now: datetime) -> int:
        """Stored attempts, or 0 once an unlocked streak has gone stale.

        The window counts from the later of the streak start and the end of
        the last lockout, so escalation survives a lockout running out.
        """
        window = self._policy.attempt_window_minutes
        if window is None or self._locked(state, now):
            return state.attempts
        last_activity = state.window_start
        if state.lockout_until is not None and state.lockout_until > last_activity:
            last_activity = state.lockout_until
        if now - last_activity > timedelta(minutes=window):
            return 0
        return state.attempts
