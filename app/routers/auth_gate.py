"""
Authentication rate-limit endpoints – called before and after a sign-in.

Both endpoints are best effort: the gate fails open and drops writes it
cannot persist, so neither ever answers with a server error.
"""

from fastapi import APIRouter, Request, status

from app.dependencies import Gate, client_address
from app.models import (
    ClientIdentityResponse,
    MessageResponse,
    RateLimitCheckRequest,
    RateLimitResponse,
    RecordAttemptRequest,
)
from app.rate_limit import DEFAULT, GATE, limiter
from app.services.fingerprint import signals_from_headers

router = APIRouter(prefix="/api", tags=["auth-rate-limit"])


@router.post(
    "/auth-rate-limit/check",
    response_model=RateLimitResponse,
    operation_id="checkRateLimit",
    summary="Check whether a sign-in attempt may proceed",
)
@limiter.limit(GATE)
async def check_rate_limit(request: Request, body: RateLimitCheckRequest, gate: Gate) -> RateLimitResponse:
    decision = await gate.check_rate_limit(body.email, body.ip_address)
    return RateLimitResponse(
        allowed=decision.allowed,
        remaining_seconds=decision.remaining_seconds,
        attempts=decision.attempts,
        lockout_time_minutes=decision.lockout_minutes,
    )


@router.post(
    "/auth-rate-limit/record",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
    operation_id="recordAttempt",
    summary="Record the outcome of a sign-in attempt",
)
@limiter.limit(GATE)
async def record_attempt(request: Request, body: RecordAttemptRequest, gate: Gate) -> MessageResponse:
    user_agent = body.user_agent or request.headers.get("user-agent")
    await gate.record_attempt(body.email, body.ip_address, body.success, user_agent=user_agent)
    return MessageResponse(message="Attempt recorded")


@router.get(
    "/client-identity",
    response_model=ClientIdentityResponse,
    operation_id="getClientIdentity",
    summary="Resolve the best available identifier for this client",
)
@limiter.limit(DEFAULT)
async def get_client_identity(request: Request, gate: Gate) -> ClientIdentityResponse:
    identity = await gate.resolve_request_identity(
        client_address(request), signals_from_headers(request.headers),
    )
    return ClientIdentityResponse(identity=identity.value, tier=identity.tier.value)
