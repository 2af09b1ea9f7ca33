"""Pydantic models for the auth gate: persisted state and the HTTP API."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ── Persisted state ───────────────────────────────────────────────────────


class RateLimitState(BaseModel):
    """Per-key attempt/lockout state."""
    model_config = ConfigDict(frozen=True)

    attempts: int = Field(default=0, ge=0, description="Failures in the current window")
    window_start: datetime = Field(..., description="When the current failure streak began")
    lockout_until: Optional[datetime] = Field(None, description="End of the active lockout, if any")
    updated_at: Optional[datetime] = Field(None, description="Last recorded attempt; eviction idles from here")


class AttemptRecord(BaseModel):
    """One authentication attempt, appended to the attempt log."""
    model_config = ConfigDict(frozen=True)

    email: str = Field(..., description="Rate-limit key (normalized email)")
    identity: str = Field(..., description="Resolved client identifier")
    timestamp: datetime = Field(..., description="When the attempt was recorded")
    success: bool = Field(..., description="Outcome of the credential check")
    user_agent: Optional[str] = Field(None, description="Client user agent, if known")


# ── HTTP API ──────────────────────────────────────────────────────────────


class RateLimitCheckRequest(BaseModel):
    """Body of POST /api/auth-rate-limit/check."""
    email: str = Field(..., min_length=1, description="Account being signed in to (normalized, not validated)")
    ip_address: str = Field(..., min_length=1, description="Client identity from getClientIP")
    user_agent: Optional[str] = Field(None, description="Client user agent")


class RecordAttemptRequest(RateLimitCheckRequest):
    """Body of POST /api/auth-rate-limit/record."""
    success: bool = Field(..., description="Whether the credential check passed")


class RateLimitResponse(BaseModel):
    """Allow/deny answer for one authentication attempt."""
    allowed: bool = Field(..., description="Whether the attempt may proceed")
    remaining_seconds: int = Field(..., ge=0, description="Seconds until the lockout ends")
    attempts: int = Field(..., ge=0, description="Failures recorded in the current window")
    lockout_time_minutes: int = Field(..., ge=0, description="Remaining lockout, rounded up to minutes")


class ClientIpResponse(BaseModel):
    """Answer of the first-party lookup endpoint."""
    ip: str = Field(..., description="Client address as seen by the server")


class ClientIdentityResponse(BaseModel):
    identity: str = Field(..., description="Best available client identifier")
    tier: str = Field(..., description="Which fallback tier produced it")


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Service version")
    state_backend: str = Field(..., description="Where attempt state is kept")
    timestamp: datetime = Field(..., description="Current server time")
