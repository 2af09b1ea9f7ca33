"""
First-party client IP endpoint – the lookup service of identity tier 1.

Deployed behind the edge proxy it sees the real client address, which a
browser or a proxied backend cannot observe itself.
"""

from fastapi import APIRouter, HTTPException, Request, status

from app.dependencies import client_address
from app.models import ClientIpResponse
from app.rate_limit import STRICT, limiter

router = APIRouter(prefix="/api", tags=["client-ip"])


@router.get(
    "/get-client-ip",
    response_model=ClientIpResponse,
    operation_id="getClientIp",
    summary="Echo the caller's address as seen by the server",
)
@limiter.limit(STRICT)
async def get_client_ip(request: Request) -> ClientIpResponse:
    ip = client_address(request)
    if not ip:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Client address unavailable",
        )
    return ClientIpResponse(ip=ip)
