import logging
from typing import Annotated

from fastapi import Depends, Request

from app.config import TRUSTED_PROXIES
from app.services.auth_gate import AuthGate, auth_gate

logger = logging.getLogger(__name__)


# ── Client address ─────────────────────────────────────────────────────────


def client_address(request: Request) -> str:
    """Best-known client address.

    Forwarded headers are only honored when the socket peer is one of
    TRUSTED_PROXIES.  X-Forwarded-For is walked right to left and the first
    hop that is not itself a trusted proxy wins; X-Real-IP comes next.
    Anyone else is identified by the socket peer.  Returns an empty string
    when nothing is known.
    """
    peer = request.client.host if request.client is not None and request.client.host else ""
    if peer not in TRUSTED_PROXIES:
        return peer

    hops = [h.strip() for h in request.headers.get("x-forwarded-for", "").split(",") if h.strip()]
    for hop in reversed(hops):
        if hop not in TRUSTED_PROXIES:
            return hop
    if hops:
        return hops[0]

    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip
    return peer


# ── Auth gate ──────────────────────────────────────────────────────────────


def get_auth_gate() -> AuthGate:
    return auth_gate


Gate = Annotated[AuthGate, Depends(get_auth_gate)]
