"""
Low-level HTTP client for the IP lookup services.

Handles request construction and JSON ↔ Pydantic parsing, and translates
every failure into the gate's error taxonomy.  Performs exactly one
request per call – retries would break the resolver's latency bound.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from app.errors import MalformedResponse, NetworkFailure
from app.services.identity.api_models import IpLookupResponse
from app.services.identity.config import DEFAULT_HEADERS

logger = logging.getLogger(__name__)


class IpLookupClient:
    """Async HTTP client for one ``{"ip": ...}`` lookup endpoint."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self._client = httpx.AsyncClient(
            headers=headers or DEFAULT_HEADERS,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def lookup(self) -> str:
        """Return the identifier reported by the endpoint.

        Raises NetworkFailure or MalformedResponse.
        """
        if not self.url:
            raise NetworkFailure("lookup endpoint not configured")

        logger.debug("IP lookup request: %s", self.url)
        try:
            resp = await self._client.get(self.url)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NetworkFailure(f"{self.url} answered {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise NetworkFailure(f"{self.url}: {exc!r}") from exc

        try:
            return IpLookupResponse.model_validate(resp.json()).ip
        except (ValueError, ValidationError) as exc:
            # ValueError covers undecodable JSON bodies
            raise MalformedResponse(f"{self.url} returned no usable ip") from exc
