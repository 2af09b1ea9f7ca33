"""
Pydantic models that mirror the lookup services' response shapes.

These are *internal* – only the identity client parses them.
"""

from __future__ import annotations

from pydantic import BaseModel, field_validator


class IpLookupResponse(BaseModel):
    """``{"ip": "203.0.113.7"}`` – shared by both lookup tiers."""
    ip: str

    @field_validator("ip")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("empty identifier")
        return value
