"""
Error taxonomy for the authentication-attempt gate.

None of these ever reach the calling authentication flow: identity tiers
recover by advancing to the next tier, ``check()`` fails open and
``record()`` drops the write.
"""

from __future__ import annotations


class GateError(Exception):
    """Base class for all recoverable gate errors."""


class NetworkFailure(GateError):
    """Timeout, transport error or error status from a lookup service."""


class MalformedResponse(GateError):
    """A lookup service answered, but not with a usable identifier."""


class StorageUnavailable(GateError):
    """The rate-limit state store could not be read or written."""
