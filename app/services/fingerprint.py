"""
Deterministic client-environment fingerprint.

Last-resort identifier when no network tier can tell us the client's
address.  It is pseudonymous, not a full fingerprinting solution: five
coarse signals are folded into a 32-bit rolling hash and rendered as hex.

Signal providers live here too so the resolver can be handed either the
headers of an incoming request or the local process environment.
"""

from __future__ import annotations

import locale
import platform
import shutil
from collections.abc import Iterator, Mapping
from dataclasses import astuple, dataclass
from datetime import datetime

import httpx

# Must not occur inside any signal value.
_DELIMITER = "|"

_UINT32 = 0xFFFFFFFF
_INT32_SIGN = 0x80000000


@dataclass(frozen=True)
class EnvironmentSignals:
    """Fixed-order tuple of client-environment signals."""
    display: str | None = None
    timezone: str | None = None
    language: str | None = None
    platform: str | None = None
    user_agent: str | None = None


def _utf16_units(text: str) -> Iterator[int]:
    """Yield UTF-16 code units, splitting astral characters into surrogates."""
    for ch in text:
        code = ord(ch)
        if code > 0xFFFF:
            code -= 0x10000
            yield 0xD800 + (code >> 10)
            yield 0xDC00 + (code & 0x3FF)
        else:
            yield code


def rolling_hash(text: str) -> int:
    """``h = h*31 + unit`` over the string, wrapped to a signed 32-bit int."""
    h = 0
    for unit in _utf16_units(text):
        h = (h * 31 + unit) & _UINT32
    if h & _INT32_SIGN:
        h -= _UINT32 + 1
    return h


def generate_fingerprint(signals: EnvironmentSignals) -> str:
    """Return the lowercase hex fingerprint for *signals*.

    Missing signals count as empty strings.  Always non-empty, even for
    the all-empty tuple (the delimiters alone still hash).
    """
    raw = _DELIMITER.join(value or "" for value in astuple(signals))
    return format(abs(rolling_hash(raw)), "x")


# ── Signal providers ──────────────────────────────────────────────────────


def signals_from_headers(headers: Mapping[str, str]) -> EnvironmentSignals:
    """Build signals from the headers of an incoming HTTP request.

    Browsers only send display and timezone hints when asked to
    (client hints / a custom header set by the front end), so those are
    frequently empty.
    """
    lowered = {k.lower(): v for k, v in headers.items()}

    width = lowered.get("sec-ch-viewport-width") or lowered.get("viewport-width") or ""
    dpr = lowered.get("sec-ch-dpr") or lowered.get("dpr") or ""
    display = f"{width}x{dpr}" if width else ""

    # "en-US,en;q=0.9" → "en-US"
    language = lowered.get("accept-language", "").split(",")[0].split(";")[0].strip()

    return EnvironmentSignals(
        display=display,
        timezone=lowered.get("x-timezone", ""),
        language=language,
        platform=lowered.get("sec-ch-ua-platform", "").strip('"'),
        user_agent=lowered.get("user-agent", ""),
    )


def local_signals() -> EnvironmentSignals:
    """Build signals describing the current process."""
    size = shutil.get_terminal_size()
    lang, _encoding = locale.getlocale()
    return EnvironmentSignals(
        display=f"{size.columns}x{size.lines}",
        timezone=datetime.now().astimezone().tzname() or "",
        language=(lang or "").replace("_", "-"),
        platform=platform.platform(),
        user_agent=f"python-httpx/{httpx.__version__}",
    )
