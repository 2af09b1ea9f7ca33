"""Tests for the client identity fallback chain."""

import asyncio
import time
from unittest.mock import AsyncMock

import httpx
import pytest

from app.errors import MalformedResponse, NetworkFailure
from app.services.fingerprint import generate_fingerprint
from app.services.identity.client import IpLookupClient
from app.services.identity.resolver import (
    ClientIdentity,
    ClientIdentityResolver,
    IdentityTier,
    NetworkTier,
)
from tests.mocks.models import SIGNALS_CHROME_MAC, SIGNALS_FIREFOX_LINUX
from tests.mocks.services import failing_lookup

EXPECTED_FINGERPRINT = f"browser-{generate_fingerprint(SIGNALS_CHROME_MAC)}"


def _resolver(edge, public, *, timeout: float = 0.5, **kwargs) -> ClientIdentityResolver:
    kwargs.setdefault("signal_provider", lambda: SIGNALS_CHROME_MAC)
    return ClientIdentityResolver(
        [
            NetworkTier(IdentityTier.NETWORK_EDGE, edge, timeout),
            NetworkTier(IdentityTier.PUBLIC_API, public, timeout),
        ],
        **kwargs,
    )


class TestTierOrder:
    async def test_edge_wins(self):
        edge = AsyncMock(return_value="198.51.100.1")
        public = AsyncMock(return_value="198.51.100.2")

        identity = await _resolver(edge, public).resolve()

        assert identity == ClientIdentity("198.51.100.1", IdentityTier.NETWORK_EDGE)
        public.assert_not_awaited()

    async def test_public_api_after_edge_failure(self):
        edge = AsyncMock(side_effect=NetworkFailure("down"))
        public = AsyncMock(return_value="198.51.100.2")

        identity = await _resolver(edge, public).resolve()

        assert identity == ClientIdentity("198.51.100.2", IdentityTier.PUBLIC_API)

    async def test_fingerprint_after_both_fail(self):
        identity = await _resolver(failing_lookup, failing_lookup).resolve()

        assert identity.tier is IdentityTier.FINGERPRINT
        assert identity.value == EXPECTED_FINGERPRINT

    async def test_explicit_signals_override_provider(self):
        identity = await _resolver(failing_lookup, failing_lookup).resolve(SIGNALS_FIREFOX_LINUX)

        assert identity.value == f"browser-{generate_fingerprint(SIGNALS_FIREFOX_LINUX)}"

    async def test_each_tier_tried_exactly_once(self):
        edge = AsyncMock(side_effect=NetworkFailure("down"))
        public = AsyncMock(side_effect=MalformedResponse("no ip"))

        await _resolver(edge, public).resolve()

        assert edge.await_count == 1
        assert public.await_count == 1

    async def test_resolved_fresh_every_call(self):
        edge = AsyncMock(side_effect=["198.51.100.1", "198.51.100.9"])
        resolver = _resolver(edge, failing_lookup)

        first = await resolver.resolve()
        second = await resolver.resolve()

        assert (first.value, second.value) == ("198.51.100.1", "198.51.100.9")


class TestTierFailures:
    @pytest.mark.parametrize(
        "error",
        [NetworkFailure("timeout"), MalformedResponse("bad body"), RuntimeError("bug")],
    )
    async def test_any_error_advances_chain(self, error):
        edge = AsyncMock(side_effect=error)
        public = AsyncMock(return_value="198.51.100.2")

        identity = await _resolver(edge, public).resolve()

        assert identity.tier is IdentityTier.PUBLIC_API

    @pytest.mark.parametrize("value", ["", "   ", None])
    async def test_empty_identifier_advances_chain(self, value):
        edge = AsyncMock(return_value=value)
        public = AsyncMock(return_value="198.51.100.2")

        identity = await _resolver(edge, public).resolve()

        assert identity.tier is IdentityTier.PUBLIC_API

    async def test_slow_tier_abandoned_after_timeout(self):
        release = asyncio.Event()

        async def slow_edge() -> str:
            await release.wait()
            return "198.51.100.1"

        public = AsyncMock(return_value="198.51.100.2")
        resolver = _resolver(slow_edge, public, timeout=0.05)

        started = time.monotonic()
        identity = await resolver.resolve()
        elapsed = time.monotonic() - started

        assert identity.tier is IdentityTier.PUBLIC_API
        assert elapsed < 1.0

        # Abandoned, not cancelled: it is still running and referenced.
        (pending,) = resolver._abandoned
        assert not pending.done()

        release.set()
        await pending
        assert resolver._abandoned == set()

    async def test_latency_bounded_by_sum_of_timeouts(self):
        async def hang() -> str:
            await asyncio.sleep(10)
            return "never"

        resolver = _resolver(hang, hang, timeout=0.05)

        started = time.monotonic()
        identity = await resolver.resolve()
        elapsed = time.monotonic() - started

        assert identity.tier is IdentityTier.FINGERPRINT
        assert elapsed < 1.0

        pending = list(resolver._abandoned)
        assert len(pending) == 2
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        assert resolver._abandoned == set()


class TestLastResort:
    async def test_unknown_when_signal_provider_raises(self):
        def broken_provider():
            raise OSError("no environment")

        identity = await _resolver(
            failing_lookup, failing_lookup, signal_provider=broken_provider
        ).resolve()

        assert identity == ClientIdentity("unknown-client", IdentityTier.UNKNOWN)

    async def test_unknown_when_fingerprint_empty(self):
        identity = await _resolver(
            failing_lookup, failing_lookup, fingerprint=lambda signals: ""
        ).resolve()

        assert identity.tier is IdentityTier.UNKNOWN
        assert identity.value == "unknown-client"

    async def test_no_tiers_goes_straight_to_fingerprint(self):
        resolver = ClientIdentityResolver([], signal_provider=lambda: SIGNALS_CHROME_MAC)

        identity = await resolver.resolve()

        assert identity.value == EXPECTED_FINGERPRINT


class TestFromClients:
    async def test_real_clients_both_failing(self):
        def edge_handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        def public_handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        edge = IpLookupClient(
            "https://edge.example.test/ip", timeout=0.5,
            transport=httpx.MockTransport(edge_handler),
        )
        public = IpLookupClient(
            "https://echo.example.test/?format=json", timeout=0.5,
            transport=httpx.MockTransport(public_handler),
        )
        resolver = ClientIdentityResolver.from_clients(
            edge, public,
            edge_timeout=0.5,
            public_timeout=0.5,
            signal_provider=lambda: SIGNALS_CHROME_MAC,
        )
        try:
            identity = await resolver.resolve()
        finally:
            await edge.close()
            await public.close()

        assert identity.value == EXPECTED_FINGERPRINT
        assert identity.value

    async def test_real_clients_public_answers(self):
        edge = IpLookupClient("", timeout=0.5)  # unconfigured tier 1
        public = IpLookupClient(
            "https://echo.example.test/?format=json", timeout=0.5,
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json={"ip": "192.0.2.44"})
            ),
        )
        resolver = ClientIdentityResolver.from_clients(
            edge, public, edge_timeout=0.5, public_timeout=0.5,
        )
        try:
            identity = await resolver.resolve()
        finally:
            await edge.close()
            await public.close()

        assert identity == ClientIdentity("192.0.2.44", IdentityTier.PUBLIC_API)
