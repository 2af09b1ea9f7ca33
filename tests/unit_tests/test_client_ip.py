"""Tests for the first-party /api/get-client-ip endpoint."""

from starlette.requests import Request

from app.dependencies import client_address


def _request(headers: dict[str, str], client: tuple[str, int] | None = None) -> Request:
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": client,
    })


class TestEndpoint:
    def test_peer_address(self, client):
        resp = client.get("/api/get-client-ip")

        assert resp.status_code == 200
        assert resp.json() == {"ip": "testclient"}

    def test_forwarded_headers_ignored_from_untrusted_peer(self, client):
        resp = client.get(
            "/api/get-client-ip",
            headers={"X-Forwarded-For": "203.0.113.7", "X-Real-IP": "198.51.100.23"},
        )

        assert resp.json()["ip"] == "testclient"

    def test_forwarded_client_behind_trusted_proxy(self, client, trusted_proxy):
        resp = client.get(
            "/api/get-client-ip",
            headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.2, 10.0.0.1"},
        )

        assert resp.status_code == 200
        assert resp.json() == {"ip": "203.0.113.7"}

    def test_real_ip_behind_trusted_proxy(self, client, trusted_proxy):
        resp = client.get("/api/get-client-ip", headers={"X-Real-IP": "198.51.100.23"})

        assert resp.json()["ip"] == "198.51.100.23"


class TestClientAddress:
    def test_untrusted_peer_wins(self):
        request = _request({"X-Forwarded-For": "192.0.2.1"}, client=("192.0.2.9", 5000))
        assert client_address(request) == "192.0.2.9"

    def test_spoofed_leading_hop_skipped(self, trusted_proxy):
        # The caller prepended 1.2.3.4; the proxy appended the real peer.
        request = _request(
            {"X-Forwarded-For": "1.2.3.4, 203.0.113.7"}, client=("10.0.0.1", 5000),
        )
        assert client_address(request) == "203.0.113.7"

    def test_forwarded_wins_over_real_ip(self, trusted_proxy):
        request = _request(
            {"X-Forwarded-For": "192.0.2.1", "X-Real-IP": "192.0.2.2"}, client=("10.0.0.1", 5000),
        )
        assert client_address(request) == "192.0.2.1"

    def test_blank_forwarded_falls_back_to_peer(self, trusted_proxy):
        request = _request({"X-Forwarded-For": " , "}, client=("10.0.0.1", 5000))
        assert client_address(request) == "10.0.0.1"

    def test_nothing_known(self):
        assert client_address(_request({})) == ""
