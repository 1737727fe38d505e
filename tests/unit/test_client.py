"""
test_client.py — Unit tests for ready_harness/harness/client.py
"""

import socket

import httpx
import pytest

from ready_harness.harness import client


class TestBaseUrl:
    def test_ipv4(self):
        assert client.base_url("127.0.0.1", 8080) == "http://127.0.0.1:8080"

    def test_ipv6_is_bracketed(self):
        assert client.base_url("::1", 8080) == "http://[::1]:8080"

    def test_hostname_and_scheme(self):
        assert client.base_url("localhost", 443, scheme="https") == "https://localhost:443"


class TestMakeClient:
    def test_client_targets_endpoint(self):
        with client.make_client("127.0.0.1", 5555) as c:
            assert isinstance(c, httpx.Client)
            assert str(c.base_url).rstrip("/") == "http://127.0.0.1:5555"

    def test_each_call_builds_a_new_client(self):
        """No caching: two endpoints never share a client."""
        a = client.make_client("127.0.0.1", 1000)
        b = client.make_client("127.0.0.1", 1000)
        try:
            assert a is not b
        finally:
            a.close()
            b.close()

    def test_extra_kwargs_reach_httpx(self):
        with client.make_client("127.0.0.1", 5555, headers={"X-Test": "1"}) as c:
            assert c.headers["X-Test"] == "1"

    def test_async_client_targets_endpoint(self):
        c = client.make_async_client("127.0.0.1", 6666)
        assert isinstance(c, httpx.AsyncClient)
        assert str(c.base_url).rstrip("/") == "http://127.0.0.1:6666"


@pytest.fixture
def listener():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    yield sock.getsockname()[1]
    sock.close()


class TestRawConnections:
    def test_open_connection_reaches_listener(self, listener):
        with client.open_connection("127.0.0.1", listener, timeout=2.0) as conn:
            assert conn.getpeername()[1] == listener

    def test_is_listening(self, listener):
        assert client.is_listening("127.0.0.1", listener)

    def test_is_not_listening_on_closed_port(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
        sock.close()
        assert not client.is_listening("127.0.0.1", port, timeout=0.5)
