"""Clients bound to a negotiated (host, port) endpoint.

Every function here is a pure function of its arguments: nothing is cached,
so two handles running side by side never share a client.
"""

from __future__ import annotations

import ipaddress
import socket

import httpx

from ready_harness.config import CLIENT_TIMEOUT_SECS


def _url_host(host: str) -> str:
    try:
        if ipaddress.ip_address(host).version == 6:
            return f"[{host}]"
    except ValueError:
        pass
    return host


def base_url(host: str, port: int, scheme: str = "http") -> str:
    """Base URL for an endpoint, bracketing IPv6 literals."""
    return f"{scheme}://{_url_host(host)}:{port}"


def make_client(host: str, port: int, scheme: str = "http", timeout: float = CLIENT_TIMEOUT_SECS,
                **kwargs) -> httpx.Client:
    """Return a new httpx.Client whose base_url is the endpoint.

    Extra keyword arguments (headers, auth, verify, ...) go straight to httpx.Client.
    """
    return httpx.Client(base_url=base_url(host, port, scheme), timeout=timeout, **kwargs)


def make_async_client(host: str, port: int, scheme: str = "http", timeout: float = CLIENT_TIMEOUT_SECS,
                      **kwargs) -> httpx.AsyncClient:
    """Async twin of make_client()."""
    return httpx.AsyncClient(base_url=base_url(host, port, scheme), timeout=timeout, **kwargs)


def open_connection(host: str, port: int, timeout: float = CLIENT_TIMEOUT_SECS) -> socket.socket:
    """Open a raw TCP connection to the endpoint, for servers that do not speak HTTP."""
    return socket.create_connection((host, port), timeout=timeout)


def is_listening(host: str, port: int, timeout: float = 1.0) -> bool:
    """Checks if the endpoint accepts TCP connections.

    Returns:
        True if listening, False otherwise (bool)
    """
    try:
        with open_connection(host, port, timeout=timeout):
            return True
    except OSError:
        return False
