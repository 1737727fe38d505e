"""
ready_harness/config.py — Harness defaults and environment overrides.

All other modules import their defaults from here rather than hard-coding
them, so a CI job can slow the whole suite down (or speed it up) with a
couple of environment variables.

Usage::

    from ready_harness.config import LOOPBACK_HOST, DEFAULT_READY_TIMEOUT_SECS

Environment overrides (read once, at import time):

    READY_HARNESS_HOST            loopback host handed to clients
    READY_HARNESS_SENTINEL        readiness line prefix
    READY_HARNESS_READY_TIMEOUT   seconds to wait for the sentinel
    READY_HARNESS_GRACE           seconds between SIGTERM and SIGKILL
    READY_HARNESS_LOG_LEVEL       logging level name for the harness logger
"""

import math
import os


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}") from exc
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"{name} must be finite and positive, got {raw!r}")
    return value


# ── Endpoint ──────────────────────────────────────────────────────────────────

LOOPBACK_HOST: str = os.environ.get("READY_HARNESS_HOST", "127.0.0.1")

# ── Readiness handshake ───────────────────────────────────────────────────────

READY_SENTINEL: str = os.environ.get("READY_HARNESS_SENTINEL", "SERVER_READY:")
EPHEMERAL_PORT_ARG: str = "0"
MAX_PORT: int = 65535

DEFAULT_READY_TIMEOUT_SECS: float = _env_float("READY_HARNESS_READY_TIMEOUT", 5.0)

# Bounded wait between the polite terminate and the forced kill.
DEFAULT_GRACE_SECS: float = _env_float("READY_HARNESS_GRACE", 2.0)

# How long to wait for an exit code once the ready stream hits EOF.
EXIT_POLL_SECS: float = 0.5

# Lines of the ready stream retained for error messages.
STDERR_TAIL_LINES: int = 50

# ── Clients ───────────────────────────────────────────────────────────────────

CLIENT_TIMEOUT_SECS: float = 10.0

# ── Logging ───────────────────────────────────────────────────────────────────

LOG_LEVEL: str = os.environ.get("READY_HARNESS_LOG_LEVEL", "INFO").upper()
