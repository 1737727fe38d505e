"""Deadline coordinator: races the readiness reader against the startup timeout."""

from __future__ import annotations

import queue
import subprocess
import time

from ready_harness import config
from ready_harness.framework.exception import (
    ProcessExitedEarlyError,
    ReadyProtocolViolationError,
    ReadyTimeoutError,
)
from ready_harness.framework.logger import LOGGER


def AwaitReadiness(harness, reader, timeout_secs, grace_secs):
    """Blocks until the reader reports readiness or the deadline passes.

    Exactly one outcome is produced per call. Every failure path leaves the child
    reaped before the exception propagates, so the caller never sees a process that
    timed out but is still running.

    Args:
        harness: Launched ProcessHarness owning the child
        reader: Started ReadinessReader watching the child's ready stream
        timeout_secs: Seconds to wait for the sentinel (float)
        grace_secs: Seconds between SIGTERM and SIGKILL when giving up (float)

    Returns:
        The announced port (int).

    Raises:
        ReadyTimeoutError: No sentinel within timeout_secs.
        ProcessExitedEarlyError: The child exited before announcing readiness.
        ReadyProtocolViolationError: Malformed sentinel, or the stream closed while the child ran on.
    """
    command = str(harness)
    start = time.monotonic()
    try:
        outcome = reader.outcomes.get(timeout=timeout_secs)
    except queue.Empty:
        LOGGER.warning("No readiness signal from [%s] after %gs, stopping it", command, timeout_secs)
        _Abandon(harness, reader, grace_secs)
        raise ReadyTimeoutError(timeout_secs, command=command, stderr_tail=reader.tail) from None

    elapsed = time.monotonic() - start
    if outcome.is_ready:
        LOGGER.info("[%s] ready on port %d after %.3fs", command, outcome.port, elapsed)
        return outcome.port

    if outcome.violation is not None:
        LOGGER.error("[%s] broke the readiness protocol: %s", command, outcome.violation.args[0])
        _Abandon(harness, reader, grace_secs)
        violation = outcome.violation
        raise ReadyProtocolViolationError(
            violation.args[0], line=violation.line, command=command, stderr_tail=reader.tail
        )

    # The ready stream closed. Usually the child died; give it a moment to be reapable.
    try:
        returncode = harness.Wait(timeout=config.EXIT_POLL_SECS)
    except subprocess.TimeoutExpired:
        LOGGER.error("[%s] closed its ready stream without a sentinel but is still running", command)
        _Abandon(harness, reader, grace_secs)
        raise ReadyProtocolViolationError(
            "Ready stream closed without a readiness line while the server kept running",
            command=command,
            stderr_tail=reader.tail,
        ) from None

    reader.join()
    harness.ClosePipes()
    LOGGER.error("[%s] exited with code %s after %.3fs without becoming ready", command, returncode, elapsed)
    raise ProcessExitedEarlyError(returncode, command=command, stderr_tail=reader.tail)


def _Abandon(harness, reader, grace_secs):
    """Stops and reaps the child, then waits for its reader to see EOF."""
    harness.Stop(grace_secs)
    # Grandchildren may still hold the write end; do not hang on them.
    reader.join(timeout=grace_secs)
    if reader.is_alive() and not reader.CloseWhenDone():
        LOGGER.warning("[%s] ready stream still held open after exit, reader will close it at EOF", harness)
    else:
        harness.ClosePipes()
