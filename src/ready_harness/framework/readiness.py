"""Readiness protocol: the SERVER_READY:<port> sentinel and the thread that watches for it."""

from __future__ import annotations

import collections
import queue
import re
import threading

from ready_harness import config
from ready_harness.framework.exception import ReadyProtocolViolationError
from ready_harness.framework.logger import LOGGER

_PORT_RE = re.compile(r"[0-9]+", re.ASCII)


def ParseReadyLine(line, sentinel=config.READY_SENTINEL):
    """Extracts the port from a readiness sentinel line.

    Args:
        line: One line of child output, with or without its terminator (str)
        sentinel: Readiness prefix (str)

    Returns:
        The announced port (int), or None if the line is not a sentinel line.

    Raises:
        ReadyProtocolViolationError: If the prefix is present but the payload is not a port.
    """
    text = line.rstrip("\r\n")
    if not text.startswith(sentinel):
        return None
    payload = text[len(sentinel) :].strip()
    if not _PORT_RE.fullmatch(payload):
        raise ReadyProtocolViolationError(f"Malformed readiness line {text!r}: payload is not a port", line=text)
    # Bounded before int(): huge digit strings trip the interpreter's int conversion limit.
    if len(payload.lstrip("0")) > len(str(config.MAX_PORT)):
        raise ReadyProtocolViolationError(
            f"Malformed readiness line {text[:80]!r}...: payload is outside 0..{config.MAX_PORT}", line=text
        )
    port = int(payload)
    if port > config.MAX_PORT:
        raise ReadyProtocolViolationError(
            f"Malformed readiness line {text!r}: {port} is outside 0..{config.MAX_PORT}", line=text
        )
    return port


class ReadyOutcome:
    """The single message a ReadinessReader posts to its coordinator.

    Exactly one of port / violation is set, or neither when the stream closed first.
    """

    __slots__ = ("port", "violation")

    def __init__(self, port=None, violation=None):
        self.port = port
        self.violation = violation

    @property
    def is_ready(self):
        return self.port is not None

    @property
    def is_eof(self):
        return self.port is None and self.violation is None

    def __repr__(self):
        if self.is_ready:
            return f"ReadyOutcome(port={self.port})"
        if self.violation is not None:
            return f"ReadyOutcome(violation={self.violation.args[0]!r})"
        return "ReadyOutcome(eof)"


class ReadinessReader(threading.Thread):
    """Thread which reads a child's output stream looking for the readiness sentinel.

    Posts one ReadyOutcome to `outcomes` and then keeps draining the stream, so a
    chatty server never blocks on a full pipe once it is up. Drained lines go to
    the debug log and, if given, to `copy_to`.
    """

    def __init__(self, stream, sentinel=config.READY_SENTINEL, name="child", copy_to=None,
                 tail_lines=config.STDERR_TAIL_LINES):
        """Initializes a ReadinessReader object.

        Args:
            stream: Binary file object to read lines from (e.g. Popen.stderr)
            sentinel: Readiness prefix (str)
            name: Label for log lines (str)
            copy_to: Writable text file receiving every line, or None
            tail_lines: Number of trailing lines kept for diagnostics (int)
        """
        threading.Thread.__init__(self, name=f"ready-reader-{name}", daemon=True)
        self.__stream = stream
        self.__sentinel = sentinel
        self.__label = name
        self.__copy_to = copy_to
        self.__tail = collections.deque(maxlen=tail_lines)
        self.__tail_lock = threading.Lock()
        self.__posted = False
        self.__finished = False
        self.__close_when_done = False
        self.outcomes = queue.Queue(maxsize=1)

    @property
    def tail(self):
        """Last lines read from the stream (list of str)."""
        with self.__tail_lock:
            return list(self.__tail)

    def CloseWhenDone(self):
        """Hands the stream and copy file to the reader, which closes them at EOF.

        Used when the child is gone but something it spawned still holds the write
        end of the pipe. Returns True if the reader had already finished, in which
        case the caller still owns the cleanup.
        """
        with self.__tail_lock:
            self.__close_when_done = True
            return self.__finished

    def run(self):
        while True:
            try:
                raw = self.__stream.readline()
            except (OSError, ValueError) as exc:
                # The owner closed the pipe under us during shutdown.
                LOGGER.debug("[%s] ready stream closed: %s", self.__label, exc)
                break
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            self.__Record(line)
            if self.__posted:
                continue
            try:
                port = ParseReadyLine(line, self.__sentinel)
            except ReadyProtocolViolationError as exc:
                self.__Post(ReadyOutcome(violation=exc))
                continue
            if port is not None:
                self.__Post(ReadyOutcome(port=port))

        if not self.__posted:
            self.__Post(ReadyOutcome())
        with self.__tail_lock:
            self.__finished = True
            close = self.__close_when_done
        if close:
            LOGGER.debug("[%s] releasing ready stream after late EOF", self.__label)
            self.__stream.close()
            if self.__copy_to is not None and not self.__copy_to.closed:
                self.__copy_to.close()
        elif self.__copy_to is not None and not self.__copy_to.closed:
            self.__copy_to.flush()

    def __Record(self, line):
        LOGGER.debug("[%s] %s", self.__label, line)
        with self.__tail_lock:
            self.__tail.append(line)
        if self.__copy_to is not None and not self.__copy_to.closed:
            self.__copy_to.write(line + "\n")

    def __Post(self, outcome):
        self.__posted = True
        LOGGER.debug("[%s] readiness outcome: %r", self.__label, outcome)
        self.outcomes.put_nowait(outcome)
