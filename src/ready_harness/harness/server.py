"""ServerHandle — one server subprocess, from launch to reaping."""

from __future__ import annotations

import contextlib
import enum
import os
import threading
import time
from collections.abc import Callable, Iterator
from typing import TypeVar

import httpx

from ready_harness.framework.deadline import AwaitReadiness
from ready_harness.framework.exception import AlreadyLaunchedError, ServerNotReadyError, StartupError
from ready_harness.framework.harness import ProcessHarness
from ready_harness.framework.launch import LaunchSpec
from ready_harness.framework.logger import LOGGER
from ready_harness.framework.readiness import ReadinessReader
from ready_harness.harness import client as client_factory

T = TypeVar("T")


class HandleState(enum.Enum):
    STARTING = "starting"
    READY = "ready"
    FAILED = "failed"
    TERMINATED = "terminated"


class ServerHandle(ProcessHarness):
    """Owns one server subprocess and the port it announced.

    Works for any runtime — Python, Java, Go, Rust — that can bind port 0 and print
    ``SERVER_READY:<port>`` on its error stream once it accepts connections.

    Adds three things on top of ProcessHarness:
      - Start(): launch, then block until the readiness sentinel, a crash, or the deadline
      - Shutdown(): terminate and reap the child exactly once; also run by __exit__
      - client / connect_with(): clients bound to this handle's endpoint

    Usage:
        with ServerHandle(LaunchSpec("./server", ["--port", "0"])) as server:
            r = server.client.get("/health")

    ``port`` is set if and only if ``state`` is READY.
    """

    def __init__(self, spec: LaunchSpec):
        super().__init__(spec)
        self._state = HandleState.STARTING
        self._port: int | None = None
        self._reader: ReadinessReader | None = None
        self._copy_file = None
        self._startup_secs: float | None = None
        self._lock = threading.Lock()
        self._started = False

    # Properties

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is HandleState.READY

    @property
    def port(self) -> int | None:
        """Negotiated port while READY, otherwise None."""
        return self._port if self._state is HandleState.READY else None

    @property
    def host(self) -> str:
        return self.spec.host

    @property
    def endpoint(self) -> tuple[str, int]:
        """(host, port) of the running server.

        Raises ServerNotReadyError unless the handle is READY.
        """
        if self._state is not HandleState.READY:
            raise ServerNotReadyError(f"{self} is {self._state.value}, not ready")
        return self.spec.host, self._port

    @property
    def base_url(self) -> str:
        """Base URL of this server."""
        host, port = self.endpoint
        return client_factory.base_url(host, port)

    @property
    def client(self) -> httpx.Client:
        """Return an httpx.Client pointed at this server.

        Each call creates a new client — caller is responsible for closing it,
        or use as a context manager: with server.client as c: ...
        """
        host, port = self.endpoint
        return client_factory.make_client(host, port)

    @property
    def async_client(self) -> httpx.AsyncClient:
        host, port = self.endpoint
        return client_factory.make_async_client(host, port)

    @property
    def startup_secs(self) -> float | None:
        """Seconds between launch and the readiness sentinel, once READY."""
        return self._startup_secs

    @property
    def stderr_tail(self) -> list[str]:
        """Last lines the child wrote to its ready stream."""
        return self._reader.tail if self._reader else []

    def connect_with(self, factory: Callable[[str, int], T]) -> T:
        """Builds a caller-supplied client against this endpoint: factory(host, port)."""
        host, port = self.endpoint
        return factory(host, port)

    # Lifecycle

    def Start(self) -> ServerHandle:
        """Launches the server and waits for its readiness sentinel.

        Returns:
            self, now READY.

        Raises:
            AlreadyLaunchedError: If Start() was already called.
            StartupError: One of its four subclasses; the handle is then FAILED and
                    no child process is left running.
        """
        with self._lock:
            if self._started or self._state is not HandleState.STARTING:
                raise AlreadyLaunchedError(f"{self} was already started ({self._state.value})")
            self._started = True

        start = time.monotonic()
        try:
            if self.own_dir:
                self._copy_file = open(os.path.join(self.own_dir, self.spec.ready_stream.value), "a")
            self.Launch()
            self._reader = ReadinessReader(
                self.ready_pipe,
                sentinel=self.spec.sentinel,
                name=f"{os.path.basename(self.binary_path)}:{self.pid}",
                copy_to=self._copy_file,
            )
            self._reader.start()
            port = AwaitReadiness(self, self._reader, self.spec.ready_timeout_secs, self.spec.grace_secs)
        except StartupError as exc:
            self._Fail(exc.phase)
            raise
        except BaseException:
            # Interrupted mid-startup: nothing may outlive the handle.
            LOGGER.warning("Startup of [%s] interrupted, stopping it", self)
            self._Reap()
            self._Fail("interrupted")
            raise

        with self._lock:
            self._port = port
            self._startup_secs = time.monotonic() - start
            self._Transition(HandleState.READY)
        return self

    def Shutdown(self) -> None:
        """Terminates and reaps the server. Idempotent.

        READY handles are stopped with SIGTERM, then SIGKILL after spec.grace_secs.
        FAILED handles were already cleaned up, so this is a no-op for them.
        """
        with self._lock:
            if self._state in (HandleState.TERMINATED, HandleState.FAILED):
                return
            if self._state is HandleState.STARTING and self._started:
                # Start() is still running in another thread and owns the cleanup.
                return
            self._Reap()
            self._port = None
            self._Transition(HandleState.TERMINATED)

    def __enter__(self) -> ServerHandle:
        if self._state is HandleState.STARTING and not self._started:
            self.Start()
        return self

    def __exit__(self, *_) -> None:
        self.Shutdown()

    def __repr__(self) -> str:
        return f"<ServerHandle {self} state={self._state.value} port={self.port}>"

    # Internals

    def _Reap(self) -> None:
        if self.is_launched:
            self.Stop(self.spec.grace_secs)
        if self._reader is not None:
            self._reader.join(timeout=self.spec.grace_secs)
            if self._reader.is_alive() and not self._reader.CloseWhenDone():
                LOGGER.warning("[%s] ready stream still held open after exit, reader will close it at EOF", self)
                return
        self.ClosePipes()
        if self._copy_file is not None and not self._copy_file.closed:
            self._copy_file.close()

    def _Fail(self, phase: str) -> None:
        # The coordinator already reaped the child; make sure of it and release files.
        if self.is_launched and not self.is_finished:
            self._Reap()
        elif self._copy_file is not None and not self._copy_file.closed and not (
            self._reader is not None and self._reader.is_alive()
        ):
            self._copy_file.close()
        with self._lock:
            self._port = None
            self._Transition(HandleState.FAILED, phase)

    def _Transition(self, new_state: HandleState, detail: str = "") -> None:
        LOGGER.debug(
            "ServerHandle [%s] %s -> %s%s",
            self,
            self._state.value,
            new_state.value,
            f" ({detail})" if detail else "",
        )
        self._state = new_state


@contextlib.contextmanager
def launch_server(spec: LaunchSpec, require_ephemeral: bool = True) -> Iterator[ServerHandle]:
    """Launches a server, yields its READY handle, and always shuts it down.

    Args:
        spec: LaunchSpec for the binary
        require_ephemeral: If True, reject arguments that do not request port 0

    Raises:
        ValueError: If require_ephemeral is set and no '0' port argument is present.
        StartupError: If the server did not become ready.
    """
    if require_ephemeral:
        spec.validate_ephemeral()
    handle = ServerHandle(spec)
    handle.Start()
    try:
        yield handle
    finally:
        handle.Shutdown()
