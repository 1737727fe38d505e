"""Component tests for ServerHandle and launch_server.

Every test launches tests/fixtures/sentinel_server.py as a real subprocess.
Run standalone: pytest tests/components/ -v
"""

import logging
import os
import signal
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from ready_harness import (
    HandleState,
    ProcessExitedEarlyError,
    ReadyProtocolViolationError,
    ReadyStream,
    ReadyTimeoutError,
    ServerHandle,
    ServerNotReadyError,
    launch_server,
)
from ready_harness.framework.exception import AlreadyLaunchedError
from ready_harness.harness.client import is_listening

pytestmark = pytest.mark.component


def _holder_pid(server):
    line = next(line for line in server.stderr_tail if line.startswith("HOLDER:"))
    return int(line.split(":", 1)[1])


# ── Ready path ─────────────────────────────────────────────────────────────────


class TestReady:
    def test_serves_http_on_negotiated_port(self, server_spec, assert_reaped):
        """Port-0 launch → READY handle whose client reaches the real server."""
        with launch_server(server_spec(ready_timeout_secs=20)) as server:
            assert server.state is HandleState.READY
            assert 0 < server.port <= 65535
            assert server.endpoint == ("127.0.0.1", server.port)
            with server.client as c:
                r = c.get("/health")
            assert r.status_code == 200
            assert r.json()["pid"] == server.pid
            pid = server.pid
        assert server.state is HandleState.TERMINATED
        assert server.port is None
        assert_reaped(pid)

    @pytest.mark.parametrize("port", ["0", "1", "8080", "54321", "65535"])
    def test_announced_port_is_taken_verbatim(self, server_spec, port):
        with launch_server(server_spec("--announce", port)) as server:
            assert server.port == int(port)

    def test_announce_after_100ms_is_ready_well_before_timeout(self, server_spec, assert_reaped):
        """5 s timeout, sentinel after 100 ms → READY with port 54321, nowhere near the timeout."""
        spec = server_spec("--announce", "54321", "--delay", "0.1", ready_timeout_secs=5.0)
        start = time.monotonic()
        with launch_server(spec) as server:
            elapsed = time.monotonic() - start
            assert server.port == 54321
            assert 0.1 <= elapsed < 2.0
            assert server.startup_secs is not None and server.startup_secs >= 0.1
            pid = server.pid
        assert_reaped(pid)

    def test_noise_before_sentinel_is_ignored(self, server_spec):
        with launch_server(server_spec("--announce", "4000", "--noise", "25")) as server:
            assert server.port == 4000
            assert "starting up: step 24" in server.stderr_tail

    def test_sentinel_on_stdout(self, server_spec):
        spec = server_spec("--announce", "4001", "--stream", "stdout", ready_stream=ReadyStream.STDOUT)
        with launch_server(spec) as server:
            assert server.port == 4001

    def test_chatter_after_ready_does_not_block_the_server(self, server_spec):
        """Far more than a pipe buffer of output after readiness; the server must keep serving."""
        with launch_server(server_spec("--chatter", "5000", ready_timeout_secs=20)) as server:
            with server.client as c:
                assert c.get("/health").status_code == 200

    def test_own_dir_captures_command_and_stream(self, server_spec, tmp_path):
        run_dir = tmp_path / "run"
        with launch_server(server_spec("--announce", "4002", "--noise", "2", own_dir=str(run_dir))):
            pass
        assert "sentinel_server.py" in (run_dir / "cmd").read_text()
        captured = (run_dir / "stderr").read_text()
        assert "starting up: step 1" in captured
        assert "SERVER_READY:4002" in captured

    def test_connect_with_custom_factory(self, server_spec):
        with launch_server(server_spec("--announce", "4003")) as server:
            assert server.connect_with(lambda host, port: f"{host}|{port}") == "127.0.0.1|4003"
            assert server.base_url == "http://127.0.0.1:4003"


# ── Failure paths ──────────────────────────────────────────────────────────────


class TestStartupFailures:
    @pytest.mark.parametrize("payload", ["abc", "99999", "-1", ""])
    def test_malformed_sentinel_is_protocol_violation(self, server_spec, payload, assert_reaped):
        handle = ServerHandle(server_spec("--announce", payload))
        with pytest.raises(ReadyProtocolViolationError):
            handle.Start()
        assert handle.state is HandleState.FAILED
        assert handle.port is None
        assert_reaped(handle.pid)

    def test_early_exit_is_reported_promptly(self, server_spec, assert_reaped):
        """Child exits before the sentinel → ProcessExitedEarlyError, long before the timeout."""
        handle = ServerHandle(server_spec("--exit-code", "3", ready_timeout_secs=30))
        start = time.monotonic()
        with pytest.raises(ProcessExitedEarlyError) as excinfo:
            handle.Start()
        assert time.monotonic() - start < 10
        assert excinfo.value.returncode == 3
        assert any("giving up with code 3" in line for line in excinfo.value.stderr_tail)
        assert handle.state is HandleState.FAILED
        assert_reaped(handle.pid)

    def test_timeout_kills_slow_server(self, server_spec, assert_reaped):
        """1 s timeout, server sleeps 3 s before announcing → ReadyTimeoutError at ~1 s, child gone."""
        handle = ServerHandle(server_spec("--announce", "5000", "--delay", "3", ready_timeout_secs=1.0))
        start = time.monotonic()
        with pytest.raises(ReadyTimeoutError) as excinfo:
            handle.Start()
        elapsed = time.monotonic() - start
        assert 0.9 <= elapsed < 2.9
        assert excinfo.value.timeout_secs == 1.0
        assert handle.state is HandleState.FAILED
        assert not handle.is_running
        assert_reaped(handle.pid)

    def test_timeout_escalates_to_kill(self, server_spec, assert_reaped):
        """A child ignoring SIGTERM is killed after the grace period."""
        spec = server_spec("--hang", "--ignore-sigterm", ready_timeout_secs=0.5, grace_secs=0.5)
        handle = ServerHandle(spec)
        start = time.monotonic()
        with pytest.raises(ReadyTimeoutError):
            handle.Start()
        elapsed = time.monotonic() - start
        assert 0.9 <= elapsed < 5.0
        assert handle.returncode == -signal.SIGKILL
        assert_reaped(handle.pid)

    def test_stream_closed_while_running_is_protocol_violation(self, server_spec, assert_reaped):
        handle = ServerHandle(server_spec("--close-stream", ready_timeout_secs=10))
        with pytest.raises(ReadyProtocolViolationError, match="closed"):
            handle.Start()
        assert_reaped(handle.pid)

    def test_failed_handle_shutdown_is_noop(self, server_spec):
        handle = ServerHandle(server_spec("--exit-code", "1"))
        with pytest.raises(ProcessExitedEarlyError):
            handle.Start()
        handle.Shutdown()
        assert handle.state is HandleState.FAILED

    def test_failed_handle_has_no_endpoint(self, server_spec):
        handle = ServerHandle(server_spec("--exit-code", "1"))
        with pytest.raises(ProcessExitedEarlyError):
            handle.Start()
        with pytest.raises(ServerNotReadyError):
            handle.endpoint


# ── Release guarantees ─────────────────────────────────────────────────────────


class TestRelease:
    def test_release_on_exception(self, server_spec, assert_reaped):
        """An exception inside the scope still terminates and reaps the child."""
        captured = {}
        with pytest.raises(RuntimeError, match="test blew up"):
            with launch_server(server_spec("--announce", "4100")) as server:
                captured["pid"] = server.pid
                raise RuntimeError("test blew up")
        assert server.state is HandleState.TERMINATED
        assert_reaped(captured["pid"])

    def test_release_of_sigterm_ignoring_server(self, server_spec, assert_reaped):
        spec = server_spec("--announce", "4101", "--ignore-sigterm", grace_secs=0.5)
        with ServerHandle(spec) as server:
            pid = server.pid
        assert server.returncode == -signal.SIGKILL
        assert_reaped(pid)

    def test_shutdown_is_idempotent(self, server_spec):
        server = ServerHandle(server_spec("--announce", "4102")).Start()
        server.Shutdown()
        server.Shutdown()
        assert server.state is HandleState.TERMINATED

    def test_start_twice_is_rejected(self, server_spec):
        with ServerHandle(server_spec("--announce", "4103")) as server:
            with pytest.raises(AlreadyLaunchedError):
                server.Start()

    def test_never_started_handle_terminates_cleanly(self, server_spec):
        handle = ServerHandle(server_spec())
        handle.Shutdown()
        assert handle.state is HandleState.TERMINATED
        assert not handle.is_launched

    def test_endpoint_unavailable_after_release(self, server_spec):
        with launch_server(server_spec("--announce", "4104")) as server:
            pass
        with pytest.raises(ServerNotReadyError):
            server.endpoint

    def test_port_is_closed_after_release(self, server_spec):
        with launch_server(server_spec(ready_timeout_secs=20)) as server:
            host, port = server.endpoint
            assert is_listening(host, port)
        assert not is_listening(host, port, timeout=0.5)

    def test_launch_server_requires_ephemeral_port(self, server_spec):
        spec = server_spec()
        fixed = type(spec)(spec.binary_path, [arg if arg != "0" else "8080" for arg in spec.command_line_args])
        with pytest.raises(ValueError, match="ephemeral"):
            with launch_server(fixed):
                pass

    def test_ready_pipe_held_by_grandchild_is_released_at_eof(self, server_spec, tmp_path, caplog):
        """A grandchild keeping the ready stream open delays closing it, but never leaks it."""
        spec = server_spec("--spawn-holder", "--announce", "4105", grace_secs=0.3, own_dir=str(tmp_path))
        server = ServerHandle(spec).Start()
        holder_pid = _holder_pid(server)
        try:
            with caplog.at_level(logging.WARNING, logger="ready_harness"):
                server.Shutdown()
            assert server.state is HandleState.TERMINATED
            assert not server.is_running
            assert "still held open" in caplog.text
            assert not server.ready_pipe.closed
        finally:
            os.kill(holder_pid, signal.SIGKILL)
        server._reader.join(timeout=5)
        assert not server._reader.is_alive()
        assert server.ready_pipe.closed
        assert server._copy_file.closed
        assert "SERVER_READY:4105" in (tmp_path / "stderr").read_text()

    def test_failed_startup_with_held_pipe_is_released_at_eof(self, server_spec):
        spec = server_spec("--spawn-holder", "--hang", ready_timeout_secs=0.5, grace_secs=0.3)
        server = ServerHandle(spec)
        with pytest.raises(ReadyTimeoutError):
            server.Start()
        holder_pid = _holder_pid(server)
        assert server.state is HandleState.FAILED
        os.kill(holder_pid, signal.SIGKILL)
        server._reader.join(timeout=5)
        assert server.ready_pipe.closed


# ── Concurrency ────────────────────────────────────────────────────────────────


class TestConcurrentHandles:
    def test_parallel_launches_get_distinct_ports(self, server_spec, assert_reaped):
        """Two handles launched at once with port 0 never share a port."""
        specs = [server_spec(ready_timeout_secs=30) for _ in range(2)]
        with ThreadPoolExecutor(max_workers=2) as pool:
            handles = list(pool.map(lambda s: ServerHandle(s).Start(), specs))
        try:
            ports = {h.port for h in handles}
            assert len(ports) == 2
            for h in handles:
                with h.client as c:
                    assert c.get("/health").json()["pid"] == h.pid
        finally:
            for h in handles:
                h.Shutdown()
        for h in handles:
            assert_reaped(h.pid)
