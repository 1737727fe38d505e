"""PythonServerHandle — ServerHandle for Python servers, with coverage instrumentation."""

from __future__ import annotations

import sys
from pathlib import Path

from ready_harness.framework.launch import LaunchSpec
from ready_harness.harness.server import ServerHandle


class PythonServerHandle(ServerHandle):
    """ServerHandle for Python HTTP services.

    Runs the arguments under the current Python interpreter, forces unbuffered
    output so the readiness line is not stuck in the child's stdio buffer, and
    injects COVERAGE_PROCESS_START so coverage.py measures the subprocess.

    Example — a script that binds port 0:
        server = PythonServerHandle(["tests/fixtures/sentinel_server.py", "--port", "0"])
        with server:
            server.client.get("/health")
    """

    def __init__(
        self,
        command_line_args,
        coverage: bool = True,
        coveragerc: str | Path | None = None,
        **spec_kwargs,
    ):
        super().__init__(LaunchSpec(sys.executable, command_line_args, **spec_kwargs))
        self._coverage = coverage
        self._coveragerc = Path(coveragerc) if coveragerc else Path.cwd() / ".coveragerc"

    def ModifyEnv(self, env: dict | None) -> dict:
        """Inject PYTHONUNBUFFERED and COVERAGE_PROCESS_START for the Python child."""
        _env = super().ModifyEnv(env or {})
        _env["PYTHONUNBUFFERED"] = "1"
        if self._coverage and self._coveragerc.exists():
            _env["COVERAGE_PROCESS_START"] = str(self._coveragerc)
        return _env
