"""pytest plugin — the ``launch_server`` fixture.

Registered through the ``pytest11`` entry point, so any project that installs
ready-harness can write::

    def test_health(launch_server):
        server = launch_server(LaunchSpec("./bin/server", ["--port", "0"]))
        with server.client as c:
            assert c.get("/health").status_code == 200

Every handle the fixture hands out is shut down at teardown, whether the test
passed, failed or errored.
"""

from __future__ import annotations

import pytest

from ready_harness.framework.logger import LOGGER
from ready_harness.harness.server import ServerHandle


@pytest.fixture
def launch_server():
    """Factory fixture: launch_server(spec_or_handle) -> READY ServerHandle."""
    handles: list[ServerHandle] = []

    def _launch(spec, require_ephemeral: bool = True) -> ServerHandle:
        if isinstance(spec, ServerHandle):
            handle = spec
        else:
            if require_ephemeral:
                spec.validate_ephemeral()
            handle = ServerHandle(spec)
        handles.append(handle)
        return handle.Start()

    yield _launch

    errors = []
    for handle in reversed(handles):
        try:
            handle.Shutdown()
        except Exception as exc:
            LOGGER.error("Failed to shut down %r: %s", handle, exc)
            errors.append(exc)
    if errors:
        raise errors[0]
