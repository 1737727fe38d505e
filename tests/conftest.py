"""Root test conftest — shared fixtures for all test suites.

Unit tests live in tests/unit/, real-subprocess tests in tests/components/.
Both launch tests/fixtures/sentinel_server.py under the current interpreter.
"""

import sys
from pathlib import Path

import pytest

# src/ is the Python root for the ready_harness package
_SRC = Path(__file__).parent.parent / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

from ready_harness.framework.launch import LaunchSpec  # noqa: E402
from ready_harness.pytest_plugin import launch_server  # noqa: E402,F401

SENTINEL_SERVER = Path(__file__).parent / "fixtures" / "sentinel_server.py"


@pytest.fixture
def server_spec():
    """Factory: server_spec(*server_args, **spec_kwargs) -> LaunchSpec for the sentinel server."""

    def _make(*server_args, **spec_kwargs):
        spec_kwargs.setdefault("env", {"PYTHONUNBUFFERED": "1"})
        return LaunchSpec(sys.executable, [str(SENTINEL_SERVER), "--port", "0", *server_args], **spec_kwargs)

    return _make


@pytest.fixture
def sentinel_server():
    """Path to the sentinel test server script."""
    return SENTINEL_SERVER
