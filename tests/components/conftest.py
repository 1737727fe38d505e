"""Fixtures for component tests.

These launch real server subprocesses; the default serve mode needs fastapi
and uvicorn (the 'test' extra).
Run standalone: pytest tests/components/ -v
"""

import errno
import os
import sys

import pytest

if sys.platform.startswith("win"):
    collect_ignore_glob = ["test_*.py"]


@pytest.fixture
def assert_reaped():
    """assert_reaped(pid): the process no longer exists, not even as a zombie."""

    def _check(pid):
        try:
            os.kill(pid, 0)
        except OSError as exc:
            assert exc.errno == errno.ESRCH, exc
        else:
            pytest.fail(f"PID {pid} is still alive after release")

    return _check
