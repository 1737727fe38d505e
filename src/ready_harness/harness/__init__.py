"""Concrete harness implementations built on ready_harness.framework.ProcessHarness."""

from ready_harness.harness.python_server import PythonServerHandle
from ready_harness.harness.server import HandleState, ServerHandle, launch_server

__all__ = [
    "HandleState",
    "ServerHandle",
    "PythonServerHandle",
    "launch_server",
]
