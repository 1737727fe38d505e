"""ready_harness — launch a server subprocess, wait for its readiness line, always clean up."""

from ready_harness.framework.exception import (
    ProcessExitedEarlyError,
    ReadyProtocolViolationError,
    ReadyTimeoutError,
    ServerNotReadyError,
    SpawnFailureError,
    StartupError,
)
from ready_harness.framework.launch import LaunchSpec, OutputMode, ReadyStream
from ready_harness.harness.python_server import PythonServerHandle
from ready_harness.harness.server import HandleState, ServerHandle, launch_server

__version__ = "0.1.0"

__all__ = [
    "HandleState",
    "LaunchSpec",
    "OutputMode",
    "ProcessExitedEarlyError",
    "PythonServerHandle",
    "ReadyProtocolViolationError",
    "ReadyStream",
    "ReadyTimeoutError",
    "ServerHandle",
    "ServerNotReadyError",
    "SpawnFailureError",
    "StartupError",
    "launch_server",
]
