"""Exceptions raised by the server harness."""


class Error(Exception):
    """Base class for exceptions raised by this package."""

    pass


class AlreadyLaunchedError(Error):
    """Raised when ProcessHarness.Launch is called twice on the same object."""

    pass


class NotLaunchedError(Error):
    """Raised when certain ProcessHarness methods are called before Launch."""

    pass


class ServerNotReadyError(Error):
    """Raised when the endpoint of a handle is requested before it is ready."""

    pass


class StartupError(Error):
    """Base class for the ways a launch attempt can fail.

    Attributes:
        phase: Startup phase that failed: 'spawn', 'timeout', 'exit' or 'protocol' (str)
        command: Command line of the child, for the report (str)
        stderr_tail: Last lines the child wrote to its ready stream (list of str)
    """

    phase = "startup"

    def __init__(self, message, command="", stderr_tail=None):
        super().__init__(message)
        self.command = command
        self.stderr_tail = list(stderr_tail or [])

    def __str__(self):
        text = super().__str__()
        if self.command:
            text = f"{text} [{self.command}]"
        if self.stderr_tail:
            text += "\n--- child output (tail) ---\n" + "\n".join(self.stderr_tail)
        return text


class SpawnFailureError(StartupError):
    """Raised when the operating system refuses to create the child process."""

    phase = "spawn"


class ReadyTimeoutError(StartupError):
    """Raised when no readiness sentinel arrived within the deadline."""

    phase = "timeout"

    def __init__(self, timeout_secs, command="", stderr_tail=None):
        super().__init__(f"No readiness signal within {timeout_secs:g}s", command, stderr_tail)
        self.timeout_secs = timeout_secs


class ProcessExitedEarlyError(StartupError):
    """Raised when the child exited before announcing readiness."""

    phase = "exit"

    def __init__(self, returncode, command="", stderr_tail=None):
        super().__init__(f"Server exited with code {returncode} before it was ready", command, stderr_tail)
        self.returncode = returncode


class ReadyProtocolViolationError(StartupError):
    """Raised when the readiness sentinel is malformed or the ready stream closed without one."""

    phase = "protocol"

    def __init__(self, message, line=None, command="", stderr_tail=None):
        super().__init__(message, command, stderr_tail)
        self.line = line
