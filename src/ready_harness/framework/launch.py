"""LaunchSpec — immutable description of one server launch attempt."""

from __future__ import annotations

import enum
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from ready_harness import config


class ReadyStream(enum.Enum):
    """Output stream on which the child announces readiness."""

    STDERR = "stderr"
    STDOUT = "stdout"


class OutputMode(enum.Enum):
    """What happens to the output stream that is not watched for readiness."""

    INHERIT = "inherit"
    DISCARD = "discard"


@dataclass(frozen=True)
class LaunchSpec:
    """Everything needed to launch one server under test.

    Attributes:
        binary_path: Executable to run, either a path or a name looked up on PATH (str)
        command_line_args: Arguments; should request an ephemeral bind, e.g. ('--port', '0')
        ready_timeout_secs: Seconds to wait for the readiness sentinel (float)
        grace_secs: Seconds between the polite terminate and the forced kill (float)
        host: Loopback host the endpoint is exposed on (str)
        ready_stream: Stream watched for the sentinel (ReadyStream)
        output_mode: Fate of the other output stream (OutputMode)
        inherit_stdin: If False, the child reads from /dev/null (bool)
        env: Extra environment variables, merged over os.environ, or None
        cwd: Working directory of the child, or None to inherit
        own_dir: Directory receiving the 'cmd' file and a copy of the ready stream, or None
        sentinel: Prefix of the readiness line (str)
    """

    binary_path: str
    command_line_args: Sequence[str] = ()
    ready_timeout_secs: float = config.DEFAULT_READY_TIMEOUT_SECS
    grace_secs: float = config.DEFAULT_GRACE_SECS
    host: str = config.LOOPBACK_HOST
    ready_stream: ReadyStream = ReadyStream.STDERR
    output_mode: OutputMode = OutputMode.DISCARD
    inherit_stdin: bool = False
    env: Mapping[str, str] | None = field(default=None, hash=False)
    cwd: str | None = None
    own_dir: str | None = None
    sentinel: str = config.READY_SENTINEL

    def __post_init__(self):
        if not self.binary_path:
            raise ValueError("binary_path must not be empty")
        # Freeze the argument list so a caller mutating their list cannot change a launch in flight.
        object.__setattr__(self, "command_line_args", tuple(str(arg) for arg in self.command_line_args))
        if self.env is not None:
            object.__setattr__(self, "env", {str(k): str(v) for k, v in self.env.items()})
        for name in ("ready_timeout_secs", "grace_secs"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
                raise ValueError(f"{name} must be a finite, positive number of seconds, got {value!r}")
        if not self.sentinel:
            raise ValueError("sentinel must not be empty")
        if not self.host:
            raise ValueError("host must not be empty")

    @property
    def argv(self) -> list[str]:
        return [self.binary_path, *self.command_line_args]

    @property
    def command(self) -> str:
        """Human-readable command line, for logs and error messages."""
        return " ".join(self.argv)

    def requests_ephemeral_port(self) -> bool:
        """True if some argument asks for port 0, either as '0' or as '--flag=0'."""
        for arg in self.command_line_args:
            if arg == config.EPHEMERAL_PORT_ARG:
                return True
            if arg.startswith("-") and "=" in arg and arg.split("=", 1)[1] == config.EPHEMERAL_PORT_ARG:
                return True
        return False

    def validate_ephemeral(self) -> None:
        """Raises ValueError unless the arguments request an OS-assigned port."""
        if not self.requests_ephemeral_port():
            raise ValueError(
                f"Launch arguments must request an ephemeral port (a '0' port value): {self.command}"
            )
