# ready_harness/framework/harness.py

"""Process harness: launches one child process and owns it until it is reaped."""

import errno
import os
import subprocess
import sys

from ready_harness.framework.exception import AlreadyLaunchedError, NotLaunchedError, SpawnFailureError
from ready_harness.framework.launch import OutputMode, ReadyStream
from ready_harness.framework.logger import LOGGER

WINDOWS = "win"


class ProcessHarness:
    """Harness for a single process described by a LaunchSpec.

    The stream named by spec.ready_stream is always a pipe owned by the harness;
    the other output stream is inherited or discarded, and stdin is /dev/null
    unless spec.inherit_stdin is set.

    If spec.own_dir is set, the command line is appended to own_dir/cmd.

    A subclass has opportunities for modifying the command-line arguments and environment
    variables via the ModifyArgs and ModifyEnv calls, respectively.

    Properties:
        spec: The LaunchSpec this harness was built from.
        ready_pipe: Read-only binary file object of the ready stream.
        is_launched: If True, then Launch() has been called (bool).
        is_finished: If True, then the process has been reaped by Wait() (bool).
        is_running: If True, then the process is running; if False, then it is not, either because
                it has not yet been launched, or it has already exited (bool).
    """

    def __init__(self, spec):
        """Initializes a ProcessHarness object.

        Args:
            spec: LaunchSpec describing the binary, its arguments and its streams
        """
        self.__spec = spec
        self.__popen = None
        self.__is_finished = False
        self.__cmd_path = spec.own_dir and os.path.join(spec.own_dir, "cmd")

        if spec.own_dir is not None and not os.path.isdir(spec.own_dir):
            os.makedirs(spec.own_dir)

    # Properties

    @property
    def spec(self):
        return self.__spec

    @property
    def binary_path(self):
        return self.__spec.binary_path

    @property
    def command_line_args(self):
        return list(self.__spec.command_line_args)

    @property
    def env(self):
        return self.__spec.env

    @property
    def own_dir(self):
        return self.__spec.own_dir

    @property
    def cmd_path(self):
        return self.__cmd_path

    @property
    def pid(self):
        self._MustBeLaunched()
        return self.__popen.pid

    @property
    def ready_pipe(self):
        self._MustBeLaunched()
        if self.__spec.ready_stream is ReadyStream.STDOUT:
            return self.__popen.stdout
        return self.__popen.stderr

    @property
    def is_launched(self):
        return self.__popen is not None

    @property
    def is_finished(self):
        return self.__is_finished

    @property
    def is_running(self):
        if self.__popen:
            return self.__popen.poll() is None
        else:
            return False

    @property
    def returncode(self):
        """Exit code of the process, or None while it runs or before Launch()."""
        if not self.__popen:
            return None
        return self.__popen.poll()

    # Virtual (optional)

    def ModifyArgs(self, args):
        """Subclass can override in order to manipulate the command-line arguments.

        Args:
            args: Default command-line arguments (list of str)

        Returns:
            Command-line arguments (list of str)
        """
        return args

    def ModifyEnv(self, env):
        """Subclass can override in order to manipulate the environment variables.

        Args:
            env: Extra environment variables (dict of str:str), or None.

        Returns:
            Complete environment for the child (dict of str:str).
        """
        _env = os.environ.copy()
        _env.update(env or {})
        _env = {k: str(v) for k, v in _env.items()}
        return _env

    def Launch(self):
        """Launches the subprocess.

        This method can only be called once per instance of this class.

        Raises:
            AlreadyLaunchedError: If the Launch method has already been called.
            SpawnFailureError: If the operating system could not start the binary.
        """

        if self.is_launched:
            raise AlreadyLaunchedError()

        self.__is_finished = False

        other = None if self.__spec.output_mode is OutputMode.INHERIT else subprocess.DEVNULL
        if self.__spec.ready_stream is ReadyStream.STDOUT:
            stdout, stderr = subprocess.PIPE, other
        else:
            stdout, stderr = other, subprocess.PIPE
        stdin = None if self.__spec.inherit_stdin else subprocess.DEVNULL

        argv = [self.__spec.binary_path] + self.ModifyArgs(self.command_line_args)
        cmd = " ".join(argv)
        LOGGER.debug(f'Launching "{cmd}" cmd')

        env = self.ModifyEnv(self.__spec.env)
        if LOGGER.getEffectiveLevel() == 10:
            LOGGER.debug("env: %s", env)

        # Save the command-line (always append, in case we run multiple times).
        if self.__cmd_path:
            with open(self.__cmd_path, "a+") as cmd_handle:
                cmd_handle.write(f"{cmd}\n")

        close_fds = not sys.platform.startswith(WINDOWS)

        try:
            self.__popen = subprocess.Popen(
                argv,
                env=env,
                cwd=self.__spec.cwd,
                stdin=stdin,
                stdout=stdout,
                stderr=stderr,
                close_fds=close_fds,
            )
        except OSError as exc:
            LOGGER.error("Failed to spawn %s: %s", cmd, exc)
            raise SpawnFailureError(f"Could not start server: {exc.strerror or exc}", command=cmd) from exc

        LOGGER.debug("Launched PID %d", self.__popen.pid)

    def Kill(self):
        """Send SIGKILL to the child.

        Raises:
            NotLaunchedError: If the Launch method has not been called.
        """

        self._MustBeLaunched()

        def _Kill():
            LOGGER.debug("Killing PID %d", self.__popen.pid)
            self.__popen.kill()

        self.__Signal(_Kill)

    def Terminate(self):
        """Send SIGTERM to the child.

        Raises:
            NotLaunchedError: If the Launch method has not been called.
        """
        self._MustBeLaunched()

        def _Terminate():
            LOGGER.debug("Terminating PID %d", self.__popen.pid)
            self.__popen.terminate()

        self.__Signal(_Terminate)

    def Wait(self, timeout=None):
        """Waits for the subprocess to die and reaps it.

        Args:
            timeout: Seconds to wait, or None to wait forever (float)

        Returns:
            The exit code (int).

        Raises:
            NotLaunchedError: If the Launch method has not been called.
            subprocess.TimeoutExpired: If the process is still running after timeout.
        """

        self._MustBeLaunched()

        if self.is_finished:
            return self.__popen.returncode

        try:
            self.__popen.wait(timeout=timeout)
        except OSError as exc:
            LOGGER.debug(exc)
            if exc.errno == errno.ECHILD:
                LOGGER.debug("Suppressed no child processes error.")
            else:
                raise

        self.__is_finished = True
        LOGGER.debug("PID %d exited with code %s", self.__popen.pid, self.__popen.returncode)
        return self.__popen.returncode

    def Stop(self, grace_secs):
        """Terminates the child, escalating to SIGKILL after grace_secs, and reaps it.

        Safe to call on a process that already exited.

        Args:
            grace_secs: Seconds to wait after SIGTERM before sending SIGKILL (float)

        Returns:
            The exit code (int).
        """
        self._MustBeLaunched()
        if self.is_finished:
            return self.__popen.returncode

        if self.is_running:
            self.Terminate()
            try:
                return self.Wait(timeout=grace_secs)
            except subprocess.TimeoutExpired:
                LOGGER.warning("PID %d ignored SIGTERM for %gs, killing it", self.__popen.pid, grace_secs)
                self.Kill()
        return self.Wait()

    def ClosePipes(self):
        """Closes whatever standard streams of the child the harness still holds."""
        if not self.__popen:
            return
        for pipe in (self.__popen.stdin, self.__popen.stdout, self.__popen.stderr):
            if pipe is not None and not pipe.closed:
                pipe.close()

    def __str__(self):
        return " ".join([self.__spec.binary_path] + self.command_line_args)

    def _MustBeLaunched(self):
        if not self.is_launched:
            raise NotLaunchedError()

    def __Signal(self, closure):
        """Call one of the Popen signal methods and deal with the errors.

        Args:
            closure: Closure which invokes one of the Popen signal delivery methods.
        """

        if self.is_finished:
            # We're already done, so avoid sending a signal to the wrong process.
            return

        try:
            closure()
        except OSError as exc:
            LOGGER.debug(exc)
            if exc.errno == errno.ESRCH:
                LOGGER.debug("Process died before it could be signaled.")
            else:
                raise
