"""
ready-harness — CLI entry point.

Usage:
  ready-harness check ./my-server --port 0
  ready-harness check --timeout 10 --hold -- python -m myapp --port 0
  ready-harness check --stdout-stream ./server --listen=0
  ready-harness --version

`check` launches the binary exactly the way the test harness does, reports
the negotiated endpoint (or which startup phase failed), and then stops it.
"""

from __future__ import annotations

import time
from typing import Annotated

import typer

from ready_harness import __version__, config
from ready_harness.cli.display import console, info, print_failure, print_ready, warn
from ready_harness.framework.exception import StartupError
from ready_harness.framework.launch import LaunchSpec, OutputMode, ReadyStream
from ready_harness.harness.server import launch_server

# ── App ───────────────────────────────────────────────────────────────────────

app = typer.Typer(
    name="ready-harness",
    help="Launch a server, wait for its SERVER_READY line, and clean it up.",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)


@app.callback(invoke_without_command=True)
def root(
    version: bool = typer.Option(False, "--version", "-V", help="Print version and exit", is_eager=True),
) -> None:
    """[bold]ready-harness[/bold] — readiness-handshake launcher for integration tests"""
    if version:
        console.print(f"ready-harness [bold]v{__version__}[/bold]")
        raise typer.Exit()


# ── Subcommands ───────────────────────────────────────────────────────────────


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def check(
    command: Annotated[list[str], typer.Argument(help="Server binary followed by its arguments")],
    timeout: float = typer.Option(
        config.DEFAULT_READY_TIMEOUT_SECS, "--timeout", "-t", help="Seconds to wait for the sentinel"
    ),
    grace: float = typer.Option(config.DEFAULT_GRACE_SECS, "--grace", help="Seconds between SIGTERM and SIGKILL"),
    host: str = typer.Option(config.LOOPBACK_HOST, "--host", help="Host to report in the endpoint"),
    stdout_stream: bool = typer.Option(False, "--stdout-stream", help="Watch stdout instead of stderr"),
    show_output: bool = typer.Option(False, "--show-output", help="Inherit the non-watched stream"),
    require_ephemeral: bool = typer.Option(
        True, "--require-ephemeral/--allow-fixed-port", help="Insist on a port 0 argument"
    ),
    hold: bool = typer.Option(False, "--hold", help="Keep the server up until Ctrl-C"),
) -> None:
    """
    Launch [bold]COMMAND[/bold] under the harness and report its endpoint.

    Exit code 0 when the server became ready, 1 when startup failed, 2 on bad arguments.
    """
    binary, *args = command
    try:
        spec = LaunchSpec(
            binary,
            args,
            ready_timeout_secs=timeout,
            grace_secs=grace,
            host=host,
            ready_stream=ReadyStream.STDOUT if stdout_stream else ReadyStream.STDERR,
            output_mode=OutputMode.INHERIT if show_output else OutputMode.DISCARD,
        )
        if require_ephemeral:
            spec.validate_ephemeral()
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    try:
        with launch_server(spec, require_ephemeral=False) as server:
            print_ready(server)
            if hold:
                _hold(server)
    except StartupError as exc:
        print_failure(exc)
        raise typer.Exit(1) from exc

    info("Server stopped.")


def _hold(server) -> None:
    info("Holding the server up — press [bold]Ctrl-C[/bold] to stop it.")
    try:
        while server.is_running:
            time.sleep(0.5)
    except KeyboardInterrupt:
        console.print()
        return
    warn(f"Server exited on its own with code {server.returncode}")


# ── Entry ─────────────────────────────────────────────────────────────────────


def main() -> None:
    app()


if __name__ == "__main__":
    main()
