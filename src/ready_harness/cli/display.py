"""Rich display helpers — outcome panels and one-line status messages."""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from ready_harness.framework.exception import StartupError

THEME = Theme(
    {
        "rh.ok": "#3d9e5a",
        "rh.warn": "#d4a017",
        "rh.err": "#e05555",
        "rh.muted": "#5A6278",
        "rh.silver": "#A4B4CC",
        "rh.accent": "bold #4D8FFF",
    }
)

console = Console(theme=THEME, highlight=False)

PHASE_LABELS = {
    "spawn": "could not be started",
    "timeout": "did not announce readiness in time",
    "exit": "exited before it was ready",
    "protocol": "broke the readiness protocol",
}


def print_ready(handle) -> None:
    """Print the endpoint of a READY handle."""
    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column(style="rh.muted", no_wrap=True)
    table.add_column(style="rh.silver")

    host, port = handle.endpoint
    table.add_row("command", str(handle))
    table.add_row("pid", str(handle.pid))
    table.add_row("host", host)
    table.add_row("port", f"[rh.accent]{port}[/rh.accent]")
    table.add_row("url", handle.base_url)
    if handle.startup_secs is not None:
        table.add_row("startup", f"{handle.startup_secs * 1000:.0f} ms")

    console.print(Panel(table, title="[rh.ok]✓ Server ready[/rh.ok]", border_style="rh.ok", padding=(1, 2)))


def print_failure(exc: StartupError) -> None:
    """Print which startup phase failed, with the tail of the child's output."""
    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column(style="rh.muted", no_wrap=True)
    table.add_column()

    table.add_row("phase", f"[rh.err]{exc.phase}[/rh.err]")
    table.add_row("reason", exc.args[0] if exc.args else "")
    if exc.command:
        table.add_row("command", exc.command)
    if exc.stderr_tail:
        table.add_row("output", "\n".join(exc.stderr_tail[-10:]))

    label = PHASE_LABELS.get(exc.phase, "failed to start")
    console.print(Panel(table, title=f"[rh.err]✗ Server {label}[/rh.err]", border_style="rh.err", padding=(1, 2)))


def warn(message: str) -> None:
    console.print(f"  [rh.warn]⚠[/rh.warn]  {message}")


def info(message: str) -> None:
    console.print(f"  [rh.muted]·[/rh.muted]  [rh.silver]{message}[/rh.silver]")
