"""
Daemon Lifecycle Commands

CLI handlers for start/stop/restart/status.
This module is lazy-loaded only when lifecycle commands are used.
"""

import time

from rich.console import Console
from rich.table import Table

from formatd.core.configs import DaemonSettings
from formatd.daemon.client import DaemonClient

console = Console()


def handle_lifecycle(command: str, settings: DaemonSettings) -> None:
    """
    Route to the lifecycle action.

    Args:
        command: One of 'start', 'stop', 'restart', 'status'
        settings: Daemon settings (socket/PID/log paths)
    """
    client = DaemonClient(socket_path=settings.socket_path, pid_path=settings.pid_path)

    if command in ("stop", "restart"):
        daemon_stop(client, settings, quiet=command == "restart")

    if command in ("start", "restart"):
        daemon_start(client, settings)

    elif command == "status":
        daemon_status(client)


def daemon_stop(client: DaemonClient, settings: DaemonSettings, quiet: bool = False) -> None:
    if not client.is_daemon_running():
        if not quiet:
            console.print("[yellow]formatd is not running[/yellow]")
        return

    client.shutdown()
    for _ in range(50):
        if not settings.socket_path.exists():
            break
        time.sleep(0.1)
    console.print("[green]formatd stopped[/green]")


def daemon_start(client: DaemonClient, settings: DaemonSettings) -> None:
    if not client.ensure_daemon_running():
        console.print(f"[red]Error: could not start formatd (see {settings.log_path})[/red]")
        raise SystemExit(1)
    stats = client.health() or {}
    console.print(f"[green]formatd running[/green] (pid {stats.get('pid', '?')})")


def daemon_status(client: DaemonClient) -> None:
    """Show daemon PID, uptime and cache sizes."""
    stats = client.health()
    if stats is None:
        console.print("[yellow]formatd is not running[/yellow]")
        raise SystemExit(1)

    console.print(
        f"[green]formatd running[/green] (pid {stats.get('pid', '?')}, "
        f"up {_format_uptime(stats.get('uptime_seconds', 0))})"
    )

    table = Table(show_header=True, header_style="bold")
    table.add_column("Cache", style="cyan")
    table.add_column("Items", justify="right")
    for info in stats.get("caches", []):
        table.add_row(info["name"], str(info["item_count"]))
    console.print(table)


def _format_uptime(seconds: float) -> str:
    """Format seconds as human-readable string."""
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    hours, rest = divmod(seconds, 3600)
    return f"{hours}h {rest // 60}m"
