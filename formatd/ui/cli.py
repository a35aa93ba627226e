"""Main CLI entry point.

formatd <file> < source        format stdin as <file>, print the result
formatd start|stop|restart|status
formatd flush-cache
formatd --debug-info [file]
formatd --version
"""

import os
import sys
from pathlib import Path
from typing import List, Optional

import typer

from formatd import __version__
from formatd.core.configs import DaemonSettings, get_daemon_settings, verify_runtime_dir
from formatd.core.models import Failed, FormatRequest
from formatd.core.resolver import ResolutionError
from formatd.daemon.client import DaemonClient, collect_client_env
from formatd.daemon.protocol import snapshot_from_dict
from formatd.ui.output import render_debug_info

LIFECYCLE_COMMANDS = ("start", "stop", "restart", "status")

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="formatd - format source files through a warm background daemon.",
)


# ============================================================================
# Shared Setup
# ============================================================================

def is_daemon_enabled() -> bool:
    """
    Daemon is DISABLED if FORMATD_NO_DAEMON=1 is set or on Windows
    (Unix sockets not available).
    """
    if os.environ.get("FORMATD_NO_DAEMON", "").lower() in ("1", "true", "yes"):
        return False
    return sys.platform != "win32"


def _load_settings() -> DaemonSettings:
    """Load daemon settings and check the runtime dir. Exits on error."""
    try:
        settings = get_daemon_settings()
        verify_runtime_dir(settings.runtime_dir)
    except (RuntimeError, ValueError) as e:
        typer.echo(f"failed to run formatd: {e}", err=True)
        raise typer.Exit(1)
    return settings


def _client(settings: DaemonSettings) -> DaemonClient:
    return DaemonClient(socket_path=settings.socket_path, pid_path=settings.pid_path)


def _local_service():
    """In-process service for --no-daemon and as a fallback. Imports formatter code lazily."""
    from formatd.core.service import FormattingService
    return FormattingService.create()


# ============================================================================
# Actions
# ============================================================================

def _format(args: List[str], use_daemon: bool) -> None:
    source_text = sys.stdin.read()
    client_env = collect_client_env()
    cwd = str(Path.cwd())

    if use_daemon:
        client = _client(_load_settings())
        if not client.ensure_daemon_running():
            typer.echo("WARNING: could not start formatd daemon, formatting in-process", err=True)
        else:
            try:
                ok, result = client.format(args, source_text, client_env=client_env, cwd=cwd)
            except (OSError, ValueError) as e:
                typer.echo(f"WARNING: formatd daemon request failed ({e}), formatting in-process", err=True)
            else:
                if not ok:
                    typer.echo(f"[{result.get('kind') or 'error'}] {result['error']}", err=True)
                    raise typer.Exit(1)
                sys.stdout.write(result["text"])
                return

    outcome = _local_service().handle_format(
        FormatRequest(args=args, client_env=client_env, source_text=source_text, cwd=cwd)
    )
    if isinstance(outcome, Failed):
        typer.echo(f"[{outcome.kind.value}] {outcome.message}", err=True)
        raise typer.Exit(1)
    sys.stdout.write(outcome.text)


def _debug_info(args: List[str], use_daemon: bool) -> None:
    client_env = collect_client_env()
    cwd = str(Path.cwd())

    client = _client(_load_settings()) if use_daemon else None
    if client is not None and client.is_daemon_running():
        try:
            ok, result = client.debug_info(args, client_env=client_env, cwd=cwd)
        except (OSError, ValueError) as e:
            typer.echo(f"Error: formatd daemon request failed: {e}", err=True)
            raise typer.Exit(1)
        if not ok:
            typer.echo(f"Error: {result['error']}", err=True)
            raise typer.Exit(1)
        snapshot = snapshot_from_dict(result)
    else:
        try:
            snapshot = _local_service().get_debug_info(cwd, args, client_env)
        except (ResolutionError, ValueError) as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)

    typer.echo(render_debug_info(snapshot, __version__))


def _flush_cache(use_daemon: bool) -> None:
    if use_daemon:
        client = _client(_load_settings())
        if client.is_daemon_running():
            try:
                flushed = client.flush_cache()
            except (OSError, ValueError) as e:
                typer.echo(f"Error: formatd daemon request failed: {e}", err=True)
                raise typer.Exit(1)
            if not flushed:
                typer.echo("Error: daemon refused to flush its cache", err=True)
                raise typer.Exit(1)
    typer.echo("success")


def _lifecycle(command: str) -> None:
    # Lazy import
    from formatd.ui.daemon_commands import handle_lifecycle

    handle_lifecycle(command, _load_settings())


# ============================================================================
# Command
# ============================================================================

@app.command(context_settings={"ignore_unknown_options": True})
def main(
    target: Optional[str] = typer.Argument(
        None, help="File to format (source read from stdin), flush-cache, or start|stop|restart|status"
    ),
    extra: Optional[List[str]] = typer.Argument(None, hidden=True),
    version: bool = typer.Option(False, "--version", help="Print the formatd version"),
    debug_info: bool = typer.Option(False, "--debug-info", help="Show resolved formatter and cache state"),
    no_daemon: bool = typer.Option(False, "--no-daemon", help="Format in this process"),
) -> None:
    """
    Format stdin as TARGET through the formatd daemon.

    Example: formatd src/app.js < src/app.js
    """
    if version:
        typer.echo(f"formatd {__version__}")
        return

    args = [arg for arg in [target, *(extra or [])] if arg]
    use_daemon = not no_daemon and is_daemon_enabled()

    if debug_info:
        _debug_info(args, use_daemon)
        return

    if "flush-cache" in args:
        _flush_cache(use_daemon)
        return

    if target in LIFECYCLE_COMMANDS:
        _lifecycle(target)
        return

    _format(args, use_daemon)


def run() -> None:
    """Entry point for console script mapping."""
    app()


if __name__ == "__main__":
    run()
