"""Async Unix socket server for the formatd daemon.

This module implements the long-running daemon process that:
1. Keeps one FormattingService (resolution cache + loaded formatters) alive
2. Handles requests via Unix socket IPC
3. Runs formatting on a thread pool so a slow file never blocks other clients

Usage:
    python -m formatd.daemon.server [--socket-path PATH] [--idle-timeout SECONDS]

    Or use the CLI:
    formatd start
"""

import asyncio
from dataclasses import asdict
import logging
import os
import sys
import time
from pathlib import Path
from typing import Any, Dict, Optional

from formatd.core.configs import DaemonSettings, get_daemon_settings
from formatd.core.models import Failed, FormatRequest
from formatd.core.resolver import ResolutionError
from formatd.core.service import FormattingService
from formatd.daemon.protocol import (
    deserialize_request,
    serialize_response,
    snapshot_to_dict,
)

logger = logging.getLogger(__name__)

READ_TIMEOUT = 30.0


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


class DaemonServer:
    """
    Serves FormattingService over a Unix socket, one request per connection.

    The service is created once at startup and shared by every connection.
    Its cache does its own locking, so handlers run on worker threads.
    """

    def __init__(
        self,
        settings: DaemonSettings,
        service: Optional[FormattingService] = None,
    ):
        """
        Args:
            settings: Socket/PID paths, idle timeout (0 = never), cache options
            service: Pre-built service (tests); built from settings otherwise
        """
        self.settings = settings
        self.socket_path = settings.socket_path
        self.pid_path = settings.pid_path
        self.idle_timeout = settings.idle_timeout

        self.service = service or FormattingService.create(
            check_stale=settings.check_stale,
            boundary=settings.boundary,
        )
        self.server: Optional[asyncio.AbstractServer] = None
        self.start_time: float = time.time()
        self.last_request_time: float = time.time()
        self._shutdown_event: asyncio.Event = asyncio.Event()

    async def start(self) -> None:
        """Start the daemon server and serve until shutdown."""
        logger.info("Starting formatd daemon...")

        # Clean up stale socket
        if self.socket_path.exists():
            self.socket_path.unlink()

        self.socket_path.parent.mkdir(parents=True, exist_ok=True)
        self.pid_path.write_text(str(os.getpid()))

        self.server = await asyncio.start_unix_server(
            self._handle_client,
            path=str(self.socket_path),
        )

        # Owner only
        os.chmod(self.socket_path, 0o600)
        logger.info(f"Daemon listening on {self.socket_path}")

        if self.idle_timeout > 0:
            asyncio.create_task(self._idle_watcher())

        async with self.server:
            await self._shutdown_event.wait()

        await self._cleanup()

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Read one request to EOF, answer it, close."""
        try:
            data = await asyncio.wait_for(reader.read(), timeout=READ_TIMEOUT)
            if not data:
                return

            self.last_request_time = time.time()

            try:
                request = deserialize_request(data)
            except ValueError as e:
                # json.JSONDecodeError is a ValueError
                writer.write(serialize_response("error", error=f"Invalid request: {e}"))
                await writer.drain()
                return

            response = await self.dispatch(request)
            writer.write(response)
            await writer.drain()

        except asyncio.TimeoutError:
            logger.warning("Client connection timed out")
        except ConnectionError as e:
            logger.info(f"Client disconnected: {e}")
        except Exception as e:
            logger.exception(f"Error handling client: {e}")
            try:
                writer.write(serialize_response("error", error=str(e)))
                await writer.drain()
            except ConnectionError:
                pass
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def _run_blocking(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def dispatch(self, request: Dict[str, Any]) -> bytes:
        """Route a decoded request to its handler."""
        command = request.get("command", "")
        if command == "format":
            return await self._handle_format(request)
        elif command == "flush_cache":
            return await self._handle_flush_cache(request)
        elif command == "debug_info":
            return await self._handle_debug_info(request)
        elif command == "health":
            return await self._handle_health(request)
        elif command == "shutdown":
            return await self._handle_shutdown(request)
        return serialize_response("error", error=f"Unknown command: {command}")

    async def _handle_format(self, request: Dict[str, Any]) -> bytes:
        """
        Handle 'format' - resolve config (cached) and format source text.

        The work runs on the default executor; if the client disconnects the
        resolution still completes and stays cached.
        """
        format_request = FormatRequest(
            args=[str(arg) for arg in request.get("args", [])],
            client_env=dict(request.get("client_env") or {}),
            source_text=request.get("source_text", ""),
            cwd=request.get("cwd") or str(Path.cwd()),
        )

        result = await self._run_blocking(self.service.handle_format, format_request)

        if isinstance(result, Failed):
            return serialize_response("error", error=result.message, kind=result.kind.value)
        return serialize_response("ok", result=result.text)

    async def _handle_flush_cache(self, request: Dict[str, Any]) -> bytes:
        message = await self._run_blocking(self.service.flush_cache)
        return serialize_response("ok", result=message)

    async def _handle_debug_info(self, request: Dict[str, Any]) -> bytes:
        cwd = request.get("cwd") or str(Path.cwd())
        args = [str(arg) for arg in request.get("args", [])]
        client_env = dict(request.get("client_env") or {})

        try:
            snapshot = await self._run_blocking(self.service.get_debug_info, cwd, args, client_env)
        except ResolutionError as e:
            return serialize_response("error", error=e.message, kind=e.kind.value)
        except ValueError as e:
            return serialize_response("error", error=f"Invalid override: {e}")

        return serialize_response("ok", result=snapshot_to_dict(snapshot))

    async def _handle_health(self, request: Dict[str, Any]) -> bytes:
        return serialize_response("ok", result=self.get_stats())

    async def _handle_shutdown(self, request: Dict[str, Any]) -> bytes:
        logger.info("Shutdown requested via socket")
        self._shutdown_event.set()
        return serialize_response("ok", result={"message": "Shutting down"})

    def get_stats(self) -> Dict[str, Any]:
        return {
            "pid": os.getpid(),
            "uptime_seconds": time.time() - self.start_time,
            "caches": [asdict(info) for info in self.service.cache.snapshot()],
        }

    async def _idle_watcher(self) -> None:
        """Stop the server once no request has arrived for idle_timeout seconds."""
        interval = min(60.0, self.idle_timeout)
        while not self._shutdown_event.is_set():
            await asyncio.sleep(interval)

            idle_time = time.time() - self.last_request_time
            if idle_time > self.idle_timeout:
                logger.info(
                    f"Idle timeout reached ({idle_time:.0f}s > {self.idle_timeout:.0f}s), "
                    "shutting down"
                )
                self._shutdown_event.set()
                break

    async def _cleanup(self) -> None:
        logger.info("Cleaning up...")

        if self.server:
            self.server.close()
            await self.server.wait_closed()

        if self.socket_path.exists():
            self.socket_path.unlink()
        if self.pid_path.exists():
            self.pid_path.unlink()

        logger.info("Daemon stopped")


def run_daemon(
    settings: Optional[DaemonSettings] = None,
    daemonize: bool = False,
) -> None:
    """
    Run the daemon server.

    Args:
        settings: Daemon settings (default: loaded from config + environment)
        daemonize: Fork to background (Unix only)
    """
    settings = settings or get_daemon_settings()

    if daemonize:
        # Double-fork to daemonize
        pid = os.fork()
        if pid > 0:
            sys.exit(0)

        os.setsid()

        pid = os.fork()
        if pid > 0:
            sys.exit(0)

        sys.stdin.close()

        # Redirect stdout/stderr to log file
        settings.log_path.parent.mkdir(parents=True, exist_ok=True)
        log_file = open(settings.log_path, "a")
        os.dup2(log_file.fileno(), sys.stdout.fileno())
        os.dup2(log_file.fileno(), sys.stderr.fileno())

    configure_logging(settings.log_level)

    server = DaemonServer(settings)
    asyncio.run(server.start())


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="formatd daemon server")
    parser.add_argument(
        "--socket-path",
        help="Path to Unix socket",
    )
    parser.add_argument(
        "--idle-timeout",
        type=float,
        help="Shutdown after this many seconds idle (0 = never)",
    )
    parser.add_argument(
        "--daemonize",
        action="store_true",
        help="Fork to background",
    )

    cli_args = parser.parse_args()

    daemon_settings = get_daemon_settings()
    if cli_args.socket_path:
        daemon_settings.socket_path = Path(cli_args.socket_path)
    if cli_args.idle_timeout is not None:
        daemon_settings.idle_timeout = cli_args.idle_timeout

    run_daemon(settings=daemon_settings, daemonize=cli_args.daemonize)
