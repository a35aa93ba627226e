"""Socket client used by the formatd CLI.

Imports nothing beyond the protocol module, so `formatd file.js` starts
without touching any formatter library; those live in the daemon.

Usage:
    client = DaemonClient(settings.socket_path, settings.pid_path)
    client.ensure_daemon_running()
    ok, result = client.format(["src/app.js"], source_text=text)
"""

import os
import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from formatd.core.configs import CLIENT_ENV_PREFIX
from formatd.daemon.protocol import (
    deserialize_response,
    serialize_request,
)

PROBE_TIMEOUT = 2.0


def collect_client_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Pick the FORMATD_* variables to forward to the daemon."""
    environ = os.environ if environ is None else environ
    return {key: value for key, value in environ.items() if key.startswith(CLIENT_ENV_PREFIX)}


class DaemonClient:
    """
    One connection per request: send, half-close, read the reply to EOF.

    Connection failures surface as exceptions from the request methods,
    except for the probes (is_daemon_running, health, shutdown) which
    report them as False/None.
    """

    def __init__(
        self,
        socket_path: Path,
        pid_path: Path,
        timeout: float = 30.0,
    ):
        """
        Args:
            socket_path: Path to Unix socket
            pid_path: Path to the daemon's PID file
            timeout: Socket timeout in seconds
        """
        self.socket_path = socket_path
        self.pid_path = pid_path
        self.timeout = timeout

    def is_daemon_running(self) -> bool:
        """True if something on the socket answers the health command."""
        return self.socket_path.exists() and self.health() is not None

    def ensure_daemon_running(self, auto_start: bool = True) -> bool:
        """Start the daemon unless one already answers. False if it never came up."""
        if self.is_daemon_running():
            return True

        if not auto_start:
            return False

        self._clear_stale_files()
        return self._start_daemon()

    def _clear_stale_files(self) -> None:
        if not self.pid_path.exists():
            return
        try:
            pid = int(self.pid_path.read_text().strip())
            os.kill(pid, 0)
        except (ValueError, ProcessLookupError, PermissionError):
            # Stale PID file - remove it
            self.pid_path.unlink(missing_ok=True)
            self.socket_path.unlink(missing_ok=True)

    def _start_daemon(self) -> bool:
        """Start the daemon in background and wait up to 5 seconds for it."""
        try:
            subprocess.Popen(
                [sys.executable, "-m", "formatd.daemon.server", "--daemonize"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError:
            return False

        for _ in range(50):
            time.sleep(0.1)
            if self.is_daemon_running():
                return True

        return False

    def format(
        self,
        args: List[str],
        source_text: str,
        client_env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
    ) -> Tuple[bool, Dict[str, Any]]:
        """
        Send 'format' command to daemon.

        Returns:
            (success, result_dict)
            result_dict has 'text' on success, 'error' and 'kind' on failure
        """
        response = self._send_request(
            command="format",
            args=args,
            client_env=client_env,
            cwd=cwd or str(Path.cwd()),
            source_text=source_text,
        )

        if response.get("status") == "ok":
            return True, {"text": response.get("result", "")}
        return False, {
            "error": response.get("error") or "Unknown error",
            "kind": response.get("kind"),
        }

    def flush_cache(self) -> bool:
        response = self._send_request(command="flush_cache")
        return response.get("status") == "ok"

    def debug_info(
        self,
        args: List[str],
        client_env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
    ) -> Tuple[bool, Dict[str, Any]]:
        """Request a debug snapshot; result dict is the snapshot or {'error': ...}."""
        response = self._send_request(
            command="debug_info",
            args=args,
            client_env=client_env,
            cwd=cwd or str(Path.cwd()),
        )
        if response.get("status") == "ok":
            return True, response.get("result") or {}
        return False, {"error": response.get("error") or "Unknown error"}

    def health(self) -> Optional[Dict[str, Any]]:
        """PID, uptime and cache sizes, or None when nothing answers."""
        try:
            response = self._send_request(command="health", timeout=PROBE_TIMEOUT)
        except (OSError, ValueError):
            return None
        if response.get("status") != "ok":
            return None
        return response.get("result") or {}

    def shutdown(self) -> bool:
        try:
            response = self._send_request(command="shutdown", timeout=5.0)
        except (OSError, ValueError):
            return False
        return response.get("status") == "ok"

    def _send_request(
        self,
        command: str,
        args: Optional[List[str]] = None,
        client_env: Optional[Dict[str, str]] = None,
        cwd: str = "",
        source_text: str = "",
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Raises:
            OSError: Connection refused, timed out (socket.timeout) or reset
            ValueError: The reply is not valid JSON
        """
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(timeout or self.timeout)

        try:
            sock.connect(str(self.socket_path))
            sock.sendall(
                serialize_request(
                    command=command,
                    args=args,
                    client_env=client_env,
                    cwd=cwd,
                    source_text=source_text,
                )
            )
            # Signal end of request; the daemon reads to EOF
            sock.shutdown(socket.SHUT_WR)

            chunks = []
            while True:
                chunk = sock.recv(65536)
                if not chunk:
                    break
                chunks.append(chunk)

            if not chunks:
                return {"status": "error", "error": "Empty response"}

            return deserialize_response(b"".join(chunks))

        finally:
            sock.close()
