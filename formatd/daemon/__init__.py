"""Daemon architecture for formatd.

This module provides a long-running background process that keeps formatter
libraries imported and project configuration resolved between CLI runs.

Architecture:
- FormattingService (formatd.core.service): cache + formatter, one per daemon
- DaemonServer: Async Unix socket server handling client requests
- DaemonClient: Lightweight client that connects to daemon via socket
"""

from formatd.daemon.client import DaemonClient, collect_client_env
from formatd.daemon.protocol import (
    serialize_request,
    deserialize_request,
    serialize_response,
    deserialize_response,
)

__all__ = [
    "DaemonClient",
    "collect_client_env",
    "serialize_request",
    "deserialize_request",
    "serialize_response",
    "deserialize_response",
]
