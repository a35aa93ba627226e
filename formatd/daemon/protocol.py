"""JSON-based protocol for daemon IPC.

Simple, human-readable protocol for communication between CLI client and daemon.
One request per connection; the client half-closes its write side after
sending so the daemon can read to EOF (source text may be large).

Request format:
    {
        "command": "format" | "flush_cache" | "debug_info" | "health" | "shutdown",
        "args": [str, ...],        # CLI arguments (first positional = file path)
        "client_env": {str: str},  # FORMATD_* variables from the client
        "cwd": str,                # Client working directory
        "source_text": str         # Text to format (format only)
    }

Response format:
    {
        "status": "ok" | "error",
        "result": str | dict,      # Command result
        "error": str | None,       # Error message if status == "error"
        "kind": str | None         # Failure kind if status == "error"
    }
"""

from dataclasses import asdict
import json
from typing import Any, Dict, List, Optional

from formatd.core.models import CacheInfo, DebugSnapshot, ResolvedFormatter


def serialize_request(
    command: str,
    args: Optional[List[str]] = None,
    client_env: Optional[Dict[str, str]] = None,
    cwd: str = "",
    source_text: str = "",
) -> bytes:
    """
    Serialize request to bytes for socket transmission.

    Returns:
        UTF-8 encoded JSON bytes
    """
    request = {
        "command": command,
        "args": list(args or []),
        "client_env": dict(client_env or {}),
        "cwd": cwd,
        "source_text": source_text,
    }
    return json.dumps(request).encode("utf-8")


def deserialize_request(data: bytes) -> Dict[str, Any]:
    """
    Deserialize request from bytes.

    Raises:
        json.JSONDecodeError: If data is not valid JSON
        ValueError: If the payload is not a JSON object
    """
    request = json.loads(data.decode("utf-8"))
    if not isinstance(request, dict):
        raise ValueError("Request must be a JSON object")
    return request


def serialize_response(
    status: str,
    result: Any = None,
    error: Optional[str] = None,
    kind: Optional[str] = None,
) -> bytes:
    """
    Serialize response to bytes for socket transmission.

    Args:
        status: "ok" or "error"
        result: Formatted text, debug snapshot dict, etc.
        error: Error message if status is "error"
        kind: Failure kind tag if status is "error"
    """
    response = {
        "status": status,
        "result": result,
        "error": error,
        "kind": kind,
    }
    return json.dumps(response).encode("utf-8")


def deserialize_response(data: bytes) -> Dict[str, Any]:
    """
    Deserialize response from bytes.

    Raises:
        json.JSONDecodeError: If data is not valid JSON
    """
    return json.loads(data.decode("utf-8"))


def snapshot_to_dict(snapshot: DebugSnapshot) -> Dict[str, Any]:
    return asdict(snapshot)


def snapshot_from_dict(data: Dict[str, Any]) -> DebugSnapshot:
    """Rebuild a DebugSnapshot from its JSON form (client side)."""
    resolved = data.get("resolved_formatter")
    return DebugSnapshot(
        resolved_formatter=ResolvedFormatter(**resolved) if resolved else None,
        cache_info=[CacheInfo(**info) for info in data.get("cache_info", [])],
    )
