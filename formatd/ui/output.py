"""
Terminal rendering for CLI output.
"""

from typing import List

from formatd.core.models import DebugSnapshot


def render_debug_info(snapshot: DebugSnapshot, version: str) -> str:
    """
    Render a debug snapshot the way `formatd --debug-info` prints it.

    Example:
        formatd 0.1.0
        jsbeautifier version: 1.15.1
        Loaded from: /venv/lib/python3.12/site-packages/jsbeautifier/__init__.py
        Cache: hit

        Cache information:
        - "resolved-configs" contains 1 items
    """
    lines: List[str] = [f"formatd {version}"]

    resolved = snapshot.resolved_formatter
    if resolved is not None:
        lines.append(f"{resolved.library} version: {resolved.version}")
        lines.append(f"Loaded from: {resolved.source_path}")
        lines.append(f"Cache: {'hit' if resolved.cache_hit else 'miss'}")
        lines.append("")

    lines.append("Cache information:")
    for info in snapshot.cache_info:
        lines.append(f'- "{info.name}" contains {info.item_count} items')

    return "\n".join(lines)
