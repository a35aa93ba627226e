#!/usr/bin/env python3
"""
`formatd` console script.

Formatting runs through the daemon unless --no-daemon or FORMATD_NO_DAEMON
is set; the typer app lives in formatd.ui.cli.
"""

from formatd.ui.cli import run as formatd


if __name__ == "__main__":
    formatd()
