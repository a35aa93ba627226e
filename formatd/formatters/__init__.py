"""Formatter backends for formatd.

Each backend wraps one third-party library behind the Formatter interface:
- javascript / json: jsbeautifier (syntax checked with esprima / json)
- python: black
"""

from formatd.formatters.base import (
    Formatter,
    FormatterError,
    FormatterSyntaxError,
    FormatterUnavailable,
)
from formatd.formatters.registry import FormatterRegistry

__all__ = [
    "Formatter",
    "FormatterError",
    "FormatterSyntaxError",
    "FormatterUnavailable",
    "FormatterRegistry",
]
