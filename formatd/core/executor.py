"""Applies a formatter backend to source text under a ResolvedConfig."""

from functools import lru_cache
import logging
from pathlib import Path
from typing import Optional, Tuple

import pathspec

from formatd.core.models import FailureKind, Failed, Formatted, FormatResult, ResolvedConfig
from formatd.formatters.base import FormatterSyntaxError, FormatterUnavailable
from formatd.formatters.registry import FormatterRegistry

logger = logging.getLogger(__name__)


@lru_cache(maxsize=256)
def _compile_ignore(patterns: Tuple[str, ...]) -> pathspec.GitIgnoreSpec:
    return pathspec.GitIgnoreSpec.from_lines(patterns)


class FormatExecutor:
    """
    Runs the formatter a ResolvedConfig names.

    Never reads or writes the resolution cache. Output is all-or-nothing:
    a Formatted result always carries the complete formatted text, any
    failure carries no text at all.
    """

    def __init__(self, registry: FormatterRegistry):
        self.registry = registry

    def is_ignored(self, file_path: str, config: ResolvedConfig) -> bool:
        """True if any .formatignore on the resolution path matches the file."""
        path = Path(file_path)
        for rules in config.ignore:
            try:
                relative = path.relative_to(rules.base_dir)
            except ValueError:
                continue
            if _compile_ignore(rules.patterns).match_file(relative.as_posix()):
                return True
        return False

    def format(
        self,
        source_text: str,
        config: ResolvedConfig,
        file_path: Optional[str] = None,
    ) -> FormatResult:
        """
        Format source_text with the configured backend.

        Ignored files come back unchanged.

        Returns:
            Formatted(text), or Failed with UNSUPPORTED_INPUT, SYNTAX_ERROR
            or INTERNAL_ERROR
        """
        target = file_path or "<stdin>"

        if file_path and self.is_ignored(file_path, config):
            logger.debug(f"{file_path} is ignored, returning input unchanged")
            return Formatted(source_text)

        if config.formatter is None:
            return Failed(FailureKind.UNSUPPORTED_INPUT, f"No formatter available for {target}")

        try:
            formatter = self.registry.load(config.formatter.name)
        except FormatterUnavailable as e:
            return Failed(FailureKind.UNSUPPORTED_INPUT, str(e))

        try:
            text = formatter.format(source_text, config.options)
        except FormatterSyntaxError as e:
            return Failed(FailureKind.SYNTAX_ERROR, f"{target}: {e}")
        except Exception as e:
            logger.exception(f"{config.formatter.name} failed on {target}")
            return Failed(FailureKind.INTERNAL_ERROR, str(e))

        return Formatted(text)
