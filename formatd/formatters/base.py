"""Abstract formatter interface."""

from abc import ABC, abstractmethod
from typing import Tuple

from formatd.core.models import FormatOptions


class FormatterError(Exception):
    """Raised by a formatter backend when it cannot produce output."""


class FormatterSyntaxError(FormatterError):
    """The input could not be parsed as the formatter's language."""


class FormatterUnavailable(FormatterError):
    """The library backing a formatter is not installed."""


class Formatter(ABC):
    """
    Base class for formatter backends.

    Each backend wraps one third-party library. Subclasses import that
    library in __init__, so a loaded instance is what keeps the module warm
    between requests; the registry holds on to it.

    Class attributes:
        name: Registry name, also accepted as the `formatter` option
        library: Distribution name reported in debug output
        modules: Importable modules the backend needs
        suffixes: File extensions handled when no formatter is named explicitly
    """

    name: str = ""
    library: str = ""
    modules: Tuple[str, ...] = ()
    suffixes: Tuple[str, ...] = ()

    def format(self, text: str, options: FormatOptions) -> str:
        """
        Format text, returning it with normalized line endings.

        Input line endings are folded to LF before the backend sees them;
        output ends with exactly one `options.newline` (empty stays empty).

        Raises:
            FormatterSyntaxError: If the text cannot be parsed
            Exception: Anything the backend raises, unchanged
        """
        source = text.replace("\r\n", "\n").replace("\r", "\n")
        output = self.transform(source, options)
        output = output.replace("\r\n", "\n").rstrip("\n")
        if not output:
            return ""
        return (output + "\n").replace("\n", options.newline)

    @abstractmethod
    def transform(self, text: str, options: FormatOptions) -> str:
        """Apply the backend to LF-normalized text."""
        pass
