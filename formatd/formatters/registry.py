"""Formatter registry.

Maps file suffixes and formatter names to backends, reports which installed
library a backend would use, and keeps loaded backends alive for the
lifetime of the daemon.

Looking a formatter up (`info`) never imports its library; only `load`
does, and only once per backend.
"""

import importlib.metadata
import importlib.util
import logging
import threading
from typing import Dict, Iterable, List, Optional, Type

from formatd.core.models import FormatterInfo
from formatd.formatters.base import Formatter, FormatterUnavailable
from formatd.formatters.javascript import JavaScriptFormatter, JsonFormatter
from formatd.formatters.python import PythonFormatter

logger = logging.getLogger(__name__)

DEFAULT_FORMATTERS = (JavaScriptFormatter, JsonFormatter, PythonFormatter)


class FormatterRegistry:
    """Thread-safe registry of formatter backends."""

    def __init__(self, formatters: Iterable[Type[Formatter]] = DEFAULT_FORMATTERS):
        self._classes: Dict[str, Type[Formatter]] = {}
        self._by_suffix: Dict[str, str] = {}
        for formatter_cls in formatters:
            self.register(formatter_cls)

        self._loaded: Dict[str, Formatter] = {}
        self._lock = threading.Lock()

    def register(self, formatter_cls: Type[Formatter]) -> None:
        self._classes[formatter_cls.name] = formatter_cls
        for suffix in formatter_cls.suffixes:
            self._by_suffix[suffix.lower()] = formatter_cls.name

    def names(self) -> List[str]:
        return sorted(self._classes)

    def name_for_suffix(self, suffix: str) -> Optional[str]:
        return self._by_suffix.get(suffix.lower())

    def info(self, name: str) -> Optional[FormatterInfo]:
        """
        Describe the installed library behind a formatter without importing it.

        Returns None if the name is unknown or a required module is missing.
        """
        formatter_cls = self._classes.get(name)
        if formatter_cls is None:
            return None

        origin = None
        for module in formatter_cls.modules:
            spec = importlib.util.find_spec(module)
            if spec is None:
                return None
            if origin is None:
                origin = spec.origin or next(iter(spec.submodule_search_locations or []), "")

        try:
            version = importlib.metadata.version(formatter_cls.library)
        except importlib.metadata.PackageNotFoundError:
            version = "unknown"

        return FormatterInfo(
            name=formatter_cls.name,
            library=formatter_cls.library,
            version=version,
            source_path=origin or "",
        )

    def load(self, name: str) -> Formatter:
        """
        Return the loaded backend for `name`, importing its library on first use.

        Raises:
            FormatterUnavailable: If the name is unknown or the library cannot be imported
        """
        with self._lock:
            formatter = self._loaded.get(name)
            if formatter is not None:
                return formatter

            formatter_cls = self._classes.get(name)
            if formatter_cls is None:
                supported = ", ".join(self.names())
                raise FormatterUnavailable(f"Unsupported formatter '{name}'. Supported: {supported}.")

            try:
                formatter = formatter_cls()
            except ImportError as e:
                raise FormatterUnavailable(f"Formatter '{name}' is not installed: {e}") from e

            logger.info(f"Loaded formatter '{name}' ({formatter_cls.library})")
            self._loaded[name] = formatter
            return formatter

    def loaded_count(self) -> int:
        with self._lock:
            return len(self._loaded)

    def clear(self) -> None:
        """Drop loaded backends (useful for testing)."""
        with self._lock:
            self._loaded.clear()
