"""Config discovery: which formatting options apply to a directory.

Walks from the working directory up to the filesystem root (or a configured
boundary) and builds a ResolvedConfig from:
- the nearest config file (.formatrc, .formatrc.json, .formatrc.toml, or a
  "formatd" section in package.json / pyproject.toml)
- every .formatignore on the way up
- .editorconfig properties for the target file

Precedence: defaults < editorconfig < config file < client overrides.
Nothing is cached here; that is ResolutionCache's job.
"""

import configparser
import json
import logging
import os
from pathlib import Path
import tomllib
from typing import Any, Dict, Iterator, List, Optional, Tuple

from editorconfig import EditorConfigError, get_properties

from formatd.core.configs import Overrides, coerce_option, options_from_mapping
from formatd.core.models import (
    FailureKind,
    FormatOptions,
    FormatterInfo,
    IgnoreRules,
    ResolvedConfig,
)
from formatd.formatters.registry import FormatterRegistry

logger = logging.getLogger(__name__)

CONFIG_FILES = (".formatrc", ".formatrc.json", ".formatrc.toml", "package.json", "pyproject.toml")
IGNORE_FILE = ".formatignore"
EDITORCONFIG_FILE = ".editorconfig"
SECTION = "formatd"


class ResolutionError(Exception):
    """Config resolution failed; the request is aborted before formatting."""

    def __init__(self, kind: FailureKind, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.path = path


def _malformed(path: Path, reason: Any) -> ResolutionError:
    return ResolutionError(
        FailureKind.MALFORMED_CONFIG,
        f"Invalid configuration file {path}: {reason}",
        str(path),
    )


class ConfigResolver:
    """Resolves formatter configuration for a working directory."""

    def __init__(self, registry: FormatterRegistry, boundary: Optional[Path] = None):
        """
        Args:
            registry: Used to pick a formatter and describe its installed version
            boundary: Stop walking upward after this directory (default: filesystem root)
        """
        self.registry = registry
        self.boundary = Path(boundary).resolve() if boundary else None

    def resolve(
        self,
        working_dir: str,
        overrides: Optional[Overrides] = None,
        file_name: Optional[str] = None,
    ) -> ResolvedConfig:
        """
        Resolve the configuration for files in `working_dir`.

        Args:
            working_dir: Directory to resolve from (must exist and be readable)
            overrides: Explicit options; always take precedence
            file_name: Target file name, used for formatter selection and editorconfig

        Returns:
            ResolvedConfig

        Raises:
            ResolutionError: UNREADABLE_DIRECTORY or MALFORMED_CONFIG
        """
        overrides = overrides or Overrides()
        directory = self._check_directory(working_dir)

        sources: List[str] = []
        ignore: List[IgnoreRules] = []
        file_settings: Optional[Dict[str, Any]] = None

        for current in self._walk(directory):
            if file_settings is None:
                found = self._find_config(current)
                if found is not None:
                    config_path, file_settings = found
                    sources.append(str(config_path))

            ignore_path = current / IGNORE_FILE
            if ignore_path.is_file():
                ignore.append(self._load_ignore(ignore_path))
                sources.append(str(ignore_path))

            editorconfig_path = current / EDITORCONFIG_FILE
            if editorconfig_path.is_file():
                sources.append(str(editorconfig_path))

        if file_settings is None and overrides.default_config:
            default_path = Path(overrides.default_config)
            if default_path.is_file():
                file_settings = self._load_config_file(default_path, required=True)
                sources.append(str(default_path))
            else:
                logger.warning(f"Default config {default_path} not found, using built-in defaults")

        settings: Dict[str, Any] = {}
        settings.update(self._editorconfig_settings(directory, file_name))
        settings.update(file_settings or {})
        options = overrides.apply(FormatOptions(**settings))

        config = ResolvedConfig(
            options=options,
            formatter=self._select_formatter(options, file_name),
            ignore=tuple(ignore),
            sources=tuple(sources),
        )
        logger.debug(f"Resolved {directory}: {config}")
        return config

    def _check_directory(self, working_dir: str) -> Path:
        directory = Path(working_dir)
        try:
            directory.stat()
        except OSError as e:
            raise ResolutionError(
                FailureKind.UNREADABLE_DIRECTORY,
                f"Cannot read directory {working_dir}: {e}",
                str(working_dir),
            ) from e

        if not directory.is_dir() or not os.access(directory, os.R_OK | os.X_OK):
            raise ResolutionError(
                FailureKind.UNREADABLE_DIRECTORY,
                f"Cannot read directory {working_dir}",
                str(working_dir),
            )
        return directory.resolve()

    def _walk(self, directory: Path) -> Iterator[Path]:
        """Yield directory and its parents, stopping at the boundary if it is an ancestor."""
        for current in (directory, *directory.parents):
            yield current
            if self.boundary is not None and current == self.boundary:
                return

    def _find_config(self, directory: Path) -> Optional[Tuple[Path, Dict[str, Any]]]:
        for name in CONFIG_FILES:
            path = directory / name
            if not path.is_file():
                continue
            settings = self._load_config_file(path)
            if settings is not None:
                return path, settings
        return None

    def _load_config_file(self, path: Path, required: bool = False) -> Optional[Dict[str, Any]]:
        """
        Parse one config file into coerced option values.

        Returns None when a package manifest has no formatd section (and
        `required` is False), so the search continues.

        Raises:
            ResolutionError: MALFORMED_CONFIG on any parse or value error
        """
        try:
            if path.name == "package.json" or path.suffix == ".json":
                raw = self._read_json(path)
            elif path.name == "pyproject.toml" or path.suffix == ".toml":
                raw = self._read_toml(path)
            else:
                raw = self._read_ini(path)
        except (OSError, UnicodeDecodeError, ValueError, configparser.Error, tomllib.TOMLDecodeError) as e:
            raise _malformed(path, e) from e

        if raw is None:
            return {} if required else None
        if not isinstance(raw, dict):
            raise _malformed(path, "expected a table of options")

        try:
            return options_from_mapping(raw)
        except ValueError as e:
            raise _malformed(path, e) from e

    def _read_json(self, path: Path) -> Any:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if path.name != "package.json":
            return data
        if not isinstance(data, dict):
            raise ValueError("package.json must contain an object")
        return data.get(SECTION)

    def _read_toml(self, path: Path) -> Any:
        with open(path, "rb") as f:
            data = tomllib.load(f)
        if path.name != "pyproject.toml":
            return data
        tool = data.get("tool", {})
        if not isinstance(tool, dict):
            raise ValueError("[tool] must be a table")
        return tool.get(SECTION)

    def _read_ini(self, path: Path) -> Dict[str, str]:
        cfg = configparser.ConfigParser()
        with open(path, "r", encoding="utf-8") as f:
            cfg.read_file(f)
        if cfg.has_section(SECTION):
            return dict(cfg[SECTION])
        return dict(cfg.defaults())

    def _load_ignore(self, path: Path) -> IgnoreRules:
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError) as e:
            raise _malformed(path, e) from e

        patterns = tuple(
            line.rstrip() for line in lines if line.strip() and not line.lstrip().startswith("#")
        )
        return IgnoreRules(base_dir=str(path.parent), patterns=patterns)

    def _editorconfig_settings(self, directory: Path, file_name: Optional[str]) -> Dict[str, Any]:
        """
        Map .editorconfig properties onto option names.

        Unrecognised or out-of-range values are skipped, matching how editors
        treat them.
        """
        target = directory / (file_name or "_")
        try:
            props = get_properties(str(target))
        except EditorConfigError as e:
            raise ResolutionError(
                FailureKind.MALFORMED_CONFIG,
                f"Invalid .editorconfig for {target}: {e}",
            ) from e

        settings: Dict[str, Any] = {}
        indent_style = props.get("indent_style")
        if indent_style in ("tab", "space"):
            settings["use_tabs"] = indent_style == "tab"

        indent_size = props.get("indent_size")
        if indent_size == "tab":
            indent_size = props.get("tab_width")
        candidates = {
            "indent_size": indent_size,
            "line_width": props.get("max_line_length"),
            "end_of_line": props.get("end_of_line"),
        }
        for name, value in candidates.items():
            if value is None:
                continue
            try:
                settings[name] = coerce_option(name, value)
            except ValueError:
                logger.debug(f"Ignoring editorconfig {name}={value!r} for {target}")
        return settings

    def _select_formatter(self, options: FormatOptions, file_name: Optional[str]) -> Optional[FormatterInfo]:
        name = options.formatter
        if name is None and file_name:
            name = self.registry.name_for_suffix(Path(file_name).suffix)
        if name is None:
            return None
        return self.registry.info(name)
