"""Configuration management for formatd.

Two kinds of settings live here:
- DaemonSettings: where the daemon keeps its socket/PID/log files and how it
  behaves (idle timeout, staleness checks). Loaded from
  ~/.config/formatd/config.cfg, falling back to ~/.config/formatd/.env.
- Overrides: per-request formatting options sent by the client as
  FORMATD_* variables. They always win over anything found on disk.
"""

import configparser
from dataclasses import dataclass, fields, replace
import hashlib
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import dotenv_values

from formatd.core.models import LINE_ENDINGS, QUOTE_STYLES, FormatOptions

# Default location for user configuration.
CONFIG_DIR = Path.home() / ".config" / "formatd"
CONFIG_PATH = CONFIG_DIR / "config.cfg"
ENV_PATH = CONFIG_DIR / ".env"

CLIENT_ENV_PREFIX = "FORMATD_"

# Spellings accepted in config files, mapped to FormatOptions fields.
OPTION_ALIASES = {
    "indent_size": "indent_size",
    "tab_width": "indent_size",
    "use_tabs": "use_tabs",
    "line_width": "line_width",
    "print_width": "line_width",
    "max_line_length": "line_width",
    "quote_style": "quote_style",
    "end_of_line": "end_of_line",
    "formatter": "formatter",
}


@dataclass
class DaemonSettings:
    runtime_dir: Path
    socket_path: Path
    pid_path: Path
    log_path: Path
    idle_timeout: float = 3600.0
    check_stale: bool = False
    log_level: str = "INFO"
    boundary: Optional[Path] = None


def load_raw_config(path: Path = CONFIG_PATH, env_path: Path = ENV_PATH) -> Dict[str, str]:
    """
    Load daemon settings from the config file, or the legacy .env file.
    Values are returned with lowercase keys for convenience.
    """
    data: Dict[str, str] = {}

    if path.exists():
        cfg = configparser.ConfigParser()
        cfg.read(path)
        if "DEFAULT" in cfg:
            data.update({k.lower(): v for k, v in cfg["DEFAULT"].items()})
        return data

    if env_path.exists():
        values = dotenv_values(env_path)
        data.update({k.lower(): v for k, v in values.items() if v is not None})

    return data


def _get_bool(raw: Mapping[str, Any], key: str, default: bool = False) -> bool:
    value = raw.get(key, "")
    if isinstance(value, bool):
        return value
    if value is None or str(value).strip() == "":
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def get_runtime_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    """
    Directory holding the daemon socket and PID file.

    Prefers $XDG_RUNTIME_DIR/formatd, falls back to ~/.formatd.

    Raises:
        RuntimeError: If neither HOME nor XDG_RUNTIME_DIR is set
    """
    environ = os.environ if environ is None else environ
    xdg = environ.get("XDG_RUNTIME_DIR")
    home = environ.get("USERPROFILE" if os.name == "nt" else "HOME")

    if xdg:
        xdg_path = Path(xdg)
        return xdg_path if xdg_path.name == "formatd" else xdg_path / "formatd"
    if home:
        return Path(home) / ".formatd"

    raise RuntimeError(
        "couldn't determine the runtime dir, make sure HOME or XDG_RUNTIME_DIR are set"
    )


def verify_runtime_dir(runtime_dir: Path) -> None:
    """Create the runtime dir if needed and make sure we can write to it."""
    try:
        runtime_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise RuntimeError(f"make sure {runtime_dir} is writable: {e}") from e
    if not os.access(runtime_dir, os.W_OK):
        raise RuntimeError(f"make sure {runtime_dir} is writable")


def get_daemon_settings(
    raw: Optional[Dict[str, str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> DaemonSettings:
    """Build DaemonSettings from raw config values plus FORMATD_* environment overrides."""
    raw = load_raw_config() if raw is None else raw
    environ = os.environ if environ is None else environ

    runtime_dir = Path(raw["runtime_dir"]) if raw.get("runtime_dir") else get_runtime_dir(environ)

    timeout_env = environ.get("FORMATD_IDLE_TIMEOUT_S")
    if timeout_env is not None and str(timeout_env).strip() != "":
        idle_timeout = float(timeout_env)
    else:
        idle_timeout = float(raw.get("idle_timeout", 3600.0) or 3600.0)

    check_stale = _get_bool(raw, "check_stale", False)
    if "FORMATD_CHECK_STALE" in environ:
        check_stale = _get_bool(environ, "FORMATD_CHECK_STALE", check_stale)

    log_level = environ.get("FORMATD_LOG_LEVEL") or raw.get("log_level") or "INFO"
    boundary = raw.get("boundary")

    return DaemonSettings(
        runtime_dir=runtime_dir,
        socket_path=runtime_dir / "daemon.sock",
        pid_path=runtime_dir / "daemon.pid",
        log_path=runtime_dir / "daemon.log",
        idle_timeout=idle_timeout,
        check_stale=check_stale,
        log_level=log_level.upper(),
        boundary=Path(boundary).expanduser() if boundary else None,
    )


def coerce_option(name: str, value: Any) -> Any:
    """
    Convert a raw option value (string from INI/env, or JSON/TOML scalar)
    to the type FormatOptions expects.

    Raises:
        ValueError: If the value is out of range or of the wrong kind
    """
    if name in ("indent_size", "line_width"):
        if isinstance(value, bool):
            raise ValueError(f"{name} must be an integer, got {value!r}")
        try:
            number = int(str(value).strip())
        except ValueError:
            raise ValueError(f"{name} must be an integer, got {value!r}") from None
        if number < (0 if name == "indent_size" else 1):
            raise ValueError(f"{name} out of range: {number}")
        return number

    if name == "use_tabs":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in {"1", "true", "yes", "y", "on"}:
            return True
        if text in {"0", "false", "no", "n", "off"}:
            return False
        raise ValueError(f"use_tabs must be a boolean, got {value!r}")

    if name == "quote_style":
        text = str(value).strip().lower()
        if text not in QUOTE_STYLES:
            raise ValueError(f"quote_style must be one of {', '.join(QUOTE_STYLES)}")
        return text

    if name == "end_of_line":
        text = str(value).strip().lower()
        if text not in LINE_ENDINGS:
            raise ValueError(f"end_of_line must be one of {', '.join(LINE_ENDINGS)}")
        return text

    if name == "formatter":
        text = str(value).strip().lower()
        return text or None

    raise ValueError(f"unknown option: {name}")


def options_from_mapping(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Pick recognised option keys out of a config-file mapping and coerce them."""
    options: Dict[str, Any] = {}
    for key, value in raw.items():
        name = OPTION_ALIASES.get(str(key).strip().lower().replace("-", "_"))
        if name is None:
            continue
        options[name] = coerce_option(name, value)
    return options


@dataclass(frozen=True)
class Overrides:
    """Explicit per-request options. None means "not supplied"."""
    indent_size: Optional[int] = None
    use_tabs: Optional[bool] = None
    line_width: Optional[int] = None
    quote_style: Optional[str] = None
    end_of_line: Optional[str] = None
    formatter: Optional[str] = None
    default_config: Optional[str] = None

    @classmethod
    def from_client_env(cls, client_env: Optional[Mapping[str, str]]) -> "Overrides":
        """
        Parse FORMATD_* variables sent by the client.

        Unknown FORMATD_* keys are ignored; keys without the prefix are dropped.

        Raises:
            ValueError: If a recognised variable has an invalid value
        """
        values: Dict[str, Any] = {}
        for key, value in (client_env or {}).items():
            if not key.startswith(CLIENT_ENV_PREFIX) or value is None or value == "":
                continue
            name = key[len(CLIENT_ENV_PREFIX):].lower()
            if name == "default_config":
                values[name] = str(Path(value).expanduser())
            elif name in OPTION_ALIASES.values():
                values[name] = coerce_option(name, value)
        return cls(**values)

    def as_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    def fingerprint(self) -> str:
        """Stable hash of the supplied values, used in cache keys."""
        items = sorted(self.as_dict().items())
        return hashlib.sha1(repr(items).encode("utf-8")).hexdigest()

    def apply(self, options: FormatOptions) -> FormatOptions:
        values = self.as_dict()
        values.pop("default_config", None)
        return replace(options, **values)
