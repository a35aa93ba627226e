"""Value types shared by the formatting service.

Everything here is immutable once built: a ResolvedConfig is replaced
wholesale on cache invalidation, never patched in place.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union


QUOTE_STYLES = ("double", "single")
LINE_ENDINGS = {"lf": "\n", "crlf": "\r\n", "cr": "\r"}


class FailureKind(str, Enum):
    """Tag carried by every Failed result."""
    MALFORMED_CONFIG = "MalformedConfig"
    UNREADABLE_DIRECTORY = "UnreadableDirectory"
    SYNTAX_ERROR = "SyntaxError"
    UNSUPPORTED_INPUT = "UnsupportedInput"
    INTERNAL_ERROR = "InternalError"


@dataclass(frozen=True)
class FormatOptions:
    indent_size: int = 2
    use_tabs: bool = False
    line_width: int = 80
    quote_style: str = "double"
    end_of_line: str = "lf"
    formatter: Optional[str] = None

    @property
    def newline(self) -> str:
        return LINE_ENDINGS[self.end_of_line]


@dataclass(frozen=True)
class FormatterInfo:
    """Identity of the formatter backend chosen for a file type."""
    name: str
    library: str
    version: str
    source_path: str


@dataclass(frozen=True)
class IgnoreRules:
    """Gitignore-style patterns, relative to the directory holding the ignore file."""
    base_dir: str
    patterns: Tuple[str, ...]


@dataclass(frozen=True)
class ResolvedConfig:
    options: FormatOptions = field(default_factory=FormatOptions)
    formatter: Optional[FormatterInfo] = None
    ignore: Tuple[IgnoreRules, ...] = ()
    sources: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CacheKey:
    """Canonical directory + file type + override fingerprint."""
    directory: str
    suffix: str
    fingerprint: str


@dataclass
class FormatRequest:
    args: List[str]
    client_env: Dict[str, str] = field(default_factory=dict)
    source_text: str = ""
    cwd: str = ""


@dataclass(frozen=True)
class Formatted:
    text: str


@dataclass(frozen=True)
class Failed:
    kind: FailureKind
    message: str


FormatResult = Union[Formatted, Failed]


@dataclass(frozen=True)
class CacheInfo:
    name: str
    item_count: int


@dataclass(frozen=True)
class ResolvedFormatter:
    name: str
    library: str
    version: str
    source_path: str
    cache_hit: bool


@dataclass(frozen=True)
class DebugSnapshot:
    resolved_formatter: Optional[ResolvedFormatter]
    cache_info: List[CacheInfo]
