"""
Formatting service: the single entry point the daemon transport calls.

Drives ResolutionCache -> FormatExecutor for each request and serves the
two auxiliary operations (cache flush, debug snapshot). Holds no state of
its own between calls; everything long-lived is in the cache.
"""

from dataclasses import replace
import logging
import os
from pathlib import Path
from typing import Mapping, Optional, Sequence, Tuple

from formatd.core.configs import Overrides
from formatd.core.executor import FormatExecutor
from formatd.core.models import (
    CacheKey,
    DebugSnapshot,
    FailureKind,
    Failed,
    FormatRequest,
    FormatResult,
    ResolvedConfig,
    ResolvedFormatter,
)
from formatd.core.resolution_cache import ResolutionCache
from formatd.core.resolver import ConfigResolver, ResolutionError
from formatd.formatters.registry import FormatterRegistry

logger = logging.getLogger(__name__)


def target_from_args(args: Sequence[str], cwd: str) -> Optional[Path]:
    """First positional argument, resolved against the client's cwd."""
    for arg in args:
        if arg and not arg.startswith("-"):
            return Path(cwd or os.getcwd(), arg).expanduser().resolve()
    return None


class FormattingService:
    """Façade over the resolution cache and format executor."""

    def __init__(self, cache: ResolutionCache, executor: FormatExecutor):
        self.cache = cache
        self.executor = executor

    @classmethod
    def create(cls, check_stale: bool = False, boundary: Optional[Path] = None) -> "FormattingService":
        """Wire up a service with its own registry, resolver and cache."""
        registry = FormatterRegistry()
        resolver = ConfigResolver(registry, boundary=boundary)
        cache = ResolutionCache(resolver, check_stale=check_stale)
        return cls(cache, FormatExecutor(registry))

    def _lookup(
        self,
        target: Path,
        client_env: Optional[Mapping[str, str]],
        cwd: str,
    ) -> Tuple[ResolvedConfig, bool]:
        overrides = Overrides.from_client_env(client_env)
        if overrides.default_config:
            # Relative to the client, not the daemon
            default_config = Path(cwd or os.getcwd(), overrides.default_config).resolve()
            overrides = replace(overrides, default_config=str(default_config))
        key = CacheKey(
            directory=str(target.parent),
            suffix=target.suffix.lower(),
            fingerprint=overrides.fingerprint(),
        )
        return self.cache.get_or_resolve(key, overrides, target.name)

    def handle_format(self, request: FormatRequest) -> FormatResult:
        """
        Format request.source_text for the file named in request.args.

        Never raises for expected failures; they come back as Failed.
        """
        target = target_from_args(request.args, request.cwd)
        if target is None:
            return Failed(FailureKind.UNSUPPORTED_INPUT, "No file path given")

        try:
            config, cache_hit = self._lookup(target, request.client_env, request.cwd)
        except ResolutionError as e:
            logger.warning(f"Resolution failed for {target}: {e.message}")
            return Failed(e.kind, e.message)
        except ValueError as e:
            return Failed(FailureKind.MALFORMED_CONFIG, f"Invalid override: {e}")

        logger.debug(f"Formatting {target} (cache {'hit' if cache_hit else 'miss'})")
        return self.executor.format(request.source_text, config, str(target))

    def flush_cache(self) -> str:
        self.cache.flush()
        return "success"

    def get_debug_info(
        self,
        cwd: str,
        args: Sequence[str],
        client_env: Optional[Mapping[str, str]] = None,
    ) -> DebugSnapshot:
        """
        Report the formatter a request for args would use, and cache sizes.

        The cache snapshot is taken before the lookup, so it describes the
        cache as this call found it. Resolution goes through the cache, so
        cache_hit is the real state. Resolution errors propagate.
        """
        cache_info = self.cache.snapshot()

        target = target_from_args(args, cwd)
        resolved = None
        if target is not None:
            config, cache_hit = self._lookup(target, client_env, cwd)
            if config.formatter is not None:
                resolved = ResolvedFormatter(
                    name=config.formatter.name,
                    library=config.formatter.library,
                    version=config.formatter.version,
                    source_path=config.formatter.source_path,
                    cache_hit=cache_hit,
                )

        return DebugSnapshot(resolved_formatter=resolved, cache_info=cache_info)
