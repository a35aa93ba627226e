"""Process-wide cache of resolved configurations.

This is the state that makes the daemon worth running: a project's config
is walked for and parsed once, then reused by every later request for the
same key until flush() (or, with check_stale, until a consulted file changes).

Thread safety: the daemon formats on a thread pool, so every access to the
entry map goes through one lock. Misses are single-flight: the first caller
for a key runs the resolver outside the lock while later callers wait on the
same Future.
"""

from concurrent.futures import Future
from dataclasses import dataclass
import logging
import os
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from formatd.core.configs import Overrides
from formatd.core.models import CacheInfo, CacheKey, ResolvedConfig
from formatd.core.resolver import ConfigResolver

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Cached resolution with the mtimes of the files it was built from."""
    key: CacheKey
    config: ResolvedConfig
    created_at: float
    mtimes: Dict[str, Optional[float]]


def _mtime(path: str) -> Optional[float]:
    try:
        return os.stat(path).st_mtime
    except OSError:
        return None


class ResolutionCache:
    """
    Memoizes ConfigResolver output by CacheKey.

    Holds at most one entry per key. Failed resolutions are never stored.
    """

    def __init__(
        self,
        resolver: ConfigResolver,
        check_stale: bool = False,
        loaded_formatters: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            resolver: Called on a miss
            check_stale: Re-stat consulted files before serving a hit
            loaded_formatters: Reports the number of warm formatter backends for snapshot()
        """
        self.resolver = resolver
        self.check_stale = check_stale
        self._loaded_formatters = loaded_formatters or resolver.registry.loaded_count

        self._lock = threading.Lock()
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._in_flight: Dict[CacheKey, Future] = {}
        self._generation = 0

    def get_or_resolve(
        self,
        key: CacheKey,
        overrides: Optional[Overrides] = None,
        file_name: Optional[str] = None,
    ) -> Tuple[ResolvedConfig, bool]:
        """
        Return (config, cache_hit) for key, resolving on a miss.

        Concurrent misses for the same key share one resolver call; all of
        them get its result (or its exception).

        Raises:
            ResolutionError: If the resolver fails for this key
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self.check_stale and self._is_stale(entry):
                logger.info(f"Config sources changed for {key.directory}, dropping entry")
                del self._entries[key]
                entry = None

            if entry is not None:
                return entry.config, True

            future = self._in_flight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[key] = future
                generation = self._generation

        if not owner:
            return future.result(), False

        logger.debug(f"Cache miss for {key}")
        try:
            config = self.resolver.resolve(key.directory, overrides, file_name)
        except BaseException as e:
            with self._lock:
                if self._in_flight.get(key) is future:
                    del self._in_flight[key]
            future.set_exception(e)
            raise

        entry = CacheEntry(
            key=key,
            config=config,
            created_at=time.time(),
            mtimes={path: _mtime(path) for path in config.sources},
        )
        with self._lock:
            if self._in_flight.get(key) is future:
                del self._in_flight[key]
            # A flush during resolution means this result predates it; hand
            # it to the waiters but don't store it.
            if generation == self._generation:
                self._entries[key] = entry
        future.set_result(config)
        return config, False

    def _is_stale(self, entry: CacheEntry) -> bool:
        return any(_mtime(path) != mtime for path, mtime in entry.mtimes.items())

    def flush(self) -> None:
        """Discard every entry atomically. In-flight resolutions are not stored."""
        with self._lock:
            count = len(self._entries)
            self._entries = {}
            self._in_flight = {}
            self._generation += 1
        logger.info(f"Flushed resolution cache ({count} entries)")

    def snapshot(self) -> List[CacheInfo]:
        with self._lock:
            entries = len(self._entries)
        return [
            CacheInfo(name="resolved-configs", item_count=entries),
            CacheInfo(name="formatters", item_count=self._loaded_formatters()),
        ]

    def keys(self) -> List[CacheKey]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
