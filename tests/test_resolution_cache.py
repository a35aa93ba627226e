"""
Tests for core/resolution_cache.py - memoization, single-flight and flush.
"""

import os
import shutil
import tempfile
import threading
import time
import unittest
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from formatd.core.configs import Overrides
from formatd.core.models import CacheKey, FailureKind, FormatOptions, ResolvedConfig
from formatd.core.resolution_cache import ResolutionCache
from formatd.core.resolver import ConfigResolver, ResolutionError
from formatd.formatters.registry import FormatterRegistry


class CountingResolver:
    """Resolver stand-in that counts calls and can be held mid-resolution."""

    def __init__(self, gate: threading.Event = None, fail_first: bool = False):
        self.calls = 0
        self.gate = gate
        self.started = threading.Event()
        self.fail_first = fail_first
        self._lock = threading.Lock()

    def resolve(self, working_dir, overrides=None, file_name=None):
        with self._lock:
            self.calls += 1
            call = self.calls
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.fail_first and call == 1:
            raise ResolutionError(FailureKind.MALFORMED_CONFIG, "bad config")
        indent = (overrides or Overrides()).indent_size or 2
        return ResolvedConfig(options=FormatOptions(indent_size=indent), sources=(working_dir,))


def make_key(directory="/proj", suffix=".js", overrides=None):
    return CacheKey(directory=directory, suffix=suffix, fingerprint=(overrides or Overrides()).fingerprint())


class TestResolutionCache(unittest.TestCase):
    """Test cases for ResolutionCache."""

    def _cache(self, resolver, **kwargs):
        return ResolutionCache(resolver, loaded_formatters=lambda: 0, **kwargs)

    def test_first_call_misses_then_hits(self):
        resolver = CountingResolver()
        cache = self._cache(resolver)
        key = make_key()

        first, first_hit = cache.get_or_resolve(key)
        results = [cache.get_or_resolve(key) for _ in range(5)]

        self.assertFalse(first_hit)
        for config, hit in results:
            self.assertTrue(hit)
            self.assertEqual(config, first)
        self.assertEqual(resolver.calls, 1)

    def test_distinct_keys_resolve_independently(self):
        resolver = CountingResolver()
        cache = self._cache(resolver)

        overrides = Overrides(indent_size=4)
        plain, _ = cache.get_or_resolve(make_key())
        custom, hit = cache.get_or_resolve(make_key(overrides=overrides), overrides)

        self.assertFalse(hit)
        self.assertEqual(plain.options.indent_size, 2)
        self.assertEqual(custom.options.indent_size, 4)
        self.assertEqual(len(cache), 2)

    def test_concurrent_misses_share_one_resolution(self):
        gate = threading.Event()
        resolver = CountingResolver(gate=gate)
        cache = self._cache(resolver)
        key = make_key()

        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [pool.submit(cache.get_or_resolve, key) for _ in range(8)]
            self.assertTrue(resolver.started.wait(timeout=5))
            time.sleep(0.1)
            gate.set()
            results = [future.result(timeout=5) for future in futures]

        self.assertEqual(resolver.calls, 1)
        configs = {id(config) for config, _ in results}
        self.assertEqual(len(configs), 1)
        self.assertEqual(len(cache), 1)

    def test_failed_resolution_is_not_cached(self):
        resolver = CountingResolver(fail_first=True)
        cache = self._cache(resolver)
        key = make_key()

        with self.assertRaises(ResolutionError):
            cache.get_or_resolve(key)
        self.assertEqual(len(cache), 0)

        config, hit = cache.get_or_resolve(key)
        self.assertFalse(hit)
        self.assertEqual(config.options.indent_size, 2)
        self.assertEqual(resolver.calls, 2)

    def test_concurrent_waiters_see_the_same_error(self):
        gate = threading.Event()
        resolver = CountingResolver(gate=gate, fail_first=True)
        cache = self._cache(resolver)
        key = make_key()

        with ThreadPoolExecutor(max_workers=4) as pool:
            futures = [pool.submit(cache.get_or_resolve, key) for _ in range(4)]
            self.assertTrue(resolver.started.wait(timeout=5))
            time.sleep(0.1)
            gate.set()
            errors = [future.exception(timeout=5) for future in futures]

        # Threads that arrived after the failure start a fresh resolution
        self.assertTrue(any(isinstance(e, ResolutionError) for e in errors))
        self.assertEqual(len({id(e) for e in errors if e is not None}), 1)

    def test_flush_forces_a_miss_for_every_key(self):
        resolver = CountingResolver()
        cache = self._cache(resolver)
        keys = [make_key(directory=f"/proj{i}") for i in range(3)]
        for key in keys:
            cache.get_or_resolve(key)

        cache.flush()

        self.assertEqual(len(cache), 0)
        for key in keys:
            _, hit = cache.get_or_resolve(key)
            self.assertFalse(hit)
        for key in keys:
            _, hit = cache.get_or_resolve(key)
            self.assertTrue(hit)
        self.assertEqual(resolver.calls, 6)

    def test_flush_during_resolution_does_not_store_result(self):
        gate = threading.Event()
        resolver = CountingResolver(gate=gate)
        cache = self._cache(resolver)
        key = make_key()

        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(cache.get_or_resolve, key)
            self.assertTrue(resolver.started.wait(timeout=5))
            cache.flush()
            gate.set()
            config, hit = future.result(timeout=5)

        # The in-flight caller still gets its config...
        self.assertFalse(hit)
        self.assertEqual(config.options.indent_size, 2)
        # ...but nothing from before the flush is visible afterwards
        self.assertEqual(len(cache), 0)
        _, hit = cache.get_or_resolve(key)
        self.assertFalse(hit)

    def test_snapshot_reports_entries_and_formatters(self):
        cache = ResolutionCache(CountingResolver(), loaded_formatters=lambda: 3)

        empty = cache.snapshot()
        self.assertEqual([info.name for info in empty], ["resolved-configs", "formatters"])
        self.assertEqual(empty[0].item_count, 0)

        cache.get_or_resolve(make_key())
        self.assertEqual(cache.snapshot()[0].item_count, 1)
        self.assertEqual(cache.snapshot()[1].item_count, 3)


class TestStaleness(unittest.TestCase):
    """Staleness checks against a real resolver and filesystem."""

    def setUp(self):
        self.root = Path(tempfile.mkdtemp()).resolve()
        (self.root / ".editorconfig").write_text("root = true\n")
        self.rc = self.root / ".formatrc"
        self.rc.write_text("[formatd]\nindent_size = 4\n")
        self.key = make_key(directory=str(self.root))
        self.resolver = ConfigResolver(FormatterRegistry(), boundary=self.root)

    def tearDown(self):
        shutil.rmtree(self.root, ignore_errors=True)

    def _edit_config(self, text):
        self.rc.write_text(text)
        stat = self.rc.stat()
        os.utime(self.rc, (stat.st_atime, stat.st_mtime + 10))

    def test_changed_config_invalidates_entry(self):
        cache = ResolutionCache(self.resolver, check_stale=True)
        config, _ = cache.get_or_resolve(self.key, file_name="a.js")
        self.assertEqual(config.options.indent_size, 4)

        self._edit_config("[formatd]\nindent_size = 8\n")

        config, hit = cache.get_or_resolve(self.key, file_name="a.js")
        self.assertFalse(hit)
        self.assertEqual(config.options.indent_size, 8)

    def test_deleted_config_invalidates_entry(self):
        cache = ResolutionCache(self.resolver, check_stale=True)
        cache.get_or_resolve(self.key, file_name="a.js")

        self.rc.unlink()

        config, hit = cache.get_or_resolve(self.key, file_name="a.js")
        self.assertFalse(hit)
        self.assertEqual(config.options.indent_size, 2)

    def test_without_check_stale_entry_survives_edits(self):
        cache = ResolutionCache(self.resolver)
        cache.get_or_resolve(self.key, file_name="a.js")

        self._edit_config("[formatd]\nindent_size = 8\n")

        config, hit = cache.get_or_resolve(self.key, file_name="a.js")
        self.assertTrue(hit)
        self.assertEqual(config.options.indent_size, 4)


if __name__ == "__main__":
    unittest.main()
