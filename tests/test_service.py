"""
Tests for core/service.py - format requests end to end through the cache.
"""

import shutil
import tempfile
import unittest
from pathlib import Path

from formatd.core.models import FailureKind, Failed, FormatRequest, Formatted
from formatd.core.resolver import ResolutionError
from formatd.core.service import FormattingService, target_from_args


class TestFormattingService(unittest.TestCase):
    """Test cases for FormattingService."""

    def setUp(self):
        self.root = Path(tempfile.mkdtemp()).resolve()
        (self.root / ".editorconfig").write_text("root = true\n")
        self.proj = self.root / "proj"
        self.proj.mkdir()
        (self.proj / ".formatrc").write_text("[formatd]\nindent_size = 2\n")
        self.service = FormattingService.create(boundary=self.root)

    def tearDown(self):
        shutil.rmtree(self.root, ignore_errors=True)

    def _request(self, path, text, client_env=None, cwd=None):
        return FormatRequest(
            args=[str(path)],
            client_env=client_env or {},
            source_text=text,
            cwd=str(cwd or self.root),
        )

    def test_format_then_debug_info_reports_hit(self):
        result = self.service.handle_format(
            self._request(self.proj / "a.js", "function f(){return 1}")
        )

        self.assertEqual(result, Formatted("function f() {\n  return 1\n}\n"))

        snapshot = self.service.get_debug_info(str(self.proj), ["a.js"])
        self.assertEqual(snapshot.resolved_formatter.name, "javascript")
        self.assertEqual(snapshot.resolved_formatter.library, "jsbeautifier")
        self.assertTrue(snapshot.resolved_formatter.cache_hit)
        counts = {info.name: info.item_count for info in snapshot.cache_info}
        self.assertEqual(counts, {"resolved-configs": 1, "formatters": 1})

    def test_debug_info_on_empty_cache(self):
        snapshot = self.service.get_debug_info(str(self.proj), [])

        self.assertIsNone(snapshot.resolved_formatter)
        self.assertEqual([info.item_count for info in snapshot.cache_info], [0, 0])

    def test_debug_info_first_lookup_is_a_miss(self):
        snapshot = self.service.get_debug_info(str(self.proj), ["a.js"])

        self.assertFalse(snapshot.resolved_formatter.cache_hit)
        # Snapshot describes the cache before this call's lookup
        self.assertEqual(snapshot.cache_info[0].item_count, 0)

    def test_relative_path_resolved_against_client_cwd(self):
        result = self.service.handle_format(
            self._request("a.js", "if(a){b()}", cwd=self.proj)
        )

        self.assertEqual(result, Formatted("if (a) {\n  b()\n}\n"))

    def test_malformed_config_is_reported_and_not_cached(self):
        bad = self.root / "bad"
        bad.mkdir()
        (bad / ".formatrc").write_text("not ini at all")

        result = self.service.handle_format(self._request(bad / "a.js", "a()"))

        self.assertIsInstance(result, Failed)
        self.assertEqual(result.kind, FailureKind.MALFORMED_CONFIG)
        self.assertEqual(len(self.service.cache), 0)

    def test_bad_directory_does_not_affect_good_one(self):
        bad = self.root / "bad"
        bad.mkdir()
        (bad / ".formatrc").write_text("[formatd]\nline_width = -3\n")

        failed = self.service.handle_format(self._request(bad / "a.js", "a()"))
        ok = self.service.handle_format(self._request(self.proj / "a.js", "a()"))

        self.assertEqual(failed.kind, FailureKind.MALFORMED_CONFIG)
        self.assertEqual(ok, Formatted("a()\n"))

    def test_missing_directory(self):
        result = self.service.handle_format(self._request(self.root / "nope" / "a.js", "a()"))

        self.assertEqual(result.kind, FailureKind.UNREADABLE_DIRECTORY)

    def test_client_override_wins(self):
        env = {"FORMATD_INDENT_SIZE": "4"}

        result = self.service.handle_format(
            self._request(self.proj / "a.js", "if(a){b()}", client_env=env)
        )
        plain = self.service.handle_format(self._request(self.proj / "a.js", "if(a){b()}"))

        self.assertEqual(result, Formatted("if (a) {\n    b()\n}\n"))
        self.assertEqual(plain, Formatted("if (a) {\n  b()\n}\n"))
        self.assertEqual(len(self.service.cache), 2)

    def test_relative_default_config_uses_client_cwd(self):
        bare = self.root / "bare"
        bare.mkdir()
        other = self.root / "other"
        other.mkdir()
        (bare / "defaults.ini").write_text("[formatd]\nindent_size = 4\n")
        (other / "defaults.ini").write_text("[formatd]\nindent_size = 3\n")
        env = {"FORMATD_DEFAULT_CONFIG": "defaults.ini"}

        from_bare = self.service.handle_format(
            self._request(bare / "a.js", "if(a){b()}", client_env=env, cwd=bare)
        )
        from_other = self.service.handle_format(
            self._request(bare / "a.js", "if(a){b()}", client_env=env, cwd=other)
        )

        self.assertEqual(from_bare, Formatted("if (a) {\n    b()\n}\n"))
        self.assertEqual(from_other, Formatted("if (a) {\n   b()\n}\n"))
        self.assertEqual(len(self.service.cache), 2)

    def test_invalid_override(self):
        result = self.service.handle_format(
            self._request(self.proj / "a.js", "a()", client_env={"FORMATD_INDENT_SIZE": "lots"})
        )

        self.assertEqual(result.kind, FailureKind.MALFORMED_CONFIG)
        self.assertIn("Invalid override", result.message)

    def test_no_path_given(self):
        request = FormatRequest(args=["--stdin"], client_env={}, source_text="a()", cwd=str(self.root))

        result = self.service.handle_format(request)

        self.assertEqual(result.kind, FailureKind.UNSUPPORTED_INPUT)

    def test_unknown_file_type(self):
        result = self.service.handle_format(self._request(self.proj / "a.rb", "puts 1"))

        self.assertEqual(result.kind, FailureKind.UNSUPPORTED_INPUT)

    def test_syntax_error(self):
        result = self.service.handle_format(self._request(self.proj / "a.js", "function f( {"))

        self.assertEqual(result.kind, FailureKind.SYNTAX_ERROR)

    def test_flush_cache(self):
        self.service.handle_format(self._request(self.proj / "a.js", "a()"))

        self.assertEqual(self.service.flush_cache(), "success")
        self.assertEqual(len(self.service.cache), 0)

        snapshot = self.service.get_debug_info(str(self.proj), ["a.js"])
        self.assertFalse(snapshot.resolved_formatter.cache_hit)

    def test_config_edit_visible_after_flush(self):
        self.service.handle_format(self._request(self.proj / "a.js", "a()"))
        (self.proj / ".formatrc").write_text("[formatd]\nindent_size = 4\n")

        stale = self.service.handle_format(self._request(self.proj / "a.js", "if(a){b()}"))
        self.service.flush_cache()
        fresh = self.service.handle_format(self._request(self.proj / "a.js", "if(a){b()}"))

        self.assertEqual(stale, Formatted("if (a) {\n  b()\n}\n"))
        self.assertEqual(fresh, Formatted("if (a) {\n    b()\n}\n"))

    def test_debug_info_propagates_resolution_errors(self):
        bad = self.root / "bad"
        bad.mkdir()
        (bad / ".formatrc").write_text("not ini at all")

        with self.assertRaises(ResolutionError):
            self.service.get_debug_info(str(bad), ["a.js"])


class TestTargetFromArgs(unittest.TestCase):
    def test_skips_flags(self):
        self.assertEqual(target_from_args(["--x", "a.js"], "/proj"), Path("/proj/a.js"))

    def test_absolute_path_ignores_cwd(self):
        self.assertEqual(target_from_args(["/elsewhere/b.js"], "/proj"), Path("/elsewhere/b.js"))

    def test_none_without_positional(self):
        self.assertIsNone(target_from_args(["--flag"], "/proj"))


if __name__ == "__main__":
    unittest.main()
