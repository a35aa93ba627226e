"""JavaScript and JSON formatting via jsbeautifier.

jsbeautifier is a best-effort beautifier and will happily reflow broken
code, so input is parsed first (esprima for JavaScript, the json module for
JSON) and rejected before any output is produced.
"""

import json

from formatd.core.models import FormatOptions
from formatd.formatters.base import Formatter, FormatterSyntaxError


def _beautifier_options(beautifier, options: FormatOptions):
    opts = beautifier.default_options()
    opts.indent_size = options.indent_size
    opts.indent_char = " "
    opts.indent_with_tabs = options.use_tabs
    opts.wrap_line_length = options.line_width
    opts.eol = "\n"
    opts.end_with_newline = False
    return opts


class JavaScriptFormatter(Formatter):
    name = "javascript"
    library = "jsbeautifier"
    modules = ("jsbeautifier", "esprima")
    suffixes = (".js", ".mjs", ".cjs")

    def __init__(self):
        import esprima
        import jsbeautifier
        from esprima.error_handler import Error as EsprimaError

        self._esprima = esprima
        self._beautifier = jsbeautifier
        self._parse_error = EsprimaError

    def check_syntax(self, text: str) -> None:
        """
        Parse as an ES module, then as a classic script.

        Raises:
            FormatterSyntaxError: With the module parser's message if both fail
        """
        try:
            self._esprima.parseModule(text)
        except self._parse_error as module_error:
            try:
                self._esprima.parseScript(text)
            except self._parse_error:
                raise FormatterSyntaxError(str(module_error)) from module_error

    def transform(self, text: str, options: FormatOptions) -> str:
        self.check_syntax(text)
        return self._beautifier.beautify(text, _beautifier_options(self._beautifier, options))


class JsonFormatter(Formatter):
    name = "json"
    library = "jsbeautifier"
    modules = ("jsbeautifier",)
    suffixes = (".json",)

    def __init__(self):
        import jsbeautifier

        self._beautifier = jsbeautifier

    def transform(self, text: str, options: FormatOptions) -> str:
        try:
            json.loads(text)
        except json.JSONDecodeError as e:
            raise FormatterSyntaxError(f"Invalid JSON: {e}") from e
        return self._beautifier.beautify(text, _beautifier_options(self._beautifier, options))
