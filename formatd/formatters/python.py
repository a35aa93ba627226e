"""Python formatting via black."""

from formatd.core.models import FormatOptions
from formatd.formatters.base import Formatter, FormatterSyntaxError


class PythonFormatter(Formatter):
    """
    black owns indentation (always four spaces), so indent_size and
    use_tabs are ignored. quote_style="single" turns off black's string
    normalization rather than forcing single quotes.
    """

    name = "python"
    library = "black"
    modules = ("black",)
    suffixes = (".py", ".pyi")

    def __init__(self):
        import black

        self._black = black

    def transform(self, text: str, options: FormatOptions) -> str:
        mode = self._black.Mode(
            line_length=options.line_width,
            string_normalization=options.quote_style == "double",
        )
        try:
            return self._black.format_str(text, mode=mode)
        except self._black.InvalidInput as e:
            raise FormatterSyntaxError(str(e)) from e
