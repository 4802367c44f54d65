"""Context-aware output encoders for HTML and log sinks.

Each context has its own set of reserved characters. Every other character
maps to itself, so the encoders are total and never truncate.
"""

from dataclasses import dataclass
from enum import Enum


class Context(Enum):
    """Destination grammar of an encoded string."""

    HTML_TEXT = "html_text"
    HTML_ATTRIBUTE = "html_attribute"
    LOG_LINE = "log_line"

    @classmethod
    def from_name(cls, name: str) -> "Context":
        """Look up a context by value (e.g. "log_line"), case-insensitive.

        Raises:
            ValueError: If no context has that name.
        """
        normalized = name.strip().lower().replace("-", "_")
        for context in cls:
            if context.value == normalized:
                return context
        valid = ", ".join(c.value for c in cls)
        raise ValueError(f"Unknown context {name!r}. Valid values: {valid}")


@dataclass(frozen=True)
class EncodedOutput:
    """A string that is safe to hand directly to the sink of its context."""

    text: str
    context: Context

    def __str__(self) -> str:
        return self.text

    def __len__(self) -> int:
        return len(self.text)


# Same entity forms as the OWASP Java Encoder, so output matches across stacks.
_HTML_TEXT_TABLE = str.maketrans({
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&#34;",
    "'": "&#39;",
})

_HTML_ATTRIBUTE_TABLE = str.maketrans({
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&#34;",
    "'": "&#39;",
    "`": "&#96;",
    "=": "&#61;",
})

_LOG_LINE_TABLE = str.maketrans({
    "\r": "\\r",
    "\n": "\\n",
})

_TABLES = {
    Context.HTML_TEXT: _HTML_TEXT_TABLE,
    Context.HTML_ATTRIBUTE: _HTML_ATTRIBUTE_TABLE,
    Context.LOG_LINE: _LOG_LINE_TABLE,
}


def encode(text: str, context: Context) -> EncodedOutput:
    """Encode text for the given output context.

    Not idempotent: encoding an already encoded string escapes it again.

    Args:
        text: Raw, untrusted text.
        context: Target grammar.

    Returns:
        EncodedOutput tagged with the context.
    """
    if not isinstance(text, str):
        raise TypeError(f"encode() expects str, got {type(text).__name__}")
    return EncodedOutput(text=text.translate(_TABLES[context]), context=context)


def for_html(text: str) -> str:
    """Encode text for an HTML text node."""
    return encode(text, Context.HTML_TEXT).text


def for_html_attribute(text: str) -> str:
    """Encode text for a quoted HTML attribute value."""
    return encode(text, Context.HTML_ATTRIBUTE).text


def for_log(value: object) -> str:
    """Neutralize CR/LF so the value cannot forge an extra log record."""
    return encode(str(value), Context.LOG_LINE).text
