"""Log injection defense for stdlib logging.

A logging.Formatter that applies the log-line codec to the fully rendered
record, so message text, arguments and exception tracebacks all end up on
one physical line. Nothing is truncated.
"""

import logging
import sys

from .codec import for_log

DEFAULT_FORMAT = "%(levelname)s: %(name)s: %(message)s"


class NeutralizingFormatter(logging.Formatter):
    """Formatter whose output never contains a raw CR or LF.

    Pass `inner` to wrap an existing formatter instead of formatting with
    this instance's own fmt/datefmt.
    """

    def __init__(self, fmt: str | None = None, datefmt: str | None = None,
                 style: str = "%", *, inner: logging.Formatter | None = None) -> None:
        super().__init__(fmt, datefmt, style)
        self.inner = inner

    def format(self, record: logging.LogRecord) -> str:
        if self.inner is not None:
            rendered = self.inner.format(record)
        else:
            rendered = super().format(record)
        return for_log(rendered)


def install(target: logging.Logger | logging.Handler) -> None:
    """Make every handler of a logger (or one handler) neutralize CR/LF.

    Existing formatters are kept and wrapped. Calling twice is harmless.
    """
    handlers = [target] if isinstance(target, logging.Handler) else list(target.handlers)
    for handler in handlers:
        if isinstance(handler.formatter, NeutralizingFormatter):
            continue
        handler.setFormatter(NeutralizingFormatter(inner=handler.formatter or logging.Formatter()))


def configure_logging(level: int | str = logging.WARNING, stream=None) -> None:
    """basicConfig on stderr with CR/LF neutralization on the root handlers."""
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.WARNING)
    logging.basicConfig(
        stream=stream or sys.stderr,
        level=level,
        format=DEFAULT_FORMAT,
    )
    install(logging.getLogger())
