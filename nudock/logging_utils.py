"""Log formatting for nudock processes.

:class:`NuDockJsonFormatter` renders each record as one JSON object per
line, carrying every ``extra`` field nudock attaches (``operation``,
``request_id``, ``http_status``, ``duration_ms``...).
:func:`configure_logging` installs either that formatter or a plain
human-readable one on the ``nudock`` logger; the CLI uses it.

The formatter is also re-exported from the top-level package::

    from nudock import NuDockJsonFormatter
"""

from __future__ import annotations

import json
import logging
import sys
from typing import TextIO

__all__ = ["NuDockJsonFormatter", "configure_logging"]

# Attribute names every LogRecord has; anything else came in through ``extra``.
_DEFAULT_RECORD_ATTRS: frozenset[str] = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()) | {
    "message",
    "asctime",
}

_RESERVED_KEYS: frozenset[str] = frozenset({"timestamp", "level", "logger", "message", "exception", "stack_info"})

_TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class NuDockJsonFormatter(logging.Formatter):
    """Single-line JSON formatter including all structured extra fields.

    ``timestamp``, ``level``, ``logger`` and ``message`` are always present
    and win over extra fields of the same name.  Values that are not JSON
    serializable are rendered with ``str``.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a single-line JSON string."""
        record.message = record.getMessage()
        obj: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
            **{k: v for k, v in record.__dict__.items() if k not in _DEFAULT_RECORD_ATTRS and k not in _RESERVED_KEYS},
        }
        if record.exc_info and record.exc_info[1]:
            obj["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            obj["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(obj, default=str)


def configure_logging(
    level: int = logging.INFO,
    *,
    json_format: bool = False,
    stream: TextIO | None = None,
) -> logging.Handler:
    """Attach a stream handler to the ``nudock`` logger.

    Any handler installed by an earlier call is replaced, so calling this
    twice does not duplicate output.

    Returns:
        The installed handler.

    """
    logger = logging.getLogger("nudock")
    for old in [h for h in logger.handlers if getattr(h, "_nudock_handler", False)]:
        logger.removeHandler(old)
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(NuDockJsonFormatter() if json_format else logging.Formatter(_TEXT_FORMAT))
    handler._nudock_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(level)
    return handler
