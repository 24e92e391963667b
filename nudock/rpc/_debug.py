"""Debug logging for what flows over the wire.

Provides logger instances under the ``nudock.wire.*`` hierarchy and a
compact document formatter.  Enabling
``logging.getLogger("nudock.wire").setLevel(logging.DEBUG)`` dumps every
request and response document that passes through the dispatcher and the
client.

The formatter returns ``str`` and never logs directly; call it inside an
``isEnabledFor`` guard so there is no serialization cost when debug
logging is off.
"""

from __future__ import annotations

import json
import logging
from typing import Any

wire_request_logger = logging.getLogger("nudock.wire.request")
"""Request documents received by the server."""

wire_response_logger = logging.getLogger("nudock.wire.response")
"""Response documents produced by handlers."""

wire_http_logger = logging.getLogger("nudock.wire.http")
"""Client-side HTTP requests / responses."""

_MAX_DOCUMENT_LEN = 200


def fmt_document(document: Any, limit: int = _MAX_DOCUMENT_LEN) -> str:
    """Format a JSON document on one line, truncated to *limit* characters.

    Returns:
        ``'{"osc_pars": {"Theta13": 0.15}}'``, or ``repr(document)`` when
        it is not JSON-serializable.

    """
    try:
        text = json.dumps(document, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError):
        text = repr(document)
    if len(text) > limit:
        text = text[:limit] + "..."
    return text


def fmt_body(body: bytes, limit: int = _MAX_DOCUMENT_LEN) -> str:
    """Format a raw message body for logging (decoded, truncated)."""
    text = body.decode("utf-8", errors="replace")
    if len(text) > limit:
        text = text[:limit] + "..."
    return text
