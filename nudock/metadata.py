"""Well-known names shared by the server and client halves of nudock.

Centralises the package/protocol version token, the reserved handshake
path, content types, header names, and the schema-file naming convention
so that ``rpc/``, ``http/``, ``dock.py`` and ``cli.py`` agree on a single
definition.
"""

from __future__ import annotations

from pathlib import Path

__all__ = [
    "DEFAULT_SCHEMAS_DIR",
    "HANDSHAKE_PATH",
    "JSON_CONTENT_TYPE",
    "PROTOCOL_VERSION",
    "REQUEST_ID_HEADER",
    "SCHEMA_SUFFIX",
    "TEXT_CONTENT_TYPE",
    "UNKNOWN_REQUEST_PREFIX",
    "VERSION_FIELD",
    "__version__",
]

__version__ = "0.3.0"

# ---------------------------------------------------------------------------
# Version handshake
# ---------------------------------------------------------------------------

PROTOCOL_VERSION = __version__
"""Version token exchanged on ``/validate_start``; compared for exact equality."""

HANDSHAKE_PATH = "/validate_start"
VERSION_FIELD = "version"

# ---------------------------------------------------------------------------
# HTTP wire
# ---------------------------------------------------------------------------

JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain"
REQUEST_ID_HEADER = "X-Request-ID"
UNKNOWN_REQUEST_PREFIX = "Unknown request title: "

# ---------------------------------------------------------------------------
# Schema files
# ---------------------------------------------------------------------------

SCHEMA_SUFFIX = ".schema.json"
DEFAULT_SCHEMAS_DIR = Path(__file__).parent / "schemas"
"""Schemas shipped with the package (``/ping``, ``/set_parameters``, ``/log_likelihood``)."""
