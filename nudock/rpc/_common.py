"""Constants, errors, request counting and logging helpers for the dispatch core."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from contextvars import ContextVar
from http import HTTPStatus
from typing import Any, ClassVar, Literal

from nudock.metadata import UNKNOWN_REQUEST_PREFIX

# ---------------------------------------------------------------------------
# Loggers
# ---------------------------------------------------------------------------

_logger = logging.getLogger("nudock.rpc")
_access_logger = logging.getLogger("nudock.access")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class NuDockError(Exception):
    """Base class for every error raised by nudock.

    ``status`` is the HTTP status the dispatcher answers with when the error
    is raised while serving a request.
    """

    status: ClassVar[HTTPStatus] = HTTPStatus.BAD_REQUEST


class ConfigError(NuDockError):
    """Invalid configuration or an illegal session transition (e.g. double start)."""


class SchemaLoadError(NuDockError):
    """A schema file could not be opened or is not valid JSON."""


class SchemaCompileError(NuDockError):
    """A schema document is malformed or lacks its request/response sub-schemas."""


class ParseError(NuDockError):
    """A message body is not a valid JSON document."""


class _ValidationError(NuDockError):
    """Shared shape of request and response validation failures."""

    framing: ClassVar[str] = "validation"

    def __init__(
        self,
        name: str,
        violations: list[Any],
        *,
        expected: Any = None,
        received: Any = None,
    ) -> None:
        """Initialize with the operation name, violations and diagnostic documents."""
        self.name = name
        self.violations = violations
        self.expected = expected
        self.received = received
        detail = "; ".join(str(v) for v in violations) or "no detail"
        super().__init__(f"Server {self.framing} validation failed for {name!r}: {detail}")

    def to_document(self) -> dict[str, Any]:
        """Return the JSON error document sent back to the client."""
        return {
            "error": str(self),
            "violations": [str(v) for v in self.violations],
            "expected": self.expected,
            "received": self.received,
        }


class RequestValidationError(_ValidationError):
    """The request document does not satisfy the operation's request schema."""

    framing = "request"


class ResponseValidationError(_ValidationError):
    """The handler result does not satisfy the operation's response schema."""

    framing = "response"


class HandlerError(NuDockError):
    """Application-level failure signalled by an operation handler."""


class RouteNotFoundError(NuDockError):
    """No operation is registered under the requested path."""

    status = HTTPStatus.NOT_FOUND

    def __init__(self, path: str) -> None:
        """Initialize with the unknown path."""
        self.path = path
        super().__init__(f"{UNKNOWN_REQUEST_PREFIX}{path}")


class TransportError(NuDockError):
    """The client could not complete an exchange with the server."""


class RemoteError(TransportError):
    """The server answered with a non-success status.

    Attributes:
        status_code: HTTP status returned by the server.
        body: Decoded response body (plain text or JSON error document).

    """

    def __init__(self, name: str, status_code: int, body: str) -> None:
        """Initialize with the operation name and the server's answer."""
        self.name = name
        self.status_code = status_code
        self.body = body
        super().__init__(f"Request {name!r} failed with status {status_code}: {body}")


class VersionMismatchError(NuDockError):
    """The two sides of a connection run different protocol versions."""

    def __init__(self, local: str, remote: object) -> None:
        """Initialize with both version tokens."""
        self.local = local
        self.remote = remote
        super().__init__(f"Version mismatch: local {local!r}, remote {remote!r}")


# ---------------------------------------------------------------------------
# JSON decoding
# ---------------------------------------------------------------------------


def _reject_constant(token: str) -> Any:
    raise ValueError(f"{token} is not valid JSON")


def _loads_json(data: bytes | str) -> Any:
    """Decode JSON, rejecting the ``NaN``, ``Infinity`` and ``-Infinity`` extensions.

    Raises:
        ValueError: If *data* is not a valid JSON document.

    """
    return json.loads(data, parse_constant=_reject_constant)


# ---------------------------------------------------------------------------
# Request counter
# ---------------------------------------------------------------------------


class RequestCounter:
    """Monotonic, thread-safe count of request attempts (diagnostic only)."""

    __slots__ = ("_lock", "_value")

    def __init__(self) -> None:
        """Start at zero."""
        self._lock = threading.Lock()
        self._value = 0

    def increment(self) -> int:
        """Add one and return the new value."""
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        """Current count."""
        with self._lock:
            return self._value


# ---------------------------------------------------------------------------
# Per-request correlation ID
# ---------------------------------------------------------------------------


def _generate_request_id() -> str:
    """Generate a 16-char hex request ID for correlation."""
    return uuid.uuid4().hex[:16]


_current_request_id: ContextVar[str] = ContextVar("nudock_request_id", default="")


# ---------------------------------------------------------------------------
# Logging helpers
# ---------------------------------------------------------------------------


def _log_dispatch_error(role: str, name: str, exc: BaseException, *, with_traceback: bool = False) -> str:
    """Log a per-request failure and return the exception class name."""
    error_type = type(exc).__name__
    extra: dict[str, object] = {"role": role, "operation": name, "error_type": error_type}
    request_id = _current_request_id.get()
    if request_id:
        extra["request_id"] = request_id
    _logger.error("%s failed for %s: %s", role, name, exc, exc_info=with_traceback, extra=extra)
    return error_type


def _emit_access_log(
    name: str,
    http_status: int,
    state: str,
    counter: int,
    duration_ms: float,
    status: Literal["ok", "error"],
    error_type: str = "",
) -> None:
    """Emit a structured access log record for a dispatched request."""
    if not _access_logger.isEnabledFor(logging.INFO):
        return
    extra: dict[str, object] = {
        "operation": name,
        "http_status": http_status,
        "state": state,
        "request_counter": counter,
        "duration_ms": round(duration_ms, 2),
        "status": status,
        "error_type": error_type,
    }
    request_id = _current_request_id.get()
    if request_id:
        extra["request_id"] = request_id
    _access_logger.info("%s %s %d", name, status, http_status, extra=extra)
