"""Server-side request dispatch.

:class:`Dispatcher` takes an operation name and a raw body and walks it
through the request pipeline::

    RECEIVED -> PARSED -> REQUEST_VALIDATED -> HANDLED -> RESPONSE_VALIDATED -> SENT

short-circuiting into ``ERRORED`` on the first failure.  The outcome is a
:class:`DispatchResult` carrying the HTTP status, body and content type
the transport should send, so the dispatcher itself never touches a
socket and can be driven directly from tests.

Routing precedence is fixed: the handshake path first, then registered
operations, then the catch-all "unknown request" answer.  An unknown path
is answered with 404 before its body is looked at.

Every dispatch owns its request and response documents; the only state
shared between concurrent requests is the read-only registry and the
locked :class:`RequestCounter`.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from http import HTTPStatus
from typing import Any

from nudock.metadata import HANDSHAKE_PATH, JSON_CONTENT_TYPE, PROTOCOL_VERSION, TEXT_CONTENT_TYPE
from nudock.rpc._common import (
    HandlerError,
    NuDockError,
    ParseError,
    RequestCounter,
    RequestValidationError,
    ResponseValidationError,
    RouteNotFoundError,
    _emit_access_log,
    _loads_json,
    _log_dispatch_error,
    _logger,
    _ValidationError,
)
from nudock.rpc._debug import fmt_body, fmt_document, wire_request_logger, wire_response_logger
from nudock.rpc._handshake import HandshakeEndpoint, HandshakeResult
from nudock.rpc._registry import HandlerRegistry, RegistryEntry

__all__ = [
    "DispatchResult",
    "DispatchState",
    "Dispatcher",
]


class DispatchState(Enum):
    """Stages a request passes through inside the dispatcher."""

    RECEIVED = "received"
    PARSED = "parsed"
    REQUEST_VALIDATED = "request_validated"
    HANDLED = "handled"
    RESPONSE_VALIDATED = "response_validated"
    SENT = "sent"
    ERRORED = "errored"


@dataclass(frozen=True)
class DispatchResult:
    """What the transport must answer for one request.

    Attributes:
        name: Requested operation path.
        status: HTTP status to send.
        body: Serialized response body.
        content_type: MIME type of *body*.
        state: ``SENT`` on success, ``ERRORED`` otherwise.
        counter: Value of the request counter for this attempt (``0`` for
            the handshake, which is not counted).
        error: The failure, when ``state`` is ``ERRORED``.
        failed_in: Last stage reached before the failure.
        handshake: Handshake outcome, for ``/validate_start`` only.

    """

    name: str
    status: HTTPStatus
    body: bytes
    content_type: str
    state: DispatchState
    counter: int = 0
    error: NuDockError | None = None
    failed_in: DispatchState | None = None
    handshake: HandshakeResult | None = None

    @property
    def ok(self) -> bool:
        """Whether the request succeeded."""
        return self.state is DispatchState.SENT

    @property
    def stop_listening(self) -> bool:
        """Whether the server must stop listening once this reply is sent."""
        return self.handshake is not None and not self.handshake.matched

    def json(self) -> Any:
        """Decode a JSON body."""
        return json.loads(self.body)


def _parse(body: bytes) -> Any:
    try:
        return _loads_json(body)
    except ValueError as exc:
        raise ParseError(str(exc)) from exc


class Dispatcher:
    """Routes, validates and answers requests against a :class:`HandlerRegistry`."""

    __slots__ = ("_counter", "_debug", "_handshake", "_registry")

    def __init__(
        self,
        registry: HandlerRegistry,
        *,
        version: str = PROTOCOL_VERSION,
        debug: bool = True,
        counter: RequestCounter | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            registry: Operations to serve.
            version: Version token compared by the handshake.
            debug: When ``False``, request and response schema validation
                is skipped and documents pass straight through.
            counter: Shared request counter; a new one when ``None``.

        """
        self._registry = registry
        self._debug = debug
        self._counter = counter if counter is not None else RequestCounter()
        self._handshake = HandshakeEndpoint(version)

    @property
    def registry(self) -> HandlerRegistry:
        """The registry being served."""
        return self._registry

    @property
    def counter(self) -> RequestCounter:
        """The request counter."""
        return self._counter

    @property
    def debug(self) -> bool:
        """Whether schema validation is enabled."""
        return self._debug

    @property
    def version(self) -> str:
        """Version token used by the handshake."""
        return self._handshake.version

    def dispatch(self, name: str, body: bytes) -> DispatchResult:
        """Run one request through the pipeline and return the answer."""
        start = time.monotonic()
        if name == HANDSHAKE_PATH:
            return self._dispatch_handshake(body, start)

        counter = self._counter.increment()
        state = DispatchState.RECEIVED
        try:
            entry = self._registry.lookup(name)
            if entry is None:
                raise RouteNotFoundError(name)

            request = _parse(body)
            state = DispatchState.PARSED
            if wire_request_logger.isEnabledFor(logging.DEBUG):
                wire_request_logger.debug("Request #%d %s: %s", counter, name, fmt_document(request))

            if self._debug:
                violations = entry.schemas.request_violations(request)
                if violations:
                    raise RequestValidationError(
                        name, violations, expected=entry.schemas.request_schema, received=request
                    )
            state = DispatchState.REQUEST_VALIDATED

            response = self._invoke(entry, request)
            state = DispatchState.HANDLED

            if self._debug:
                violations = entry.schemas.response_violations(response)
                if violations:
                    raise ResponseValidationError(
                        name, violations, expected=entry.schemas.response_schema, received=response
                    )
            payload = self._serialize(entry, response)
            state = DispatchState.RESPONSE_VALIDATED
        except NuDockError as exc:
            return self._error_result(name, exc, state, counter, start)

        if wire_response_logger.isEnabledFor(logging.DEBUG):
            wire_response_logger.debug("Response #%d %s: %s", counter, name, fmt_body(payload))
        _emit_access_log(name, HTTPStatus.OK, DispatchState.SENT.value, counter, _elapsed_ms(start), "ok")
        return DispatchResult(name, HTTPStatus.OK, payload, JSON_CONTENT_TYPE, DispatchState.SENT, counter)

    def _invoke(self, entry: RegistryEntry, request: Any) -> Any:
        try:
            return entry.handler(request)
        except HandlerError:
            raise
        except Exception as exc:
            raise HandlerError(str(exc) or type(exc).__name__) from exc

    def _serialize(self, entry: RegistryEntry, response: Any) -> bytes:
        try:
            return json.dumps(response, allow_nan=False).encode()
        except (TypeError, ValueError) as exc:
            raise ResponseValidationError(
                entry.name,
                [f"result is not serializable as JSON: {exc}"],
                expected=entry.schemas.response_schema,
                received=repr(response),
            ) from exc

    def _dispatch_handshake(self, body: bytes, start: float) -> DispatchResult:
        try:
            reply = self._handshake.reply(body)
        except ParseError as exc:
            return self._error_result(HANDSHAKE_PATH, exc, DispatchState.RECEIVED, 0, start)
        if not reply.result.matched:
            _logger.error(
                "Version handshake failed (local %s, client %r); the server will stop listening",
                reply.result.local,
                reply.result.remote,
            )
        _emit_access_log(HANDSHAKE_PATH, reply.status, DispatchState.SENT.value, 0, _elapsed_ms(start), "ok")
        return DispatchResult(
            HANDSHAKE_PATH,
            reply.status,
            reply.body,
            reply.content_type,
            DispatchState.SENT,
            handshake=reply.result,
        )

    def _error_result(
        self,
        name: str,
        exc: NuDockError,
        failed_in: DispatchState,
        counter: int,
        start: float,
    ) -> DispatchResult:
        if isinstance(exc, RouteNotFoundError):
            _logger.warning("%s", exc, extra={"operation": name})
            body = json.dumps({"error": str(exc)}, indent=2).encode()
            content_type = JSON_CONTENT_TYPE
        elif isinstance(exc, _ValidationError):
            _log_dispatch_error("Server", name, exc)
            body = json.dumps(exc.to_document(), default=repr).encode()
            content_type = JSON_CONTENT_TYPE
        else:
            _log_dispatch_error("Server", name, exc, with_traceback=exc.__cause__ is not None)
            body = str(exc).encode()
            content_type = TEXT_CONTENT_TYPE
        _emit_access_log(
            name, exc.status, DispatchState.ERRORED.value, counter, _elapsed_ms(start), "error", type(exc).__name__
        )
        return DispatchResult(
            name,
            exc.status,
            body,
            content_type,
            DispatchState.ERRORED,
            counter,
            error=exc,
            failed_in=failed_in,
        )


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000
