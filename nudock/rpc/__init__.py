"""Transport-agnostic core: schemas, handler registry, dispatch and handshake.

Operations
----------
An operation is a name such as ``/set_parameters`` bound to a handler and a
schema file.  The schema file holds two JSON Schemas side by side::

    {"properties": {"request": {...}, "response": {...}}}

Handlers are plain callables taking the parsed request document and
returning the response document.  Raise :class:`HandlerError` (or any
exception) to fail a call.

Request Pipeline
----------------
:class:`Dispatcher` answers one ``(name, body)`` pair at a time::

    RECEIVED -> PARSED -> REQUEST_VALIDATED -> HANDLED -> RESPONSE_VALIDATED -> SENT

Any failure short-circuits into ``ERRORED`` with the status carried by the
error class:

- unknown name -> 404, ``{"error": "Unknown request title: <name>"}``
- malformed JSON -> 400, plain-text parser message
- request or response schema violation -> 400, JSON error document
- handler failure -> 400, plain-text message

Schema validation only runs when the dispatcher is built with
``debug=True``.

Version Handshake
-----------------
``/validate_start`` is reserved.  The client posts ``{"version": v}``; the
server answers with its own version and, when the two differ, stops
listening after the reply.
"""

from nudock.rpc._common import (
    ConfigError,
    HandlerError,
    NuDockError,
    ParseError,
    RemoteError,
    RequestCounter,
    RequestValidationError,
    ResponseValidationError,
    RouteNotFoundError,
    SchemaCompileError,
    SchemaLoadError,
    TransportError,
    VersionMismatchError,
)
from nudock.rpc._handshake import (
    HandshakeEndpoint,
    HandshakeReply,
    HandshakeResult,
    build_handshake_request,
    check_versions,
)
from nudock.rpc._registry import HandlerRegistry, OperationHandler, RegistryEntry
from nudock.rpc._schema import (
    SchemaPair,
    Violation,
    compile_schema_pair,
    compile_validator,
    default_schema_path,
    load_schema_document,
    load_schema_pair,
)
from nudock.rpc._server import DispatchResult, Dispatcher, DispatchState

__all__ = [
    "ConfigError",
    "DispatchResult",
    "DispatchState",
    "Dispatcher",
    "HandlerError",
    "HandlerRegistry",
    "HandshakeEndpoint",
    "HandshakeReply",
    "HandshakeResult",
    "NuDockError",
    "OperationHandler",
    "ParseError",
    "RegistryEntry",
    "RemoteError",
    "RequestCounter",
    "RequestValidationError",
    "ResponseValidationError",
    "RouteNotFoundError",
    "SchemaCompileError",
    "SchemaLoadError",
    "SchemaPair",
    "TransportError",
    "VersionMismatchError",
    "Violation",
    "build_handshake_request",
    "check_versions",
    "compile_schema_pair",
    "compile_validator",
    "default_schema_path",
    "load_schema_document",
    "load_schema_pair",
]
