"""Local JSON-over-HTTP RPC with schema-checked operations and a version handshake."""

import logging

from nudock.config import DEFAULT_PORT, CommunicationType, DockConfig
from nudock.dock import NuDock, Role
from nudock.experiment import OSC_PAR_CENTRAL, Experiment, pong, register_experiment
from nudock.logging_utils import NuDockJsonFormatter
from nudock.metadata import HANDSHAKE_PATH, PROTOCOL_VERSION, __version__
from nudock.rpc import (
    ConfigError,
    Dispatcher,
    DispatchResult,
    DispatchState,
    HandlerError,
    HandlerRegistry,
    HandshakeResult,
    NuDockError,
    OperationHandler,
    ParseError,
    RegistryEntry,
    RemoteError,
    RequestValidationError,
    ResponseValidationError,
    RouteNotFoundError,
    SchemaCompileError,
    SchemaLoadError,
    SchemaPair,
    TransportError,
    VersionMismatchError,
    Violation,
    load_schema_pair,
)

__all__ = [
    "DEFAULT_PORT",
    "HANDSHAKE_PATH",
    "OSC_PAR_CENTRAL",
    "PROTOCOL_VERSION",
    "CommunicationType",
    "ConfigError",
    "DispatchResult",
    "DispatchState",
    "Dispatcher",
    "DockConfig",
    "Experiment",
    "HandlerError",
    "HandlerRegistry",
    "HandshakeResult",
    "NuDock",
    "NuDockError",
    "NuDockJsonFormatter",
    "OperationHandler",
    "ParseError",
    "RegistryEntry",
    "RemoteError",
    "RequestValidationError",
    "ResponseValidationError",
    "Role",
    "RouteNotFoundError",
    "SchemaCompileError",
    "SchemaLoadError",
    "SchemaPair",
    "TransportError",
    "VersionMismatchError",
    "Violation",
    "__version__",
    "load_schema_pair",
    "pong",
    "register_experiment",
]

logging.getLogger("nudock").addHandler(logging.NullHandler())
