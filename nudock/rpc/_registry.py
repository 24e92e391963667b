"""Operation handlers and the registry that pairs them with their schemas."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from nudock.metadata import DEFAULT_SCHEMAS_DIR, HANDSHAKE_PATH
from nudock.rpc._common import ConfigError, SchemaCompileError, SchemaLoadError, _logger
from nudock.rpc._schema import SchemaPair, default_schema_path, load_schema_pair

__all__ = [
    "HandlerRegistry",
    "OperationHandler",
    "RegistryEntry",
]


@runtime_checkable
class OperationHandler(Protocol):
    """Anything that turns a validated request document into a response document.

    Plain functions, bound methods of an object holding state, and
    instances with ``__call__`` all qualify.  Raise
    :class:`~nudock.rpc.HandlerError` (or any exception) to fail the call.
    """

    def __call__(self, request: Any, /) -> Any:
        """Handle one request document."""
        ...


@dataclass(frozen=True)
class RegistryEntry:
    """An operation name bound to its handler and its schema pair.

    The handler and the schemas are only ever reached through the entry,
    so request and response validation always use the same pair.
    """

    name: str
    handler: OperationHandler
    schemas: SchemaPair


class HandlerRegistry:
    """Maps operation names to :class:`RegistryEntry` objects.

    A name is registered at most once: empty, reserved or duplicate names
    are logged and ignored, never overwritten.  Once :meth:`freeze` is
    called (the server has started) the registry is read-only, which lets
    concurrent requests look entries up without locking.
    """

    __slots__ = ("_entries", "_frozen", "_lock", "_schemas_dir")

    def __init__(self, schemas_dir: str | Path = DEFAULT_SCHEMAS_DIR) -> None:
        """Initialize an empty registry resolving default schema paths under *schemas_dir*."""
        self._schemas_dir = Path(schemas_dir)
        self._entries: dict[str, RegistryEntry] = {}
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def schemas_dir(self) -> Path:
        """Directory used for default schema paths."""
        return self._schemas_dir

    @property
    def frozen(self) -> bool:
        """Whether the registry has become read-only."""
        return self._frozen

    def freeze(self) -> None:
        """Make the registry read-only."""
        self._frozen = True

    def register(
        self,
        name: str,
        handler: OperationHandler,
        schema_path: str | Path | None = None,
    ) -> RegistryEntry | None:
        """Register *handler* for the operation *name*.

        Args:
            name: Operation name including the leading slash, e.g.
                ``"/set_parameters"``.
            handler: Callable taking the request document and returning
                the response document.
            schema_path: Schema file for this operation.  Defaults to
                ``<schemas_dir>/<name>.schema.json``.

        Returns:
            The new entry, or ``None`` when the name is empty, reserved or
            already registered (the existing entry is left untouched).

        Raises:
            ConfigError: If the registry is frozen.
            TypeError: If *handler* is not callable.
            SchemaLoadError: If the schema file cannot be read.
            SchemaCompileError: If the schema file is malformed.

        """
        if self._frozen:
            raise ConfigError(f"Cannot register {name!r}: the server has already started")
        if not callable(handler):
            raise TypeError(f"Handler for {name!r} must be callable, got {type(handler).__name__}")
        if not name:
            _logger.warning("Request name is empty, registration ignored")
            return None
        if name == HANDSHAKE_PATH:
            _logger.warning("%s is reserved for the version handshake, registration ignored", name)
            return None

        path = Path(schema_path) if schema_path else default_schema_path(self._schemas_dir, name)
        with self._lock:
            if name in self._entries:
                _logger.warning("Request handler for %r already exists, registration ignored", name)
                return None
            try:
                schemas = load_schema_pair(path)
            except (SchemaLoadError, SchemaCompileError) as exc:
                _logger.error(
                    "Not serving %s: %s",
                    name,
                    exc,
                    extra={"operation": name, "schema_path": str(path), "error_type": type(exc).__name__},
                )
                raise
            entry = RegistryEntry(name, handler, schemas)
            self._entries[name] = entry

        _logger.info(
            "Registered request handler for %r with schema at: %s",
            name,
            path,
            extra={"operation": name, "schema_path": str(path)},
        )
        return entry

    def lookup(self, name: str) -> RegistryEntry | None:
        """Return the entry for *name*, or ``None`` for an unknown route."""
        return self._entries.get(name)

    @property
    def names(self) -> list[str]:
        """Registered operation names, sorted."""
        return sorted(self._entries)

    def __contains__(self, name: object) -> bool:
        """Whether *name* is registered."""
        return name in self._entries

    def __len__(self) -> int:
        """Number of registered operations."""
        return len(self._entries)

    def __iter__(self) -> Iterator[RegistryEntry]:
        """Iterate over entries in name order."""
        return iter([self._entries[n] for n in self.names])
