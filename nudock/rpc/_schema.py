"""Loading and compiling the request/response schema pair of an operation.

Each operation ships one JSON document::

    {
        "properties": {
            "request":  { ...JSON Schema for the request document... },
            "response": { ...JSON Schema for the response document... }
        }
    }

``load_schema_pair`` reads the file, then compiles both sub-schemas with
the validator class that ``jsonschema`` selects for them (the ``$schema``
keyword when present, the latest draft otherwise).  The result is an
immutable :class:`SchemaPair` that keeps the two validators together with
the raw document used for diagnostics.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from jsonschema import exceptions as jsonschema_exceptions
from jsonschema.protocols import Validator
from jsonschema.validators import validator_for
from referencing import Registry
from referencing.exceptions import Unresolvable
from referencing.jsonschema import DRAFT202012, specification_with

from nudock.metadata import SCHEMA_SUFFIX
from nudock.rpc._common import SchemaCompileError, SchemaLoadError

__all__ = [
    "SchemaPair",
    "Violation",
    "compile_schema_pair",
    "compile_validator",
    "default_schema_path",
    "load_schema_document",
    "load_schema_pair",
]


@dataclass(frozen=True)
class Violation:
    """One schema violation found in a document.

    Attributes:
        pointer: JSON pointer to the offending value (``""`` for the root).
        message: Human-readable description from the schema engine.

    """

    pointer: str
    message: str

    def __str__(self) -> str:
        """Render as ``'/osc_pars/x: 'abc' is not of type 'number''``."""
        return f"{self.pointer or '/'}: {self.message}"


@dataclass(frozen=True)
class SchemaPair:
    """Compiled request and response validators for one operation.

    Attributes:
        request_validator: Validator for incoming request documents.
        response_validator: Validator for handler results.
        document: The ``properties`` object of the schema file, kept for
            diagnostic reporting (``document["request"]`` /
            ``document["response"]``).
        source: Where the schema was loaded from, if anywhere.

    """

    request_validator: Validator = field(repr=False)
    response_validator: Validator = field(repr=False)
    document: Mapping[str, Any] = field(repr=False)
    source: Path | None = None

    @property
    def request_schema(self) -> Any:
        """Raw request sub-schema."""
        return self.document["request"]

    @property
    def response_schema(self) -> Any:
        """Raw response sub-schema."""
        return self.document["response"]

    def request_violations(self, document: Any) -> list[Violation]:
        """Validate a request document; an empty list means it is valid."""
        return _violations(self.request_validator, document)

    def response_violations(self, document: Any) -> list[Violation]:
        """Validate a response document; an empty list means it is valid."""
        return _violations(self.response_validator, document)


def _violations(validator: Validator, document: Any) -> list[Violation]:
    try:
        errors = sorted(validator.iter_errors(document), key=lambda e: [str(p) for p in e.absolute_path])
    except Unresolvable as exc:
        return [Violation("", f"schema reference cannot be resolved: {exc}")]
    return [Violation(_json_pointer(e.absolute_path), e.message) for e in errors]


def _json_pointer(path: Any) -> str:
    parts = [str(p).replace("~", "~0").replace("/", "~1") for p in path]
    return "".join(f"/{p}" for p in parts)


def default_schema_path(schemas_dir: str | Path, name: str) -> Path:
    """Return ``<schemas_dir>/<name>.schema.json`` for an operation name.

    The leading slash of the operation name is dropped, so ``/ping`` maps
    to ``<schemas_dir>/ping.schema.json``.
    """
    return Path(schemas_dir) / f"{name.lstrip('/')}{SCHEMA_SUFFIX}"


def load_schema_document(path: str | Path) -> Any:
    """Read and parse a schema file.

    Raises:
        SchemaLoadError: If the file cannot be read or is not valid JSON.

    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SchemaLoadError(f"Could not open file: {path} ({exc.strerror or exc})") from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise SchemaLoadError(f"JSON parsing error in {path}: {exc}") from exc


def compile_validator(schema: Any) -> Validator:
    """Compile one JSON Schema into a validator.

    Raises:
        SchemaCompileError: If the schema is not a valid JSON Schema.

    """
    if not isinstance(schema, (Mapping, bool)):
        raise SchemaCompileError(f"Schema must be an object or a boolean, got {type(schema).__name__}")
    try:
        cls = validator_for(schema)
        cls.check_schema(schema)
    except jsonschema_exceptions.SchemaError as exc:
        raise SchemaCompileError(f"Invalid schema: {exc.message}") from exc
    missing = _unresolvable_refs(cls, schema)
    if missing:
        raise SchemaCompileError(f"Invalid schema: unresolvable $ref {', '.join(missing)}")
    return cls(schema, format_checker=cls.FORMAT_CHECKER)


# Keywords whose values are instance data, not subschemas.
_DATA_KEYWORDS = frozenset({"const", "default", "enum", "examples"})


def _unresolvable_refs(cls: type[Validator], schema: Any) -> list[str]:
    """Return the same-document $refs of *schema* that point nowhere.

    Only ``#...`` references outside embedded resources (subschemas with
    their own ``$id``) are checked; remote references are left to the
    validator.
    """
    specification = specification_with(cls.META_SCHEMA.get("$schema", ""), default=DRAFT202012)
    resolver = Registry().resolver_with_root(specification.create_resource(schema))
    missing: list[str] = []

    def walk(node: Any, *, root: bool = False) -> None:
        if isinstance(node, Mapping):
            if not root and isinstance(node.get("$id"), str):
                return
            ref = node.get("$ref")
            if isinstance(ref, str) and ref.startswith("#"):
                try:
                    resolver.lookup(ref)
                except Unresolvable:
                    missing.append(ref)
            for key, value in node.items():
                if key not in _DATA_KEYWORDS:
                    walk(value)
        elif isinstance(node, list):
            for item in node:
                walk(item)

    walk(schema, root=True)
    return missing


def compile_schema_pair(document: Any, *, source: Path | None = None) -> SchemaPair:
    """Compile the ``properties.request`` / ``properties.response`` pair of a schema document.

    Raises:
        SchemaCompileError: If either sub-schema is missing or invalid.

    """
    where = f" in {source}" if source is not None else ""
    properties = document.get("properties") if isinstance(document, Mapping) else None
    if not isinstance(properties, Mapping):
        raise SchemaCompileError(f"Schema document{where} has no 'properties' object")
    for part in ("request", "response"):
        if part not in properties:
            raise SchemaCompileError(f"Schema document{where} has no 'properties.{part}' sub-schema")
    try:
        request_validator = compile_validator(properties["request"])
        response_validator = compile_validator(properties["response"])
    except SchemaCompileError as exc:
        raise SchemaCompileError(f"{exc}{where}") from exc
    return SchemaPair(request_validator, response_validator, dict(properties), source)


def load_schema_pair(path: str | Path) -> SchemaPair:
    """Load and compile the schema pair stored at *path*."""
    path = Path(path)
    return compile_schema_pair(load_schema_document(path), source=path)
