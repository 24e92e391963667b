"""The reserved ``/validate_start`` version handshake.

The client sends ``{"version": <client version>}`` once, right after it
starts.  The server compares the token for exact equality with its own and
always answers ``{"version": <server version>}``.  A mismatch is treated as
a deployment error: the server stops listening once the reply is out.  The
client compares the reply as well, but only logs the outcome.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any

from nudock.metadata import HANDSHAKE_PATH, JSON_CONTENT_TYPE, VERSION_FIELD
from nudock.rpc._common import ParseError, VersionMismatchError, _loads_json, _logger

__all__ = [
    "HandshakeEndpoint",
    "HandshakeReply",
    "HandshakeResult",
    "build_handshake_request",
    "check_versions",
]


@dataclass(frozen=True)
class HandshakeResult:
    """Outcome of comparing the local version with the peer's.

    Attributes:
        local: This side's version token.
        remote: The token the peer sent (``None`` when it sent none).
        matched: Whether the two are exactly equal.

    """

    local: str
    remote: Any
    matched: bool


def build_handshake_request(version: str) -> dict[str, str]:
    """Return the handshake document a client sends."""
    return {VERSION_FIELD: version}


def check_versions(local: str, document: Any, *, role: str) -> HandshakeResult:
    """Compare the ``version`` field of *document* with *local*.

    A document without a ``version`` field never matches.  Mismatches are
    logged as :class:`VersionMismatchError` but not raised; the caller
    decides what to do with the result.
    """
    remote = document.get(VERSION_FIELD) if isinstance(document, dict) else None
    matched = remote is not None and remote == local
    if matched:
        _logger.info("%s version: %s, peer version: %s", role, local, remote)
    elif remote is None:
        _logger.error(
            "%s received a handshake without a %r entry: %r",
            role,
            VERSION_FIELD,
            document,
            extra={"role": role, "local_version": local},
        )
    else:
        _logger.error(
            "%s: %s",
            role,
            VersionMismatchError(local, remote),
            extra={"role": role, "local_version": local, "remote_version": str(remote)},
        )
    return HandshakeResult(local=local, remote=remote, matched=matched)


@dataclass(frozen=True)
class HandshakeReply:
    """What the server sends back, and whether it must stop listening afterwards."""

    status: HTTPStatus
    body: bytes
    content_type: str
    result: HandshakeResult


class HandshakeEndpoint:
    """Server half of the handshake; exempt from the schema pipeline."""

    __slots__ = ("_version",)

    path = HANDSHAKE_PATH

    def __init__(self, version: str) -> None:
        """Initialize with the server's version token."""
        self._version = version

    @property
    def version(self) -> str:
        """The server's version token."""
        return self._version

    def reply(self, body: bytes) -> HandshakeReply:
        """Compare the client's version and build the reply.

        Raises:
            ParseError: If *body* is not a JSON document.

        """
        try:
            document = _loads_json(body)
        except ValueError as exc:
            raise ParseError(f"Malformed handshake body: {exc}") from exc
        result = check_versions(self._version, document, role="Server")
        payload = json.dumps(build_handshake_request(self._version)).encode()
        return HandshakeReply(HTTPStatus.OK, payload, JSON_CONTENT_TYPE, result)
