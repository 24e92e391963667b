"""HTTP client implementation using httpx.

``DockClient`` posts JSON documents to a nudock server and turns every
non-success outcome into a typed exception.  It works with a real
``httpx.Client`` (TCP or unix socket, see :func:`make_http_client`) or
with the in-process ``_SyncTestClient`` from ``make_sync_client``.
"""

from __future__ import annotations

import json
import logging
import os
from typing import TYPE_CHECKING, Any

import httpx

from nudock.config import CommunicationType, DockConfig
from nudock.metadata import HANDSHAKE_PATH, JSON_CONTENT_TYPE
from nudock.rpc import (
    ConfigError,
    HandshakeResult,
    NuDockError,
    ParseError,
    RemoteError,
    RouteNotFoundError,
    TransportError,
    build_handshake_request,
    check_versions,
)
from nudock.rpc._common import _loads_json
from nudock.rpc._debug import fmt_body, wire_http_logger

if TYPE_CHECKING:
    from nudock.http._testing import _SyncTestClient

_logger = logging.getLogger("nudock.http")


def make_http_client(config: DockConfig) -> httpx.Client:
    """Build an ``httpx.Client`` reaching the server described by *config*.

    Proxy environment variables are ignored; the server is always local.

    Raises:
        ConfigError: If the transport is ``TCP``.

    """
    if config.comm_type is CommunicationType.UNIX_DOMAIN_SOCKET:
        transport = httpx.HTTPTransport(uds=os.fspath(config.unix_socket_path))
        return httpx.Client(base_url=config.base_url, transport=transport, timeout=config.timeout, trust_env=False)
    if config.comm_type is CommunicationType.LOCALHOST:
        return httpx.Client(base_url=config.base_url, timeout=config.timeout, trust_env=False)
    raise ConfigError(f"Communication type {config.comm_type.name} is not supported by the client")


class DockClient:
    """Sends operation requests and the version handshake over HTTP."""

    __slots__ = ("_client", "_own_client")

    def __init__(self, client: httpx.Client | _SyncTestClient, *, own_client: bool = False) -> None:
        """Wrap *client*; when *own_client* is true :meth:`close` closes it."""
        self._client = client
        self._own_client = own_client

    def call(self, name: str, message: Any) -> Any:
        """POST *message* to operation *name* and return the decoded reply.

        Raises:
            TransportError: If the server cannot be reached.
            RouteNotFoundError: If the server answers 404.
            RemoteError: If the server answers any other non-200 status.
            ParseError: If *message* cannot be encoded or the reply is not
                valid JSON.

        """
        try:
            content = json.dumps(message, allow_nan=False).encode()
        except (TypeError, ValueError) as exc:
            raise ParseError(f"Request for {name!r} is not serializable as JSON: {exc}") from exc

        if wire_http_logger.isEnabledFor(logging.DEBUG):
            wire_http_logger.debug("HTTP POST %s: %s", name, fmt_body(content))
        try:
            resp = self._client.post(name, content=content, headers={"Content-Type": JSON_CONTENT_TYPE})
        except httpx.HTTPError as exc:
            raise TransportError(f"Request {name!r} could not be completed: {exc}") from exc
        if wire_http_logger.isEnabledFor(logging.DEBUG):
            wire_http_logger.debug(
                "HTTP response %s: status=%d, body=%s", name, resp.status_code, fmt_body(resp.content)
            )

        if resp.status_code == 404:
            raise RouteNotFoundError(name)
        if resp.status_code != 200:
            raise RemoteError(name, resp.status_code, resp.content.decode("utf-8", errors="replace"))
        try:
            return _loads_json(resp.content)
        except ValueError as exc:
            raise ParseError(f"Reply to {name!r} is not valid JSON: {exc}") from exc

    def handshake(self, version: str) -> HandshakeResult:
        """Exchange version tokens with the server.

        A mismatch is logged and reported in the result, never raised.

        Raises:
            TransportError: If the exchange fails or the reply is unusable.

        """
        try:
            document = self.call(HANDSHAKE_PATH, build_handshake_request(version))
        except TransportError:
            raise
        except NuDockError as exc:
            raise TransportError(f"Version handshake failed: {exc}") from exc
        return check_versions(version, document, role="Client")

    def close(self) -> None:
        """Close the underlying client if this object owns it."""
        if self._own_client:
            self._client.close()
