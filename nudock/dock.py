"""The ``NuDock`` session: one process's half of a server/client pair.

A session is created unstarted, has operations registered on it (server
side), and is then started exactly once, either as a server::

    dock = NuDock(DockConfig(comm_type=CommunicationType.UNIX_DOMAIN_SOCKET))
    dock.register("/ping", lambda request: "pong")
    dock.start_server()              # blocks until stopped

or as a client::

    with NuDock(config) as dock:
        dock.start_client()          # performs the version handshake
        dock.send_request("/ping", {})
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING, Any

from nudock.config import CommunicationType, DockConfig
from nudock.http import DockClient, WaitressListener, make_http_client, make_wsgi_app
from nudock.metadata import PROTOCOL_VERSION
from nudock.rpc import (
    ConfigError,
    Dispatcher,
    HandlerRegistry,
    HandshakeResult,
    OperationHandler,
    RegistryEntry,
    RequestCounter,
    TransportError,
)

if TYPE_CHECKING:
    import httpx

    from nudock.http import _SyncTestClient

__all__ = [
    "NuDock",
    "Role",
]

_logger = logging.getLogger("nudock.rpc")


class Role(Enum):
    """Which half of the pair a session plays."""

    SERVER = "server"
    CLIENT = "client"


class NuDock:
    """A server or client session.

    The role is fixed by the first successful call to :meth:`start_server`
    or :meth:`start_client`; any further start raises
    :class:`~nudock.rpc.ConfigError`.
    """

    __slots__ = (
        "_client",
        "_config",
        "_counter",
        "_dispatcher",
        "_handshake_result",
        "_listener",
        "_listening",
        "_lock",
        "_registry",
        "_role",
        "_serve_thread",
        "_version",
    )

    def __init__(self, config: DockConfig | None = None, *, version: str = PROTOCOL_VERSION) -> None:
        """Initialize an unstarted session.

        Args:
            config: Session configuration; defaults to ``DockConfig()``.
            version: Version token exchanged by the handshake.

        """
        self._config = config if config is not None else DockConfig()
        self._version = version
        self._role: Role | None = None
        self._lock = threading.Lock()
        self._counter = RequestCounter()
        self._registry = HandlerRegistry(self._config.schemas_dir)
        self._dispatcher: Dispatcher | None = None
        self._listener: WaitressListener | None = None
        self._listening = threading.Event()
        self._serve_thread: threading.Thread | None = None
        self._client: DockClient | None = None
        self._handshake_result: HandshakeResult | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> DockConfig:
        """The session configuration."""
        return self._config

    @property
    def version(self) -> str:
        """Local version token."""
        return self._version

    @property
    def role(self) -> Role | None:
        """``Role.SERVER``, ``Role.CLIENT``, or ``None`` before starting."""
        return self._role

    @property
    def debug(self) -> bool:
        """Whether schema validation is enabled."""
        return self._config.debug

    @property
    def registry(self) -> HandlerRegistry:
        """Registered operations."""
        return self._registry

    @property
    def request_count(self) -> int:
        """Requests received (server) or sent (client) so far."""
        return self._counter.value

    @property
    def handshake_result(self) -> HandshakeResult | None:
        """Outcome of the client handshake, once it has run."""
        return self._handshake_result

    @property
    def serving(self) -> bool:
        """Whether the server is currently listening."""
        return self._listener is not None and not self._listener.stopped

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        name: str,
        handler: OperationHandler,
        schema_path: str | Path | None = None,
    ) -> RegistryEntry | None:
        """Register *handler* for operation *name*; see :meth:`HandlerRegistry.register`."""
        return self._registry.register(name, handler, schema_path)

    # ------------------------------------------------------------------
    # Server
    # ------------------------------------------------------------------

    def start_server(self, *, block: bool = True) -> None:
        """Freeze the registry, bind the listener and serve.

        Args:
            block: Serve on the calling thread until the server stops
                (``stop_server``, a handshake version mismatch or
                ``KeyboardInterrupt``).  When ``False``, serve on a
                background thread and return once listening.

        Raises:
            ConfigError: If the session was already started, the transport
                is ``TCP``, or the socket path is occupied.
            OSError: If the listening socket cannot be bound.

        """
        self._claim_role(Role.SERVER)
        self._registry.freeze()
        if not len(self._registry):
            _logger.warning("Starting a server with no registered operations")

        self._dispatcher = Dispatcher(
            self._registry,
            version=self._version,
            debug=self._config.debug,
            counter=self._counter,
        )
        app = make_wsgi_app(self._dispatcher, on_stop_requested=self._on_version_mismatch)
        self._listener = WaitressListener(app, self._config)
        _logger.info(
            "Server version %s ready on %s (debug=%s)",
            self._version,
            self._listener.target,
            self._config.debug,
            extra={"role": Role.SERVER.value, "target": self._listener.target, "local_version": self._version},
        )
        self._listening.set()

        if block:
            self._listener.serve()
        else:
            self._serve_thread = threading.Thread(target=self._listener.serve, name="nudock-server", daemon=True)
            self._serve_thread.start()

    def wait_until_listening(self, timeout: float | None = None) -> bool:
        """Block until the server socket is bound; ``False`` on timeout."""
        return self._listening.wait(timeout)

    def wait_stopped(self, timeout: float | None = None) -> bool:
        """Block until the server has stopped listening; ``False`` on timeout."""
        if self._listener is None:
            return True
        return self._listener.wait_stopped(timeout)

    def stop_server(self, timeout: float | None = None) -> None:
        """Stop listening and, for a background server, join its thread."""
        if self._listener is None:
            return
        self._listener.stop()
        if self._serve_thread is not None and self._serve_thread is not threading.current_thread():
            self._serve_thread.join(timeout)

    def _on_version_mismatch(self) -> None:
        if self._listener is not None:
            self._listener.request_stop(self._config.shutdown_grace)

    # ------------------------------------------------------------------
    # Client
    # ------------------------------------------------------------------

    def start_client(self, *, client: httpx.Client | _SyncTestClient | None = None) -> HandshakeResult:
        """Connect to the server and perform the version handshake.

        Args:
            client: Pre-built HTTP client (e.g. from ``make_sync_client``);
                by default one is built from the configuration.

        Returns:
            The handshake outcome.  A version mismatch is logged, not
            raised.

        Raises:
            ConfigError: If the session was already started or the
                transport is ``TCP``.
            TransportError: If the handshake exchange fails.

        """
        self._claim_role(Role.CLIENT)
        http_client = client if client is not None else make_http_client(self._config)
        dock_client = DockClient(http_client, own_client=client is None)
        try:
            self._handshake_result = dock_client.handshake(self._version)
        except TransportError:
            dock_client.close()
            raise
        self._client = dock_client
        return self._handshake_result

    def send_request(self, name: str, message: Any) -> Any:
        """Invoke operation *name* with *message* and return the reply document.

        Raises:
            ConfigError: If the client has not been started.
            ValueError: If *name* is empty.
            RouteNotFoundError: If the server does not know *name*.
            RemoteError: If the server rejected the request.
            TransportError: If the server cannot be reached.
            ParseError: If the reply is not valid JSON.

        """
        if self._client is None:
            raise ConfigError("Client not started; call start_client() first")
        if not name:
            raise ValueError("Request name must not be empty")
        count = self._counter.increment()
        _logger.debug("Sending request #%d to %s", count, name, extra={"operation": name, "request_counter": count})
        return self._client.call(name, message)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Stop the server or close the client."""
        if self._role is Role.SERVER:
            self.stop_server()
        elif self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> NuDock:
        """Return self."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the session."""
        self.close()

    def _claim_role(self, role: Role) -> None:
        if self._config.comm_type is CommunicationType.TCP:
            raise ConfigError("TCP communication is not implemented; use UNIX_DOMAIN_SOCKET or LOCALHOST")
        with self._lock:
            if self._role is not None:
                raise ConfigError(f"Session already started as {self._role.value}; start_{role.value}() not allowed")
            self._role = role
