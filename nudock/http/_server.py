"""HTTP server implementation using Falcon/WSGI and waitress.

``make_wsgi_app`` exposes a :class:`~nudock.rpc.Dispatcher` as a Falcon
WSGI application: every ``POST <operation name>`` is handed to the
dispatcher and its :class:`~nudock.rpc.DispatchResult` becomes the
response.  ``WaitressListener`` serves that app on a unix socket or on
``host:port`` and can be stopped from any thread.
"""

from __future__ import annotations

import contextlib
import logging
import os
import stat
import threading
import time
from collections.abc import Callable
from http import HTTPStatus
from pathlib import Path
from typing import Any

import falcon
from waitress import create_server, wasyncore

from nudock.config import CommunicationType, DockConfig
from nudock.metadata import REQUEST_ID_HEADER, TEXT_CONTENT_TYPE
from nudock.rpc import ConfigError, Dispatcher
from nudock.rpc._common import _current_request_id, _generate_request_id

_logger = logging.getLogger("nudock.http")

_LOOP_TIMEOUT = 0.2
_DRAIN_TIMEOUT = 2.0


# ---------------------------------------------------------------------------
# Falcon resources and middleware
# ---------------------------------------------------------------------------


class _DispatchSink:
    """Falcon sink routing every path through the dispatcher.

    Routing lives in the dispatcher, not in Falcon, so the handshake path,
    registered operations and the "unknown request" answer keep a single
    precedence order.
    """

    __slots__ = ("_dispatcher", "_on_stop_requested")

    def __init__(self, dispatcher: Dispatcher, on_stop_requested: Callable[[], None] | None) -> None:
        self._dispatcher = dispatcher
        self._on_stop_requested = on_stop_requested

    def __call__(self, req: falcon.Request, resp: falcon.Response, **kwargs: Any) -> None:
        """Dispatch one request."""
        if req.method != "POST":
            resp.status = HTTPStatus.METHOD_NOT_ALLOWED
            resp.set_header("Allow", "POST")
            resp.content_type = TEXT_CONTENT_TYPE
            resp.text = f"Method {req.method} not allowed; operations are invoked with POST"
            return

        body = req.bounded_stream.read()
        result = self._dispatcher.dispatch(req.path, body)
        resp.status = result.status
        resp.content_type = result.content_type
        resp.data = result.body

        if result.stop_listening:
            if self._on_stop_requested is not None:
                self._on_stop_requested()
            else:
                _logger.warning("Version mismatch reported but no listener is attached to stop")


class _RequestIdMiddleware:
    """Falcon middleware that sets a per-request correlation ID.

    Reads ``X-Request-ID`` from the incoming request header or generates a
    new 16-char hex ID.  The value is stored in ``req.context.request_id``,
    set on the ``_current_request_id`` contextvar, and echoed back on the
    response as the ``X-Request-ID`` header.
    """

    def process_request(self, req: falcon.Request, resp: falcon.Response) -> None:
        """Set request ID from header or generate one; populate contextvar."""
        request_id = req.get_header(REQUEST_ID_HEADER) or _generate_request_id()
        req.context.request_id = request_id
        req.context.request_id_token = _current_request_id.set(request_id)

    def process_response(
        self,
        req: falcon.Request,
        resp: falcon.Response,
        resource: object,
        req_succeeded: bool,
    ) -> None:
        """Echo request ID on response header and reset contextvar."""
        request_id = getattr(req.context, "request_id", None)
        if request_id is not None:
            resp.set_header(REQUEST_ID_HEADER, request_id)
        token = getattr(req.context, "request_id_token", None)
        if token is not None:
            _current_request_id.reset(token)


def make_wsgi_app(
    dispatcher: Dispatcher,
    *,
    on_stop_requested: Callable[[], None] | None = None,
) -> falcon.App[falcon.Request, falcon.Response]:
    """Create a Falcon WSGI app that serves a dispatcher over HTTP.

    Args:
        dispatcher: The dispatcher answering requests.
        on_stop_requested: Called after a version-mismatch handshake reply
            has been produced; the listener uses it to schedule its own
            shutdown.

    Returns:
        A Falcon application answering ``POST`` on every path.

    """
    app: falcon.App[falcon.Request, falcon.Response] = falcon.App(middleware=[_RequestIdMiddleware()])
    app.add_sink(_DispatchSink(dispatcher, on_stop_requested), prefix="/")
    _logger.info(
        "WSGI app created (operations=%s, debug=%s)",
        ", ".join(dispatcher.registry.names) or "none",
        dispatcher.debug,
        extra={"operations": dispatcher.registry.names, "debug": dispatcher.debug},
    )
    return app


# ---------------------------------------------------------------------------
# waitress listener
# ---------------------------------------------------------------------------


def remove_stale_socket(path: Path) -> None:
    """Remove a leftover unix socket file at *path*.

    Raises:
        ConfigError: If *path* exists and is not a socket.

    """
    try:
        mode = path.lstat().st_mode
    except FileNotFoundError:
        return
    if not stat.S_ISSOCK(mode):
        raise ConfigError(f"Refusing to replace {path}: it exists and is not a socket")
    path.unlink()
    _logger.debug("Removed stale socket %s", path)


class WaitressListener:
    """Serves a WSGI app with waitress until asked to stop.

    The listening socket is bound in the constructor, so a client may
    connect as soon as the object exists.  :meth:`serve` runs the waitress
    event loop on the calling thread; :meth:`stop` and :meth:`request_stop`
    may be called from any thread, including a waitress worker.
    """

    __slots__ = ("_config", "_map", "_server", "_socket_path", "_stop", "_stopped", "_timer")

    def __init__(self, app: Any, config: DockConfig) -> None:
        """Bind the listening socket described by *config*.

        Raises:
            ConfigError: If the transport is ``TCP`` or the socket path is
                occupied by something other than a socket.
            OSError: If binding fails.

        """
        self._config = config
        self._map: dict[int, Any] = {}
        self._stop = threading.Event()
        self._stopped = threading.Event()
        self._timer: threading.Timer | None = None
        self._socket_path: Path | None = None

        if config.comm_type is CommunicationType.UNIX_DOMAIN_SOCKET:
            path = config.unix_socket_path
            remove_stale_socket(path)
            self._server = create_server(
                app,
                map=self._map,
                unix_socket=os.fspath(path),
                unix_socket_perms="600",
                threads=config.threads,
                ident="nudock",
            )
            self._socket_path = path
        elif config.comm_type is CommunicationType.LOCALHOST:
            self._server = create_server(
                app,
                map=self._map,
                host=config.host,
                port=config.port,
                threads=config.threads,
                ident="nudock",
            )
        else:
            raise ConfigError(f"Communication type {config.comm_type.name} is not supported by the listener")
        _logger.info("Listening on %s", config.describe_target(), extra={"target": config.describe_target()})

    @property
    def target(self) -> str:
        """Where the listener is bound."""
        return self._config.describe_target()

    @property
    def stopped(self) -> bool:
        """Whether the listener has shut down."""
        return self._stopped.is_set()

    def serve(self) -> None:
        """Run the event loop until :meth:`stop` is called, then shut down."""
        try:
            while not self._stop.is_set():
                wasyncore.loop(timeout=_LOOP_TIMEOUT, map=self._map, count=1)
            self._drain()
        except KeyboardInterrupt:
            _logger.info("Interrupted, shutting down")
        finally:
            self._shutdown()

    def stop(self) -> None:
        """Ask the event loop to exit."""
        self._stop.set()

    def request_stop(self, delay: float) -> None:
        """Stop after *delay* seconds, letting in-flight replies go out first."""
        if self._stop.is_set() or self._timer is not None:
            return
        self._timer = threading.Timer(delay, self.stop)
        self._timer.daemon = True
        self._timer.start()

    def wait_stopped(self, timeout: float | None = None) -> bool:
        """Block until the listener has shut down."""
        return self._stopped.wait(timeout)

    def _busy(self) -> bool:
        for channel in list(self._map.values()):
            if getattr(channel, "total_outbufs_len", 0) or getattr(channel, "requests", None):
                return True
        return False

    def _drain(self) -> None:
        deadline = time.monotonic() + _DRAIN_TIMEOUT
        while self._busy() and time.monotonic() < deadline:
            wasyncore.loop(timeout=0.05, map=self._map, count=1)

    def _shutdown(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._server.task_dispatcher.shutdown()
        wasyncore.close_all(self._map)
        if self._socket_path is not None:
            with contextlib.suppress(FileNotFoundError):
                self._socket_path.unlink()
        self._stopped.set()
        _logger.info("Stopped listening on %s", self.target, extra={"target": self.target})
