"""HTTP transport for nudock using Falcon and waitress (server) and httpx (client).

Provides ``make_wsgi_app`` to expose a ``Dispatcher`` as a Falcon WSGI
application, ``WaitressListener`` to serve it on a unix socket or on
``localhost``, and ``DockClient`` to call it with ``httpx``.

HTTP Wire Protocol
------------------
Every operation is ``POST <operation name>`` with a JSON body:

- **Success**: 200, ``application/json`` reply document
- **Unknown operation**: 404, ``{"error": "Unknown request title: <name>"}``
- **Failure**: 400, plain-text message or JSON validation error document
- **Handshake**: ``POST /validate_start`` ``{"version": v}`` -> ``{"version": server_v}``
"""

from nudock.http._client import DockClient, make_http_client
from nudock.http._server import WaitressListener, make_wsgi_app, remove_stale_socket
from nudock.http._testing import (
    _SyncTestClient,
    _SyncTestResponse,
    make_sync_client,
)

__all__ = [
    "DockClient",
    "WaitressListener",
    "_SyncTestClient",
    "_SyncTestResponse",
    "make_http_client",
    "make_sync_client",
    "make_wsgi_app",
    "remove_stale_socket",
]
