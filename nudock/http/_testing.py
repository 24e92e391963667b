"""Synchronous test client for the HTTP transport.

Provides ``_SyncTestClient`` and ``make_sync_client`` which use
``falcon.testing.TestClient`` internally, so no real HTTP server is needed.
"""

from __future__ import annotations

from collections.abc import Callable
from urllib.parse import urlparse

import falcon
import falcon.testing

from nudock.rpc import Dispatcher

from ._server import make_wsgi_app


class _SyncTestResponse:
    """Minimal response object matching what ``DockClient`` expects from ``httpx.Response``."""

    __slots__ = ("content", "headers", "status_code")

    def __init__(self, status_code: int, content: bytes, headers: dict[str, str] | None = None) -> None:
        self.status_code = status_code
        self.headers: dict[str, str] = headers or {}
        self.content = content


class _SyncTestClient:
    """Sync HTTP client that calls a Falcon WSGI app directly via falcon.testing.TestClient."""

    __slots__ = ("_client", "_default_headers")

    def __init__(
        self,
        app: falcon.App[falcon.Request, falcon.Response],
        default_headers: dict[str, str] | None = None,
    ) -> None:
        self._client = falcon.testing.TestClient(app)
        self._default_headers: dict[str, str] = default_headers or {}

    def post(self, url: str, *, content: bytes, headers: dict[str, str]) -> _SyncTestResponse:
        """Send a synchronous POST using the Falcon test client."""
        merged = {**self._default_headers, **headers}
        # Strip scheme+host if present
        path = urlparse(url).path
        result = self._client.simulate_post(path, body=content, headers=merged)
        return _SyncTestResponse(result.status_code, result.content, headers=dict(result.headers))

    def close(self) -> None:
        """Close the client (no-op for test client)."""


def make_sync_client(
    dispatcher: Dispatcher,
    *,
    on_stop_requested: Callable[[], None] | None = None,
    default_headers: dict[str, str] | None = None,
) -> _SyncTestClient:
    """Create a synchronous test client for a dispatcher.

    Uses ``falcon.testing.TestClient`` internally; no socket is opened.

    Args:
        dispatcher: The dispatcher to test.
        on_stop_requested: See ``make_wsgi_app``.
        default_headers: Headers merged into every request.

    Returns:
        A sync client that can be passed to ``DockClient`` or
        ``NuDock.start_client(client=...)``.

    """
    app = make_wsgi_app(dispatcher, on_stop_requested=on_stop_requested)
    return _SyncTestClient(app, default_headers=default_headers)
