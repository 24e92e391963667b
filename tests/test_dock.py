"""End-to-end tests: NuDock server and client over a real waitress listener."""

from __future__ import annotations

import socket
import threading
from pathlib import Path

import pytest

from nudock import (
    CommunicationType,
    ConfigError,
    DockConfig,
    Experiment,
    NuDock,
    RemoteError,
    Role,
    RouteNotFoundError,
    TransportError,
)
from nudock.http import make_sync_client, remove_stale_socket
from nudock.rpc import Dispatcher

from .conftest import ServerFactory


def _client_for(server: NuDock, *, version: str = "1.0") -> NuDock:
    return NuDock(server.config, version=version)


class TestUnixSocket:
    """Client and server over a unix domain socket."""

    def test_ping(self, start_dock_server: ServerFactory) -> None:
        """``/ping`` with ``{}`` returns ``"pong"``."""
        server = start_dock_server()
        with _client_for(server) as client:
            result = client.start_client()
            assert result.matched
            assert client.send_request("/ping", {}) == "pong"

    def test_socket_path_derived_from_port(self, start_dock_server: ServerFactory, short_tmp: Path) -> None:
        """The socket file is ``<socket_dir>/nudock-<port>.sock`` and is removed on shutdown."""
        server = start_dock_server(port=4242)
        socket_file = short_tmp / "nudock-4242.sock"
        assert socket_file.exists()
        server.stop_server(timeout=5.0)
        assert not socket_file.exists()

    def test_fit_loop(self, start_dock_server: ServerFactory) -> None:
        """Setting parameters and reading the log-likelihood round-trips through the experiment."""
        experiment = Experiment()
        server = start_dock_server(experiment=experiment)
        with _client_for(server) as client:
            client.start_client()
            request = {"osc_pars": {"Theta23": 0.6, "DeltaCP": 1.0}, "sys_pars": {"sys1": 2.0}}
            assert client.send_request("/set_parameters", request) == {"status": "parameters set"}
            reply = client.send_request("/log_likelihood", "")
            assert reply["log_likelihood"] == pytest.approx(0.1**2 + 1.0 + 4.0)
        assert experiment.sys_pars == {"sys1": 2.0}

    def test_typed_errors(self, start_dock_server: ServerFactory) -> None:
        """Failures surface as typed exceptions and the server keeps serving."""
        server = start_dock_server()
        with _client_for(server) as client:
            client.start_client()
            with pytest.raises(RouteNotFoundError):
                client.send_request("/unknown", {})
            with pytest.raises(RemoteError) as exc_info:
                client.send_request("/set_parameters", {"osc_pars": {"x": "not-a-number"}})
            assert exc_info.value.status_code == 400
            assert client.send_request("/ping", {}) == "pong"

    def test_request_counters(self, start_dock_server: ServerFactory) -> None:
        """Both sides count every request attempt; the handshake is not counted."""
        server = start_dock_server()
        with _client_for(server) as client:
            client.start_client()
            client.send_request("/ping", {})
            client.send_request("/ping", {})
            with pytest.raises(RouteNotFoundError):
                client.send_request("/missing", {})
            assert client.request_count == 3
        assert server.request_count == 3

    def test_concurrent_clients(self, start_dock_server: ServerFactory) -> None:
        """Several clients can call the server at once."""
        server = start_dock_server(threads=4)
        errors: list[BaseException] = []

        def run() -> None:
            try:
                with _client_for(server) as client:
                    client.start_client()
                    for _ in range(5):
                        assert client.send_request("/ping", {}) == "pong"
            except BaseException as e:  # surfaced in the main thread
                errors.append(e)

        threads = [threading.Thread(target=run) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=20)
        assert errors == []
        assert server.request_count == 20


class TestLocalhost:
    """Client and server over TCP on localhost."""

    def test_ping(self, start_dock_server: ServerFactory, free_port: int) -> None:
        """The localhost transport serves the same operations."""
        server = start_dock_server(comm_type=CommunicationType.LOCALHOST, host="127.0.0.1", port=free_port)
        with _client_for(server) as client:
            client.start_client()
            assert client.send_request("/ping", {}) == "pong"


class TestVersionMismatch:
    """The server stops listening after answering a mismatched handshake."""

    def test_server_stops(self, start_dock_server: ServerFactory) -> None:
        """A client with another version gets the reply, then the server shuts down."""
        server = start_dock_server(version="1.0")
        with _client_for(server, version="2.0") as client:
            result = client.start_client()
            assert not result.matched
            assert result.remote == "1.0"
        assert server.wait_stopped(5.0)
        assert not server.serving
        assert not server.config.unix_socket_path.exists()

    def test_matching_client_keeps_server_up(self, start_dock_server: ServerFactory) -> None:
        """A matching handshake leaves the server listening."""
        server = start_dock_server(version="1.0")
        with _client_for(server) as client:
            client.start_client()
        assert not server.wait_stopped(0.3)
        assert server.serving


class TestSessionRules:
    """Tests for NuDock's one-time, mutually exclusive start."""

    def test_second_start_rejected(self, start_dock_server: ServerFactory) -> None:
        """A started server cannot be started again or turned into a client."""
        server = start_dock_server()
        assert server.role is Role.SERVER
        with pytest.raises(ConfigError, match="already started"):
            server.start_server(block=False)
        with pytest.raises(ConfigError, match="already started"):
            server.start_client()

    def test_client_cannot_become_server(self, dispatcher: Dispatcher) -> None:
        """A started client cannot start a server."""
        dock = NuDock(version="1.0")
        dock.start_client(client=make_sync_client(dispatcher))
        assert dock.role is Role.CLIENT
        with pytest.raises(ConfigError):
            dock.start_server(block=False)

    def test_tcp_rejected(self) -> None:
        """The TCP transport is refused at startup."""
        dock = NuDock(DockConfig(comm_type=CommunicationType.TCP))
        with pytest.raises(ConfigError, match="TCP"):
            dock.start_server(block=False)
        with pytest.raises(ConfigError, match="TCP"):
            dock.start_client()
        assert dock.role is None

    def test_send_before_start(self) -> None:
        """Sending without a started client raises ConfigError."""
        with pytest.raises(ConfigError, match="not started"):
            NuDock().send_request("/ping", {})

    def test_empty_request_name(self, dispatcher: Dispatcher) -> None:
        """An empty operation name is rejected client side."""
        dock = NuDock(version="1.0")
        dock.start_client(client=make_sync_client(dispatcher))
        with pytest.raises(ValueError, match="must not be empty"):
            dock.send_request("", {})
        assert dock.request_count == 0

    def test_register_after_start_rejected(self, start_dock_server: ServerFactory) -> None:
        """The registry is frozen once the server starts."""
        server = start_dock_server()
        with pytest.raises(ConfigError):
            server.register("/late", lambda request: request)

    def test_no_server_raises_transport_error(self, short_tmp: Path) -> None:
        """Starting a client with no server listening raises TransportError."""
        dock = NuDock(DockConfig(comm_type=CommunicationType.UNIX_DOMAIN_SOCKET, socket_dir=short_tmp))
        with pytest.raises(TransportError):
            dock.start_client()
        with pytest.raises(ConfigError, match="not started"):
            dock.send_request("/ping", {})

    def test_in_process_client(self, dispatcher: Dispatcher) -> None:
        """``start_client`` accepts a pre-built test client."""
        with NuDock(version="1.0") as dock:
            assert dock.start_client(client=make_sync_client(dispatcher)).matched
            assert dock.send_request("/ping", {}) == "pong"
            assert dock.handshake_result is not None


class TestStaleSocket:
    """Tests for leftover socket files."""

    def test_stale_socket_replaced(self, start_dock_server: ServerFactory, short_tmp: Path) -> None:
        """A socket file left by a dead server does not block startup."""
        path = short_tmp / "nudock-1234.sock"
        stale = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        stale.bind(str(path))
        stale.close()
        assert path.exists()
        server = start_dock_server()
        with _client_for(server) as client:
            client.start_client()
            assert client.send_request("/ping", {}) == "pong"

    def test_regular_file_not_replaced(self, short_tmp: Path) -> None:
        """A regular file at the socket path is left alone."""
        path = short_tmp / "important.txt"
        path.write_text("keep me")
        with pytest.raises(ConfigError, match="not a socket"):
            remove_stale_socket(path)
        assert path.read_text() == "keep me"

    def test_missing_path_is_fine(self, short_tmp: Path) -> None:
        """Nothing to remove is not an error."""
        remove_stale_socket(short_tmp / "absent.sock")
