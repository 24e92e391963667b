"""Shared test fixtures for nudock tests."""

from __future__ import annotations

import json
import logging
import shutil
import socket
import tempfile
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from nudock import CommunicationType, DockConfig, Experiment, NuDock, register_experiment
from nudock.http import _SyncTestClient, make_sync_client
from nudock.rpc import Dispatcher, HandlerRegistry

SchemaWriter = Callable[..., Path]
"""Type alias for the ``write_schema`` fixture return type."""

ServerFactory = Callable[..., NuDock]
"""Type alias for the ``start_dock_server`` fixture return type."""


def _find_free_port() -> int:
    """Find a free TCP port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return int(s.getsockname()[1])


@pytest.fixture(autouse=True)
def _reset_nudock_logging() -> Iterator[None]:
    """Undo handlers and levels that the CLI installs on the ``nudock`` logger."""
    logger = logging.getLogger("nudock")
    level = logger.level
    handlers = list(logger.handlers)
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
    logger.setLevel(level)


@pytest.fixture
def short_tmp() -> Iterator[Path]:
    """A short temporary directory; unix socket paths are limited to ~104 bytes."""
    path = Path(tempfile.mkdtemp(prefix="nd-", dir="/tmp"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def free_port() -> int:
    """A TCP port nothing is listening on."""
    return _find_free_port()


@pytest.fixture
def write_schema(tmp_path: Path) -> SchemaWriter:
    """Return a helper writing ``<tmp>/schemas/<name>.schema.json`` from request/response sub-schemas."""
    schemas_dir = tmp_path / "schemas"
    schemas_dir.mkdir()

    def _write(name: str, request: Any = True, response: Any = True, *, raw: Any = None) -> Path:
        path = schemas_dir / f"{name.lstrip('/')}.schema.json"
        document = raw if raw is not None else {"properties": {"request": request, "response": response}}
        path.write_text(document if isinstance(document, str) else json.dumps(document))
        return path

    return _write


@pytest.fixture
def experiment() -> Experiment:
    """A fresh toy experiment."""
    return Experiment()


@pytest.fixture
def experiment_registry(experiment: Experiment) -> HandlerRegistry:
    """Registry with the experiment's three operations and the bundled schemas."""
    registry = HandlerRegistry()
    registry.register("/ping", lambda request: "pong")
    registry.register("/set_parameters", experiment.set_parameters)
    registry.register("/log_likelihood", experiment.log_likelihood)
    return registry


@pytest.fixture
def dispatcher(experiment_registry: HandlerRegistry) -> Dispatcher:
    """Dispatcher over the experiment registry with validation on."""
    return Dispatcher(experiment_registry, version="1.0")


@pytest.fixture
def client(dispatcher: Dispatcher) -> Iterator[_SyncTestClient]:
    """Create a sync Falcon test client with proper cleanup."""
    c = make_sync_client(dispatcher)
    yield c
    c.close()


@pytest.fixture
def start_dock_server(short_tmp: Path) -> Iterator[ServerFactory]:
    """Return a factory starting background experiment servers; all are stopped at teardown.

    The factory accepts ``version`` and any ``DockConfig`` overrides.  By
    default the server listens on a unix socket under ``short_tmp``.
    """
    started: list[NuDock] = []

    def _start(*, version: str = "1.0", experiment: Experiment | None = None, **overrides: Any) -> NuDock:
        options: dict[str, Any] = {
            "comm_type": CommunicationType.UNIX_DOMAIN_SOCKET,
            "socket_dir": short_tmp,
            "shutdown_grace": 0.05,
        }
        options.update(overrides)
        dock = NuDock(DockConfig(**options), version=version)
        register_experiment(dock, experiment if experiment is not None else Experiment())
        dock.start_server(block=False)
        assert dock.wait_until_listening(5.0)
        started.append(dock)
        return dock

    yield _start
    for dock in started:
        dock.stop_server(timeout=5.0)
