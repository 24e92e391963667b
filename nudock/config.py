"""Session configuration.

``DockConfig`` carries every knob a server or client needs: the transport
(unix socket or ``localhost``), the port the socket path and URL derive
from, the schema directory, whether schema validation runs, and the
waitress / httpx tuning values.

Values are validated once in ``__post_init__``; invalid values raise
:class:`~nudock.rpc.ConfigError`.  ``DockConfig.from_env()`` builds a
config from ``NUDOCK_*`` environment variables.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from nudock.metadata import DEFAULT_SCHEMAS_DIR
from nudock.rpc import ConfigError

__all__ = [
    "DEFAULT_PORT",
    "CommunicationType",
    "DockConfig",
]

DEFAULT_PORT = 1234

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off", ""})


class CommunicationType(Enum):
    """How the client reaches the server."""

    UNIX_DOMAIN_SOCKET = "unix"
    LOCALHOST = "localhost"
    TCP = "tcp"

    @classmethod
    def parse(cls, value: str) -> CommunicationType:
        """Parse a name or value, case-insensitively (``"unix"``, ``"LOCALHOST"``...)."""
        key = value.strip().lower()
        for member in cls:
            if key in (member.value, member.name.lower()):
                return member
        choices = ", ".join(m.value for m in cls)
        raise ConfigError(f"Unknown communication type {value!r} (expected one of: {choices})")


@dataclass(frozen=True)
class DockConfig:
    """Configuration shared by the server and client halves of a session.

    Attributes:
        debug: Validate every request and response against its schema.
        schemas_dir: Directory holding ``<name>.schema.json`` files.
        comm_type: Transport used between the two processes.
        port: Port for ``localhost``; also names the unix socket file.
        host: Host name the ``localhost`` transport binds and connects to.
        socket_dir: Directory holding the unix socket file.
        socket_path: Explicit unix socket path, overriding the one derived
            from *socket_dir* and *port*.
        threads: Number of waitress worker threads.
        timeout: Client timeout in seconds; ``None`` waits forever.
        shutdown_grace: Seconds between a version-mismatch reply and the
            listener shutting down.

    Raises:
        ConfigError: If a value is out of range.

    """

    debug: bool = True
    schemas_dir: Path = field(default=DEFAULT_SCHEMAS_DIR)
    comm_type: CommunicationType = CommunicationType.LOCALHOST
    port: int = DEFAULT_PORT
    host: str = "localhost"
    socket_dir: Path = Path("/tmp")
    socket_path: Path | None = None
    threads: int = 4
    timeout: float | None = None
    shutdown_grace: float = 0.1

    def __post_init__(self) -> None:
        """Validate and normalize configuration values."""
        object.__setattr__(self, "schemas_dir", Path(self.schemas_dir))
        object.__setattr__(self, "socket_dir", Path(self.socket_dir))
        if self.socket_path is not None:
            object.__setattr__(self, "socket_path", Path(self.socket_path))
        if not isinstance(self.comm_type, CommunicationType):
            raise ConfigError(f"comm_type must be a CommunicationType, got {self.comm_type!r}")
        if not 0 < self.port < 65536:
            raise ConfigError(f"port must be in 1..65535, got {self.port}")
        if not self.host:
            raise ConfigError("host must not be empty")
        if self.threads < 1:
            raise ConfigError(f"threads must be >= 1, got {self.threads}")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigError(f"timeout must be > 0 or None, got {self.timeout}")
        if self.shutdown_grace < 0:
            raise ConfigError(f"shutdown_grace must be >= 0, got {self.shutdown_grace}")

    @property
    def unix_socket_path(self) -> Path:
        """Socket file used by the unix transport."""
        if self.socket_path is not None:
            return self.socket_path
        return self.socket_dir / f"nudock-{self.port}.sock"

    @property
    def base_url(self) -> str:
        """Base URL the client sends requests to.

        Over a unix socket the host part is only used for the ``Host``
        header.
        """
        if self.comm_type is CommunicationType.UNIX_DOMAIN_SOCKET:
            return "http://localhost"
        return f"http://{self.host}:{self.port}"

    def describe_target(self) -> str:
        """Human-readable description of where the server listens."""
        if self.comm_type is CommunicationType.UNIX_DOMAIN_SOCKET:
            return f"unix:{self.unix_socket_path}"
        return f"{self.host}:{self.port}"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: object) -> DockConfig:
        """Build a config from ``NUDOCK_*`` environment variables.

        Recognized variables: ``NUDOCK_DEBUG``, ``NUDOCK_SCHEMAS_DIR``,
        ``NUDOCK_COMM_TYPE``, ``NUDOCK_PORT`` and ``NUDOCK_SOCKET_PATH``.
        Keyword *overrides* win over the environment.

        Raises:
            ConfigError: If a variable holds an invalid value.

        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        if "NUDOCK_DEBUG" in env:
            values["debug"] = _parse_bool("NUDOCK_DEBUG", env["NUDOCK_DEBUG"])
        if env.get("NUDOCK_SCHEMAS_DIR"):
            values["schemas_dir"] = Path(env["NUDOCK_SCHEMAS_DIR"])
        if env.get("NUDOCK_COMM_TYPE"):
            values["comm_type"] = CommunicationType.parse(env["NUDOCK_COMM_TYPE"])
        if env.get("NUDOCK_PORT"):
            try:
                values["port"] = int(env["NUDOCK_PORT"])
            except ValueError:
                raise ConfigError(f"NUDOCK_PORT must be an integer, got {env['NUDOCK_PORT']!r}") from None
        if env.get("NUDOCK_SOCKET_PATH"):
            values["socket_path"] = Path(env["NUDOCK_SOCKET_PATH"])
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]


def _parse_bool(name: str, value: str) -> bool:
    key = value.strip().lower()
    if key in _TRUTHY:
        return True
    if key in _FALSY:
        return False
    raise ConfigError(f"{name} must be a boolean (1/0, true/false, yes/no), got {value!r}")
