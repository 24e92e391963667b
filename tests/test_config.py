"""Tests for DockConfig and CommunicationType."""

from __future__ import annotations

from pathlib import Path

import pytest

from nudock.config import DEFAULT_PORT, CommunicationType, DockConfig
from nudock.metadata import DEFAULT_SCHEMAS_DIR
from nudock.rpc import ConfigError


class TestDefaults:
    """Tests for default values and derived properties."""

    def test_defaults(self) -> None:
        """Validation on, localhost on port 1234, bundled schemas."""
        config = DockConfig()
        assert config.debug is True
        assert config.comm_type is CommunicationType.LOCALHOST
        assert config.port == DEFAULT_PORT == 1234
        assert config.schemas_dir == DEFAULT_SCHEMAS_DIR
        assert config.timeout is None
        assert config.base_url == "http://localhost:1234"

    def test_unix_socket_path_from_port(self) -> None:
        """The socket path is derived from the socket directory and port."""
        config = DockConfig(comm_type=CommunicationType.UNIX_DOMAIN_SOCKET, port=5555, socket_dir="/run/nd")
        assert config.unix_socket_path == Path("/run/nd/nudock-5555.sock")
        assert config.base_url == "http://localhost"
        assert config.describe_target() == "unix:/run/nd/nudock-5555.sock"

    def test_explicit_socket_path_wins(self) -> None:
        """An explicit socket path overrides the derived one."""
        config = DockConfig(comm_type=CommunicationType.UNIX_DOMAIN_SOCKET, socket_path="/tmp/x.sock")
        assert config.unix_socket_path == Path("/tmp/x.sock")

    def test_paths_normalized(self) -> None:
        """String paths are converted to Path objects."""
        config = DockConfig(schemas_dir="schemas", socket_dir="/tmp")  # type: ignore[arg-type]
        assert isinstance(config.schemas_dir, Path)
        assert isinstance(config.socket_dir, Path)


class TestValidation:
    """Tests for __post_init__ validation."""

    @pytest.mark.parametrize(
        ("kwargs", "match"),
        [
            ({"port": 0}, "port"),
            ({"port": 70000}, "port"),
            ({"threads": 0}, "threads"),
            ({"timeout": 0}, "timeout"),
            ({"shutdown_grace": -1}, "shutdown_grace"),
            ({"host": ""}, "host"),
            ({"comm_type": "unix"}, "comm_type"),
        ],
    )
    def test_invalid_values(self, kwargs: dict[str, object], match: str) -> None:
        """Out-of-range values raise ConfigError."""
        with pytest.raises(ConfigError, match=match):
            DockConfig(**kwargs)  # type: ignore[arg-type]


class TestCommunicationType:
    """Tests for parsing transport names."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("unix", CommunicationType.UNIX_DOMAIN_SOCKET),
            ("UNIX_DOMAIN_SOCKET", CommunicationType.UNIX_DOMAIN_SOCKET),
            ("localhost", CommunicationType.LOCALHOST),
            (" TCP ", CommunicationType.TCP),
        ],
    )
    def test_parse(self, text: str, expected: CommunicationType) -> None:
        """Names and values parse case-insensitively."""
        assert CommunicationType.parse(text) is expected

    def test_parse_unknown(self) -> None:
        """Unknown names raise ConfigError listing the choices."""
        with pytest.raises(ConfigError, match="unix, localhost, tcp"):
            CommunicationType.parse("carrier-pigeon")


class TestFromEnv:
    """Tests for building a config from NUDOCK_* variables."""

    def test_empty_environment(self) -> None:
        """No variables gives the defaults."""
        assert DockConfig.from_env({}) == DockConfig()

    def test_all_variables(self, tmp_path: Path) -> None:
        """Every recognized variable is applied."""
        env = {
            "NUDOCK_DEBUG": "no",
            "NUDOCK_SCHEMAS_DIR": str(tmp_path),
            "NUDOCK_COMM_TYPE": "unix",
            "NUDOCK_PORT": "2345",
            "NUDOCK_SOCKET_PATH": "/tmp/custom.sock",
        }
        config = DockConfig.from_env(env)
        assert config.debug is False
        assert config.schemas_dir == tmp_path
        assert config.comm_type is CommunicationType.UNIX_DOMAIN_SOCKET
        assert config.port == 2345
        assert config.unix_socket_path == Path("/tmp/custom.sock")

    def test_overrides_win(self) -> None:
        """Keyword overrides take precedence over the environment."""
        config = DockConfig.from_env({"NUDOCK_PORT": "2345"}, port=3456)
        assert config.port == 3456

    def test_reads_os_environ(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without an explicit mapping, os.environ is used."""
        monkeypatch.setenv("NUDOCK_PORT", "4567")
        assert DockConfig.from_env().port == 4567

    @pytest.mark.parametrize(
        ("env", "match"),
        [
            ({"NUDOCK_PORT": "twelve"}, "NUDOCK_PORT"),
            ({"NUDOCK_DEBUG": "maybe"}, "NUDOCK_DEBUG"),
            ({"NUDOCK_COMM_TYPE": "smoke"}, "communication type"),
        ],
    )
    def test_invalid_variables(self, env: dict[str, str], match: str) -> None:
        """Unparseable variables raise ConfigError."""
        with pytest.raises(ConfigError, match=match):
            DockConfig.from_env(env)
