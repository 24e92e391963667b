"""Command-line interface for nudock.

Runs the example experiment server, checks the version handshake against
a running server, invokes single operations and validates schema files.

Usage::

    nudock --unix serve-example
    nudock --unix handshake
    nudock --unix call /set_parameters --json '{"osc_pars": {"Theta23": 0.52}}'
    nudock --unix call /log_likelihood --json '""'
    nudock check-schema schemas/*.schema.json

Transport options also come from ``NUDOCK_*`` environment variables; the
command-line options win.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any

import typer

from nudock.config import CommunicationType, DockConfig
from nudock.dock import NuDock
from nudock.experiment import Experiment, register_experiment
from nudock.logging_utils import configure_logging
from nudock.metadata import __version__
from nudock.rpc import NuDockError, RemoteError, load_schema_pair

# ---------------------------------------------------------------------------
# CLI config
# ---------------------------------------------------------------------------


@dataclass
class _CliConfig:
    """Holds resolved CLI options."""

    dock: DockConfig
    verbose: bool = False


app = typer.Typer(
    name="nudock",
    help="Local JSON RPC between an experiment server and a fitting client.",
    add_completion=False,
    no_args_is_help=True,
)


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def _main(
    ctx: typer.Context,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Port (also names the unix socket)")] = None,
    unix: Annotated[
        bool | None, typer.Option("--unix/--localhost", help="Use a unix domain socket or localhost TCP")
    ] = None,
    socket_path: Annotated[Path | None, typer.Option("--socket-path", help="Explicit unix socket path")] = None,
    schemas_dir: Annotated[Path | None, typer.Option("--schemas-dir", help="Directory of *.schema.json")] = None,
    no_debug: Annotated[bool, typer.Option("--no-debug", help="Skip request/response schema validation")] = False,
    json_logs: Annotated[bool, typer.Option("--json-logs", help="Emit logs as JSON lines")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging on stderr")] = False,
) -> None:
    """Configure transport and logging."""
    overrides: dict[str, Any] = {}
    if port is not None:
        overrides["port"] = port
    if unix is not None:
        overrides["comm_type"] = CommunicationType.UNIX_DOMAIN_SOCKET if unix else CommunicationType.LOCALHOST
    if socket_path is not None:
        overrides["socket_path"] = socket_path
    if schemas_dir is not None:
        overrides["schemas_dir"] = schemas_dir
    if no_debug:
        overrides["debug"] = False
    try:
        dock_config = DockConfig.from_env(**overrides)
    except NuDockError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    configure_logging(logging.DEBUG if verbose else logging.WARNING, json_format=json_logs)
    ctx.obj = _CliConfig(dock=dock_config, verbose=verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _print_json(data: object, *, pretty: bool = False) -> None:
    """Print JSON to stdout."""
    if pretty:
        typer.echo(json.dumps(data, indent=2, default=str))
    else:
        typer.echo(json.dumps(data, default=str))


def _emit_error(e: NuDockError) -> None:
    """Write a NuDockError to stderr as JSON."""
    err: dict[str, object] = {"type": type(e).__name__, "message": str(e)}
    if isinstance(e, RemoteError):
        err["status"] = e.status_code
    typer.echo(json.dumps({"error": err}, default=str), err=True)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("serve-example")
def serve_example(ctx: typer.Context) -> None:
    """Serve /ping, /set_parameters and /log_likelihood from a toy experiment."""
    config: _CliConfig = ctx.obj
    if not config.verbose:
        logging.getLogger("nudock").setLevel(logging.INFO)
    dock = NuDock(config.dock)
    register_experiment(dock, Experiment())
    try:
        dock.start_server()
    except (NuDockError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None


@app.command()
def handshake(ctx: typer.Context) -> None:
    """Check that a running server speaks the same version.

    Exits 1 when the server cannot be reached and 2 on a version mismatch.
    """
    config: _CliConfig = ctx.obj
    with NuDock(config.dock) as dock:
        try:
            result = dock.start_client()
        except NuDockError as e:
            _emit_error(e)
            raise typer.Exit(1) from None
    _print_json({"local": result.local, "remote": result.remote, "matched": result.matched})
    if not result.matched:
        raise typer.Exit(2)


@app.command()
def call(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Operation name, e.g. /ping")],
    json_input: Annotated[str, typer.Option("--json", "-j", help="JSON request document")] = "{}",
) -> None:
    """Perform the handshake, send one request and print the reply."""
    config: _CliConfig = ctx.obj
    try:
        message = json.loads(json_input)
    except ValueError as e:
        raise typer.BadParameter(f"--json is not valid JSON: {e}") from None
    if not name.startswith("/"):
        name = f"/{name}"

    with NuDock(config.dock) as dock:
        try:
            result = dock.start_client()
            if not result.matched:
                typer.echo(f"Warning: server version {result.remote!r} differs from {result.local!r}", err=True)
            reply = dock.send_request(name, message)
        except NuDockError as e:
            _emit_error(e)
            raise typer.Exit(1) from None
    _print_json(reply, pretty=True)


@app.command("check-schema")
def check_schema(
    paths: Annotated[list[Path], typer.Argument(help="Schema files to load and compile")],
) -> None:
    """Load and compile operation schema files."""
    failed = 0
    for path in paths:
        try:
            load_schema_pair(path)
        except NuDockError as e:
            failed += 1
            typer.echo(f"FAIL {path}: {e}")
        else:
            typer.echo(f"OK   {path}")
    if failed:
        typer.echo(f"{failed} of {len(paths)} schema file(s) failed", err=True)
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Print the nudock version."""
    typer.echo(__version__)
