"""Orchestrator server command."""

from typing import Annotated

import typer

from mockfleet.cli.output import print_error
from mockfleet.models.enums import LogLevel
from mockfleet.orchestrator.config import config


def serve(
    config_file: Annotated[
        str | None,
        typer.Option(
            "--config",
            "-c",
            help="YAML file with orchestrator options",
            envvar="MOCKFLEET_CONFIG",
        ),
    ] = None,
    bind: Annotated[
        str | None,
        typer.Option("--bind", help="Bind address", envvar="MOCKFLEET_BIND_IP"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Listen port", envvar="MOCKFLEET_SERVE_PORT"),
    ] = None,
    node_root: Annotated[
        str | None,
        typer.Option(
            "--node-root", help="Node directory root", envvar="MOCKFLEET_NODE_ROOT"
        ),
    ] = None,
    ledger: Annotated[
        str | None,
        typer.Option("--ledger", help="Identity ledger file", envvar="MOCKFLEET_LEDGER"),
    ] = None,
    rescan: Annotated[
        int | None,
        typer.Option(
            "--rescan",
            help="Reconcile every N seconds (0 = startup only)",
            envvar="MOCKFLEET_RECONCILE_INTERVAL",
        ),
    ] = None,
    log_level: Annotated[
        LogLevel | None,
        typer.Option("--log-level", "-l", help="Log level", envvar="MOCKFLEET_LOG_LEVEL"),
    ] = None,
):
    """Run the fleet orchestrator."""
    try:
        if config_file:
            config.load_yaml(config_file)
    except (OSError, ValueError) as e:
        print_error(f"Cannot load {config_file}: {e}")
        raise typer.Exit(1)

    # Command line options override the config file
    overrides = {
        "BIND_IP": bind,
        "PORT": port,
        "NODE_ROOT": node_root,
        "LEDGER_FILE": ledger,
        "RECONCILE_INTERVAL_SECONDS": rescan,
        "LOG_LEVEL": log_level,
    }
    config.update({k: v for k, v in overrides.items() if v is not None})

    from mockfleet.orchestrator.app import run

    run()
