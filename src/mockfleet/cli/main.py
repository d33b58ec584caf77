"""
MockFleet unified CLI entry point.

Usage:
    mockfleet [OPTIONS] COMMAND [ARGS]...

Commands:
    serve     Run the orchestrator
    server    Simulated server management
    version   Show version
"""

from typing import Annotated

import typer

from mockfleet.cli import config as cli_config
from mockfleet.cli.commands import serve, server
from mockfleet.cli.output import console

app = typer.Typer(
    name="mockfleet",
    help="MockFleet simulated compute node fleet",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Register command groups
app.add_typer(server.app, name="server", help="Simulated server management")
app.command("serve")(serve.serve)


@app.callback()
def main(
    host: Annotated[
        str | None,
        typer.Option(
            "--host", "-H", help="Orchestrator address", envvar="MOCKFLEET_HOST"
        ),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-P", help="Orchestrator port", envvar="MOCKFLEET_PORT"),
    ] = None,
    output_format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: table|json"),
    ] = "table",
):
    """
    MockFleet CLI.

    Run the orchestrator and manage its simulated servers.
    """
    if host:
        cli_config.HOST_ADDRESS = host
    if port:
        cli_config.HOST_PORT = port
    cli_config.OUTPUT_FORMAT = output_format


@app.command("version")
def version():
    """Show version information."""
    from mockfleet import __version__

    console.print(f"MockFleet v{__version__}")


def run():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
