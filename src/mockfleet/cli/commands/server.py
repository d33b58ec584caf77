"""Server management commands."""

import json
from typing import Annotated

import typer
from rich.table import Table

from mockfleet.cli import api as client
from mockfleet.cli import config as cli_config
from mockfleet.cli.output import (
    console,
    format_mib,
    print_error,
    print_json,
    print_success,
)

app = typer.Typer(help="Simulated server management commands")


# =============================================================================
# Formatting
# =============================================================================


def format_server_table(servers: list[dict]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("HOSTNAME")
    table.add_column("UUID", style="cyan")
    table.add_column("MEMORY", justify="right")
    table.add_column("PROFILE")

    for server in sorted(servers, key=lambda s: s["sysinfo"].get("Hostname", "")):
        sysinfo = server["sysinfo"]
        table.add_row(
            sysinfo.get("Hostname", "-"),
            server["uuid"],
            format_mib(sysinfo.get("MiB of Memory")),
            server.get("profile") or "-",
        )
    return table


def format_profile_table(profiles: list[dict]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("PROFILE")
    table.add_column("MANUFACTURER")
    table.add_column("MEMORY", justify="right")
    table.add_column("DISKS", justify="right")
    table.add_column("NICS", justify="right")

    for profile in profiles:
        table.add_row(
            profile["name"],
            profile.get("manufacturer") or "-",
            format_mib(profile.get("memory_mib")),
            str(profile.get("disks", 0)),
            str(profile.get("nics", 0)),
        )
    return table


# =============================================================================
# Commands
# =============================================================================


@app.command("list")
def list_servers():
    """List simulated servers."""
    try:
        servers = client.get_servers()

        if cli_config.OUTPUT_FORMAT == "json":
            print_json(servers)
            return

        if not servers:
            console.print("[yellow]No servers found.[/yellow]")
            return

        console.print(format_server_table(servers))

    except client.APIError as e:
        print_error(str(e))
        raise typer.Exit(1)


@app.command("get")
def get_server(
    uuid: Annotated[str, typer.Argument(help="Server UUID")],
):
    """Show the full sysinfo of a server."""
    try:
        server = client.get_server(uuid)
        print_json(server["sysinfo"])

    except client.APIError as e:
        print_error(str(e))
        raise typer.Exit(1)


@app.command("create")
def create_server(
    profile: Annotated[
        str | None,
        typer.Argument(help="Hardware profile name (random if omitted)"),
    ] = None,
    count: Annotated[
        int, typer.Option("--count", "-c", min=1, help="Number of servers to create")
    ] = 1,
    payload_file: Annotated[
        str | None,
        typer.Option("--file", "-f", help="JSON file with a sysinfo fragment"),
    ] = None,
):
    """Create one or more simulated servers."""
    payload: dict = {}
    if payload_file:
        try:
            with open(payload_file) as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            print_error(f"Cannot read {payload_file}: {e}")
            raise typer.Exit(1)

    try:
        if profile:
            names = [p["name"] for p in client.get_profiles()]
            if profile not in names:
                print_error(
                    f"Unknown profile {profile!r}. Available: {', '.join(names)}"
                )
                raise typer.Exit(1)
            payload["Product"] = profile

        if count > 1 and "UUID" in payload:
            print_error("--count cannot be combined with a fixed UUID")
            raise typer.Exit(1)

        for _ in range(count):
            server = client.create_server(dict(payload))
            hostname = server["sysinfo"].get("Hostname", "")
            print_success(f"Created {server['uuid']} ({hostname})")

    except client.APIError as e:
        print_error(str(e))
        raise typer.Exit(1)


@app.command("delete")
def delete_server(
    uuids: Annotated[list[str], typer.Argument(help="Server UUID(s)")],
):
    """Delete simulated servers."""
    failed = False
    for uuid in uuids:
        try:
            client.delete_server(uuid)
            print_success(f"Deleted {uuid}")
        except client.APIError as e:
            print_error(f"{uuid}: {e}")
            failed = True

    if failed:
        raise typer.Exit(1)


@app.command("profiles")
def list_profiles():
    """List canned hardware profiles."""
    try:
        profiles = client.get_profiles()

        if cli_config.OUTPUT_FORMAT == "json":
            print_json(profiles)
            return

        console.print(format_profile_table(profiles))

    except client.APIError as e:
        print_error(str(e))
        raise typer.Exit(1)


@app.command("list-profiles", hidden=True)
def list_profile_names():
    """Print profile names, one per line (for shell completion)."""
    try:
        for profile in client.get_profiles():
            console.print(profile["name"], highlight=False)

    except client.APIError as e:
        print_error(str(e))
        raise typer.Exit(1)
