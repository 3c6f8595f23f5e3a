"""Configuration CLI commands."""
import json
from dataclasses import asdict
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from storprobe.cli_support import find_config, load_config_or_exit, print_info

# Module-level console instance (will be set by register function)
console: Console = Console()


def show_config(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Config file path"),
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
):
    """Show the effective configuration after file and environment overrides."""
    settings = load_config_or_exit(console, config)
    values = asdict(settings)

    if as_json:
        typer.echo(json.dumps(values, indent=2))
        return

    path = find_config(config)
    if path:
        print_info(console, f"Config file: {path}")
    else:
        print_info(console, "No config file found, using defaults")

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Key")
    table.add_column("Value", overflow="fold")
    for key, value in values.items():
        table.add_row(key, escape(repr(value)))
    console.print(table)


def register_config_commands(app: typer.Typer, shared_console: Console):
    """Register configuration commands with the main Typer app."""
    global console
    console = shared_console

    app.command(name="show-config")(show_config)
