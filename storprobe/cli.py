#!/usr/bin/env python3
"""storprobe CLI - find the drives smartctl can talk to."""

import typer
from rich.console import Console

from storprobe.cli_config_commands import register_config_commands
from storprobe.cli_detect_commands import register_detect_commands
from storprobe.core.logger import get_logger

app = typer.Typer(
    name="storprobe",
    help="""storprobe - storage device detection for smartctl

Finds plain disks and drives hidden behind 3ware, Areca, Adaptec
and HP RAID controllers.

Quick start:
  storprobe detect                      # Scan and list drives
  storprobe detect -a /dev/sdb::sat     # Add a device by hand
  storprobe show-config                 # Effective settings
""",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

# Attach modular subcommands
register_detect_commands(app, console)
register_config_commands(app, console)

if __name__ == "__main__":
    app()
