"""Shared utilities for storprobe CLI modules."""
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from storprobe.config.loader import ConfigLoader
from storprobe.core.config import StorprobeConfig
from storprobe.core.errors import ConfigValidationError

# Default config search paths, nearest first
CONFIG_PATHS = [
    "./storprobe.yml",
    str(Path.home() / ".config" / "storprobe" / "storprobe.yml"),
    "/etc/storprobe/storprobe.yml",
]


def find_config(config_path: Optional[str] = None) -> Optional[str]:
    """Locate the active storprobe configuration file, if any."""
    if config_path:
        return config_path

    env_config = os.environ.get("STORPROBE_CONFIG")
    if env_config:
        return env_config

    for path in CONFIG_PATHS:
        if Path(path).exists():
            return path

    return None


def load_config_or_exit(console: Console, config_path: Optional[str] = None) -> StorprobeConfig:
    """Load configuration, printing the problem and exiting on failure."""
    path = find_config(config_path)
    try:
        return ConfigLoader(path).load()
    except FileNotFoundError as exc:
        print_error(console, str(exc))
        raise typer.Exit(1)
    except ConfigValidationError as exc:
        print_error(console, "Configuration error:")
        console.print(str(exc), markup=False)
        raise typer.Exit(1)


def print_success(console: Console, message: str, prefix: str = "✓") -> None:
    """Print success message with consistent formatting.

    Args:
        console: Rich console for output
        message: Success message
        prefix: Prefix symbol (default: ✓)
    """
    console.print(f"[green]{prefix}[/green] {message}")


def print_error(console: Console, message: str, prefix: str = "✗") -> None:
    """Print error message with consistent formatting."""
    console.print(f"[red]{prefix}[/red] {message}")


def print_warning(console: Console, message: str, prefix: str = "⚠") -> None:
    """Print warning message with consistent formatting."""
    console.print(f"[yellow]{prefix}[/yellow] {message}")


def print_info(console: Console, message: str, prefix: str = "ℹ") -> None:
    """Print info message with consistent formatting."""
    console.print(f"[cyan]{prefix}[/cyan] {message}")
