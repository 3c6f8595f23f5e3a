"""Detection CLI commands."""
import json
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from storprobe.cli_support import load_config_or_exit, print_error, print_success, print_warning
from storprobe.core.errors import GeneralDetectionErrors, StorageDeviceError
from storprobe.core.logger import set_console_level, setup_file_logging
from storprobe.detection.orchestrator import StorageDetector
from storprobe.models.device import StorageDevice

# Module-level console instance (will be set by register function)
console: Console = Console()


def device_summary(device: StorageDevice) -> Dict[str, Any]:
    """Plain-data view of a device for JSON output."""
    return {
        "device": device.device_path,
        "type": device.type_argument,
        "extra_arguments": device.extra_arguments,
        "source": device.source.value,
        "detected_type": device.detected_type.value,
        "model": device.model_name,
        "family": device.family_name,
        "serial": device.serial_number,
        "size": device.size,
        "smart_supported": device.smart_supported,
        "smart_enabled": device.smart_enabled,
        "drive_letters": device.drive_letters,
        "virtual_file": device.virtual_file or None,
    }


def _smart_status(device: StorageDevice) -> str:
    if device.smart_supported is None:
        return "[dim]?[/dim]"
    if not device.smart_supported:
        return "[dim]unsupported[/dim]"
    return "[green]enabled[/green]" if device.smart_enabled else "[yellow]disabled[/yellow]"


def _render_devices(devices: List[StorageDevice]) -> None:
    table = Table(title="Detected Drives", show_header=True, header_style="bold cyan")
    table.add_column("Device")
    table.add_column("Type")
    table.add_column("Model", overflow="fold")
    table.add_column("Serial")
    table.add_column("Size")
    table.add_column("SMART")
    table.add_column("Letters")

    for device in devices:
        name = f"Virtual ({device.virtual_file})" if device.is_virtual else device.device_path
        if device.type_argument:
            name += f" -d {device.type_argument}"
        table.add_row(
            escape(name),
            device.detected_type.display_name,
            escape(device.model_name or "-"),
            escape(device.serial_number or "-"),
            escape(device.size or "-"),
            _smart_status(device),
            escape(device.format_drive_letters()) or "-",
        )

    console.print(table)


def detect(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Config file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every port probed"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log warnings and errors"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Also write logs to this file"),
    fail_fast: bool = typer.Option(False, "--fail-fast", help="Stop at the first device query error"),
    no_scan: bool = typer.Option(False, "--no-scan", help="Skip scanning, use only added devices"),
    add_device: Optional[List[str]] = typer.Option(
        None, "--add-device", "-a", help="Add a device as DEVICE[::TYPE[::EXTRA_OPTIONS]]"
    ),
    load_virtual: Optional[List[str]] = typer.Option(
        None, "--load-virtual", help="Load a saved smartctl output file as a virtual device"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON"),
):
    """Detect storage devices and query their basic SMART info."""
    set_console_level(verbose=verbose, quiet=quiet)
    if log_file:
        setup_file_logging(log_file, verbose=verbose)

    settings = load_config_or_exit(console, config)
    detector = StorageDetector(settings)
    run = detector.new_run()

    try:
        detector.detect_and_fetch_basic_data(
            run,
            manual_devices=add_device or [],
            virtual_files=load_virtual or [],
            no_scan=no_scan,
            return_first_error=fail_fast,
        )
    except GeneralDetectionErrors as exc:
        print_error(console, "No drives detected")
        for message in exc.messages:
            console.print(f"  {escape(message)}")
        raise typer.Exit(1)
    except StorageDeviceError as exc:
        print_error(console, escape(f"{exc.device}: {exc}" if exc.device else str(exc)))
        if exc.output:
            console.print(exc.output, markup=False, highlight=False)
        raise typer.Exit(1)

    if as_json:
        payload = {
            "devices": [device_summary(d) for d in run.devices],
            "errors": run.errors,
            "fetch_errors": run.fetch_errors,
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    _render_devices(run.devices)
    for message in run.errors:
        print_warning(console, escape(message))
    for message in run.fetch_errors:
        print_warning(console, escape(message))
    print_success(console, f"{len(run.devices)} drive(s) detected")


def register_detect_commands(app: typer.Typer, shared_console: Console):
    """Register detection commands with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(detect)
