"""Shared state for one detection run."""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from storprobe.core.config import StorprobeConfig
from storprobe.detection.proc_files import ProcFileCache
from storprobe.models.device import StorageDevice
from storprobe.services.command import CommandRunner
from storprobe.services.smartctl import SmartctlBridge
from storprobe.services.tw_cli import TwCli


class DetectionState(Enum):
    """Orchestrator progress."""
    IDLE = "idle"
    ENUMERATING = "enumerating"
    FETCHING_BASIC_DATA = "fetching_basic_data"
    DONE = "done"


@dataclass
class ProbeResult:
    """Devices produced by one enumerator or prober, plus its error if any.

    An error does not void the devices; partial results are kept.
    """
    devices: List[StorageDevice] = field(default_factory=list)
    error: str = ""

    def add_error(self, message: str):
        self.error = f"{self.error}\n{message}" if self.error else message


@dataclass
class DetectionRun:
    """Everything a detection run accumulates.

    fetch_errors, fetch_error_outputs and fetch_error_devices are parallel
    lists with one entry per device whose basic data fetch failed.
    """
    config: StorprobeConfig
    bridge: SmartctlBridge
    run_cmd: CommandRunner
    blacklist_patterns: List[str] = field(default_factory=list)
    cache: ProcFileCache = field(default_factory=ProcFileCache)
    devices: List[StorageDevice] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    fetch_errors: List[str] = field(default_factory=list)
    fetch_error_outputs: List[str] = field(default_factory=list)
    fetch_error_devices: List[StorageDevice] = field(default_factory=list)
    state: DetectionState = DetectionState.IDLE
    _tw_cli: Optional[TwCli] = field(default=None, repr=False)

    def tw_cli(self) -> TwCli:
        if self._tw_cli is None:
            self._tw_cli = TwCli(self.config, self.run_cmd)
        return self._tw_cli

    def clear_fetch_errors(self):
        self.fetch_errors.clear()
        self.fetch_error_outputs.clear()
        self.fetch_error_devices.clear()

    def record_fetch_error(self, device: StorageDevice, message: str, output: str):
        self.fetch_errors.append(message)
        self.fetch_error_outputs.append(output)
        self.fetch_error_devices.append(device)
