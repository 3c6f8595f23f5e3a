"""smartctl invocation: the device query bridge used by every detector."""
import re
import shlex
import sys
from pathlib import Path
from typing import List, Optional

from storprobe.core.config import StorprobeConfig, get_config
from storprobe.core.errors import CommandNotFoundError, StorageDeviceError
from storprobe.core.logger import get_logger
from storprobe.services.command import CommandRunner, make_runner
from storprobe.services.win_registry import HKEY_LOCAL_MACHINE, RegistryReader

logger = get_logger(__name__)

BASIC_QUERY_OPTIONS = ["--info", "--health", "--capabilities"]

# Messages for each bit of the smartctl exit status, lowest bit first.
EXIT_STATUS_MESSAGES = [
    "Command line did not parse.",
    "Device open failed, or device did not return an IDENTIFY DEVICE structure.",
    "Some SMART command to the disk failed, or there was a checksum error in a SMART data structure",
    "SMART status check returned \"DISK FAILING\"",
    "SMART status check returned \"DISK OK\" but some prefail Attributes are less than threshold.",
    "SMART status check returned \"DISK OK\" but we found that some (usage or prefail) "
    "Attributes have been less than threshold at some time in the past.",
    "The device error log contains records of errors.",
    "The device self-test log contains records of errors.",
]

# Only these bits mean the query itself failed; the rest describe drive health.
EXIT_CANT_PARSE = 1 << 0
EXIT_OPEN_FAILED = 1 << 1

SMARTMONTOOLS_REGPATHS = [
    "SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\Uninstall\\smartmontools",
    "SOFTWARE\\WOW6432Node\\Microsoft\\Windows\\CurrentVersion\\Uninstall\\smartmontools",
]
SMARTMONTOOLS_REGKEY = "InstallLocation"
SMARTMONTOOLS_SMARTCTL = "bin\\smartctl-nc.exe"

PERMISSION_DENIED_PATTERN = re.compile(r"Smartctl open device.+Permission denied", re.IGNORECASE | re.MULTILINE)


def translate_exit_status(status: int) -> str:
    """Describe every bit set in a smartctl exit status, one per line."""
    return "\n".join(
        message for bit, message in enumerate(EXIT_STATUS_MESSAGES) if status & (1 << bit)
    )


class SmartctlBridge:
    """Runs smartctl against devices and returns its text output."""

    def __init__(
        self,
        config: Optional[StorprobeConfig] = None,
        run_cmd: Optional[CommandRunner] = None,
        windows: Optional[bool] = None,
        registry: Optional[RegistryReader] = None,
    ):
        self.config = config or get_config()
        self.run_cmd = run_cmd or make_runner(self.config.command_timeout)
        self.windows = sys.platform == "win32" if windows is None else windows
        self.registry = registry or RegistryReader()
        self._binary: Optional[str] = None

    def get_smartctl_binary(self) -> str:
        """Configured smartctl binary, preferring a smartmontools install on Windows."""
        if self._binary is not None:
            return self._binary

        binary = self.config.smartctl_binary
        if self.windows and self.config.win32_search_smartctl_in_smartmontools:
            install_dir = self.registry.get_first(HKEY_LOCAL_MACHINE, SMARTMONTOOLS_REGPATHS, SMARTMONTOOLS_REGKEY)
            if install_dir:
                candidate = Path(install_dir) / SMARTMONTOOLS_SMARTCTL
                if candidate.is_file():
                    logger.info(f"Using smartctl from smartmontools installation: {candidate}")
                    binary = str(candidate)

        self._binary = binary
        return binary

    def device_options(self, device: str, type_argument: str = "", extra_arguments: str = "") -> List[str]:
        """Build per-device options: -d type, extra args, then configured options.

        Later -d options override earlier ones on the smartctl command line.
        """
        options = []
        if type_argument:
            options += ["-d", type_argument]
        if extra_arguments:
            options += self._split(extra_arguments, device)
        configured = self.config.device_options_for(device, type_argument)
        if configured:
            options += self._split(configured, device)
        return options

    def query_basic(self, device_path: str, type_argument: str = "", extra_arguments: str = "") -> str:
        """Run a basic info query (--info --health --capabilities).

        Raises:
            StorageDeviceError: smartctl could not query the device. The
                captured output is attached to the exception.
        """
        options = self.device_options(device_path, type_argument, extra_arguments)
        return self.execute(device_path, options, BASIC_QUERY_OPTIONS)

    def execute(self, device: str, device_options: List[str], command_options: List[str]) -> str:
        """Run smartctl on a device and return its normalized output."""
        # Windows device names (pd0, csmi0,1) have no slashes.
        if not self.windows and "/" not in device:
            raise StorageDeviceError("Invalid device name specified.", device=device)

        argv = self._base_argv(device) + list(device_options) + list(command_options) + [device]

        try:
            result = self.run_cmd(argv)
        except CommandNotFoundError as exc:
            raise StorageDeviceError(str(exc), device=device)

        output = result.output

        if result.timed_out:
            raise StorageDeviceError("Smartctl execution timed out.", device=device, output=output)

        failed = result.returncode < 0 or result.returncode & (EXIT_CANT_PARSE | EXIT_OPEN_FAILED)
        if failed:
            if PERMISSION_DENIED_PATTERN.search(output):
                raise StorageDeviceError("Permission denied while opening device.", device=device, output=output)
            if result.returncode < 0:
                message = f"Smartctl was terminated by signal {-result.returncode}."
            else:
                message = translate_exit_status(result.returncode)
            raise StorageDeviceError(message, device=device, output=output)

        if not output:
            raise StorageDeviceError("Smartctl returned an empty output.", device=device)

        return output

    def scan_all(self) -> str:
        """Run smartctl --scan-open and return its output.

        Raises:
            StorageDeviceError: smartctl could not run or printed nothing.
        """
        argv = self._base_argv("--scan-open") + ["--scan-open"]
        try:
            result = self.run_cmd(argv)
        except CommandNotFoundError as exc:
            raise StorageDeviceError(str(exc))

        output = result.output
        if not output:
            raise StorageDeviceError("Smartctl returned an empty output.")
        return output

    def _base_argv(self, device: str) -> List[str]:
        binary = self.get_smartctl_binary()
        if not binary:
            raise StorageDeviceError("Smartctl binary is not specified in configuration.", device=device)
        argv = [binary]
        if self.config.smartctl_options.strip():
            argv += self._split(self.config.smartctl_options, device)
        return argv

    def _split(self, options: str, device: str) -> List[str]:
        try:
            return shlex.split(options, posix=not self.windows)
        except ValueError:
            raise StorageDeviceError("Invalid command line specified.", device=device)
