"""Sample smartctl outputs and fake OS seams shared by the tests."""
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from storprobe.core.errors import CommandNotFoundError
from storprobe.services.command import CommandResult
from storprobe.services.win_registry import RegistryReader

BANNER = """smartctl 7.3 2022-02-28 r5338 [x86_64-linux-6.1.0-13-amd64] (local build)
Copyright (C) 2002-22, Bruce Allen, Christian Franke, www.smartmontools.org
"""


def smartctl_output(body: str) -> str:
    return BANNER + "\n" + body


def ata_output(model: str, serial: str, rotation: str = "7200 rpm") -> str:
    return smartctl_output(f"""=== START OF INFORMATION SECTION ===
Model Family:     Western Digital Blue
Device Model:     {model}
Serial Number:    {serial}
User Capacity:    1,000,204,886,016 bytes [1.00 TB]
Rotation Rate:    {rotation}
ATA Version is:   ACS-3 T13/2161-D revision 3b
SMART support is: Available - device has SMART capability.
SMART support is: Enabled

=== START OF READ SMART DATA SECTION ===
SMART overall-health self-assessment test result: PASSED
""")


ATA_HDD_OUTPUT = ata_output("WDC WD10EZEX-00BN5A0", "WD-WCC3F0000001")
ATA_SSD_OUTPUT = ata_output("Samsung SSD 860 EVO 500GB", "S3Z1NB0K000001", "Solid State Device")

SCSI_OUTPUT = smartctl_output("""=== START OF INFORMATION SECTION ===
Vendor:               SEAGATE
Product:              ST4000NM0023
Revision:             0004
User Capacity:        4,000,787,030,016 bytes [4.00 TB]
Serial number:        Z1Z0AAAA
Device type:          disk
Transport protocol:   SAS (SPL-3)
SMART support is:     Available - device has SMART capability.
SMART support is:     Enabled
""")

NVME_OUTPUT = smartctl_output("""=== START OF INFORMATION SECTION ===
Model Number:                       Samsung SSD 970 EVO Plus 1TB
Serial Number:                      S4EWNX0R000001
Firmware Version:                   2B2QEXM7
Total NVM Capacity:                 1,000,204,886,016 [1.00 TB]
NVMe Version:                       1.3
""")

OPEN_FAILED_OUTPUT = smartctl_output(
    "Smartctl open device: {device} failed: Input/output error\n"
)
NO_SUCH_DEVICE_OUTPUT = smartctl_output(
    "Smartctl open device: {device} failed: No such device\n"
)
NO_SUCH_ADDRESS_OUTPUT = smartctl_output(
    "Smartctl open device: {device} failed: No such device or address\n"
)
NO_ARECA_OUTPUT = smartctl_output("No Areca controller found on {device}\n")
VALID_ARGUMENTS_OUTPUT = smartctl_output(
    "=======> INVALID ARGUMENT TO -d: {type}\n=======> VALID ARGUMENTS ARE: ata, scsi, sat, ...\n"
)
SPECIFY_TYPE_OUTPUT = smartctl_output(
    "/dev/sdb: Unknown USB bridge [0x152d:0x0578 (0x209)]\n"
    "Please specify device type with the -d option.\n"
)
THREEWARE_FRONTEND_OUTPUT = smartctl_output(
    "=== START OF INFORMATION SECTION ===\n"
    "Vendor:               AMCC\n"
    "Product:              9650SE-16M DISK\n"
    "\n"
    "AMCC/3ware controller, please try adding '-d 3ware,N'\n"
    "you may need to replace /dev/sda with /dev/twlN, /dev/twaN or /dev/tweN\n"
)


class FakeCommands:
    """Command runner standing in for smartctl and vendor CLIs.

    smartctl answers are keyed by (device, type); anything unknown fails to
    open. Other commands are keyed by their full argv.
    """

    def __init__(self, smartctl_binary: str = "smartctl"):
        self.smartctl_binary = smartctl_binary
        self.devices: Dict[Tuple[str, str], Tuple[int, str]] = {}
        self.commands: Dict[Tuple[str, ...], CommandResult] = {}
        self.scan_open: Optional[CommandResult] = None
        self.calls: List[List[str]] = []

    def device(self, device: str, type_argument: str = "", output: str = "", returncode: int = 0):
        self.devices[(device, type_argument)] = (returncode, output)
        return self

    def command(self, argv: List[str], stdout: str = "", returncode: int = 0):
        self.commands[tuple(argv)] = CommandResult(returncode=returncode, stdout=stdout)
        return self

    def smartctl_calls(self) -> List[Tuple[str, str]]:
        return [self._device_and_type(argv) for argv in self.calls
                if argv[0] == self.smartctl_binary and "--scan-open" not in argv]

    def _device_and_type(self, argv: List[str]) -> Tuple[str, str]:
        type_argument = argv[argv.index("-d") + 1] if "-d" in argv else ""
        return argv[-1], type_argument

    def __call__(self, argv: List[str]) -> CommandResult:
        self.calls.append(list(argv))
        if argv[0] == self.smartctl_binary:
            if "--scan-open" in argv:
                return self.scan_open or CommandResult(returncode=0, stdout="")
            device, type_argument = self._device_and_type(argv)
            returncode, output = self.devices.get(
                (device, type_argument), (2, OPEN_FAILED_OUTPUT)
            )
            return CommandResult(
                returncode=returncode,
                stdout=output.format(device=device, type=type_argument),
            )

        key = tuple(argv)
        if key in self.commands:
            return self.commands[key]
        raise CommandNotFoundError(f"Command not found: {argv[0]}")


class FakeRegistry(RegistryReader):
    """Registry string values keyed by path."""

    def __init__(self, values: Optional[Dict[str, str]] = None):
        self.values = values or {}

    def get_string(self, root, path, key):
        return self.values.get(path)


def write_file(path: Path, contents: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents)
    return path
