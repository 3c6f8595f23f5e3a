"""Areca CLI invocation and `disk info` parsing."""
from dataclasses import dataclass
from typing import List, Optional

from storprobe.core.errors import CommandNotFoundError, VendorCliError
from storprobe.core.logger import get_logger
from storprobe.services.command import CommandRunner, run_command
from storprobe.services.table_parser import TableFormat, ci, detect_format, parse_rows, split_lines

logger = get_logger(__name__)

#   # Ch# ModelName                       Capacity  Usage
#   1  1  INTEL SSDSA2M160G2GC             160.0GB  System
NOENC_CHANNEL_FORMAT = TableFormat(
    name="noenc_channel",
    header=ci(r"^\s*#\s+Ch#"),
    row=ci(r"^\s*[0-9]+\s+([0-9]+)\s+([^\s]+)"),
    fields=("port", "model"),
)

#  #   ModelName        Serial#          FirmRev     Capacity  State
#  1   ST3250620NS      5QE1CP8S         3.AEE        250.1GB  RaidSet Member(1)
NOENC_MODEL_FORMAT = TableFormat(
    name="noenc_model",
    header=ci(r"^\s*#\s+ModelName"),
    row=ci(r"^\s*([0-9]+)\s+([^\s]+)"),
    fields=("port", "model"),
)

#   # Enc# Slot#   ModelName                        Capacity  Usage
#   5  01  Slot#5  N.A.                                0.0GB  N.A.
#  22  02  SLOT 14 ST910021AS                        100.0GB  Free
ENCLOSURE_FORMAT = TableFormat(
    name="enclosure",
    header=ci(r"^\s*#\s+Enc#"),
    row=ci(r"^\s*[0-9]+\s+([0-9]+)\s+(?:Slot#|SLOT\s+)([0-9]+)\s+([^\s]+)"),
    fields=("enclosure", "port", "model"),
)

DISK_INFO_FORMATS = (NOENC_CHANNEL_FORMAT, NOENC_MODEL_FORMAT, ENCLOSURE_FORMAT)

# Empty slot marker; only the first word of the model is captured.
PLACEHOLDER_MODEL = "N.A."


@dataclass
class ArecaDisk:
    """A populated Areca port, optionally behind an enclosure."""
    port: int
    model: str
    enclosure: Optional[int] = None

    @property
    def type_argument(self) -> str:
        if self.enclosure is None:
            return f"areca,{self.port}"
        return f"areca,{self.port}/{self.enclosure}"


def parse_disk_info(output: str) -> List[ArecaDisk]:
    """Parse `cli disk info` output into populated disks.

    Raises:
        VendorCliError: No known table header was found.
    """
    lines = split_lines(output)
    fmt = detect_format(lines, DISK_INFO_FORMATS)
    if fmt is None:
        raise VendorCliError("Could not read Areca CLI output: No valid header found.")

    logger.debug(f"Areca CLI output format: {fmt.name}")

    disks = []
    for row in parse_rows(lines, fmt):
        if row["model"] == PLACEHOLDER_MODEL:
            continue
        enclosure = int(row["enclosure"]) if "enclosure" in row else None
        disks.append(ArecaDisk(port=int(row["port"]), model=row["model"], enclosure=enclosure))
    return disks


class ArecaCli:
    """Runs the Areca command line utility."""

    def __init__(self, binary: str, run_cmd: Optional[CommandRunner] = None):
        self.binary = binary
        self.run_cmd = run_cmd or run_command

    def disk_info(self) -> str:
        try:
            result = self.run_cmd([self.binary, "disk", "info"])
        except CommandNotFoundError as exc:
            raise VendorCliError(str(exc)) from exc

        output = result.output
        if not output:
            raise VendorCliError("Areca CLI returned an empty output.")
        if result.returncode != 0:
            raise VendorCliError(f"Areca CLI exited with status {result.returncode}.")
        return output

    def get_disks(self) -> List[ArecaDisk]:
        return parse_disk_info(self.disk_info())
