"""3ware tw_cli invocation and output parsing."""
import sys
from typing import List, Optional

from storprobe.core.config import StorprobeConfig, get_config
from storprobe.core.errors import CommandNotFoundError, VendorCliError
from storprobe.core.logger import get_logger
from storprobe.services.command import CommandRunner, make_runner
from storprobe.services.table_parser import TableFormat, ci, parse_rows, split_lines

logger = get_logger(__name__)

# p0     OK             u0   465.76 GB SATA  0   -            WDC WD5000AAKS
# p1     NOT-PRESENT    -    -         -     -   -            -
PORTS_FORMAT = TableFormat(
    name="ports",
    row=ci(r"^p([0-9]+)[ \t]+([^\t\n]+)"),
    fields=("port", "status"),
)

# c0    9650SE-4LPML 4         4       1       0     1     1     -
CONTROLLERS_FORMAT = TableFormat(
    name="controllers",
    row=ci(r"^c([0-9]+)[ \t]+"),
    fields=("controller",),
)

NOT_PRESENT = "NOT-PRESENT"


class TwCli:
    """Runs tw_cli and extracts controllers and populated ports."""

    def __init__(
        self,
        config: Optional[StorprobeConfig] = None,
        run_cmd: Optional[CommandRunner] = None,
        linux: Optional[bool] = None,
    ):
        self.config = config or get_config()
        self.run_cmd = run_cmd or make_runner(self.config.command_timeout)
        self.linux = sys.platform.startswith("linux") if linux is None else linux

    def binaries(self) -> List[str]:
        """Binaries to try, in order. Linux packages may carry an arch suffix."""
        binary = self.config.tw_cli_binary
        if not binary:
            raise VendorCliError("tw_cli binary is not specified in configuration.")
        if self.linux:
            return [binary, f"{binary}.x86_64", f"{binary}.x86"]
        return [binary]

    def execute(self, args: List[str]) -> str:
        """Run tw_cli with the first binary that works and return its output.

        Raises:
            VendorCliError: No binary ran, the output was empty, or the last
                binary tried exited with a non-zero status.
        """
        output = ""
        returncode = None
        for binary in self.binaries():
            try:
                result = self.run_cmd([binary] + args)
            except CommandNotFoundError:
                logger.debug(f"{binary} not found")
                continue
            output = result.output
            returncode = result.returncode
            if returncode == 0:
                break
            logger.debug(f"{binary} exited with status {returncode}")

        if not output:
            raise VendorCliError("tw_cli returned an empty output.")
        if returncode != 0:
            raise VendorCliError(f"tw_cli exited with status {returncode}: {output.splitlines()[0]}")
        return output

    def get_controllers(self) -> List[int]:
        """Return sorted controller numbers from `tw_cli show`."""
        rows = parse_rows(split_lines(self.execute(["show"])), CONTROLLERS_FORMAT)
        controllers = sorted(int(row["controller"]) for row in rows)
        for controller in controllers:
            logger.info(f"Found 3ware controller {controller}")
        return controllers

    def get_ports(self, controller: int) -> List[int]:
        """Return populated port numbers from `tw_cli /cN show all`."""
        output = self.execute([f"/c{controller}", "show", "all"])
        return parse_populated_ports(output)


def parse_populated_ports(output: str) -> List[int]:
    """Port numbers whose status is anything but NOT-PRESENT, in output order.

    Raises:
        VendorCliError: The output has no port rows at all.
    """
    rows = parse_rows(split_lines(output), PORTS_FORMAT)
    if not rows:
        raise VendorCliError("Could not read tw_cli output: No port list found.")

    ports = []
    for row in rows:
        status = (row["status"].split() or [""])[0]
        if status != NOT_PRESENT:
            ports.append(int(row["port"]))
    return ports
