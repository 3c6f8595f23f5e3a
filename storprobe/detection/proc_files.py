"""Linux /proc data sources, read once per detection run."""
import re
from pathlib import Path
from typing import Dict, List, Tuple

from storprobe.core.errors import ProcReadError
from storprobe.core.logger import get_logger

logger = get_logger(__name__)

SCSI_HOST_PATTERN = re.compile(r"^Host: scsi([0-9]+)", re.IGNORECASE)
SCSI_VENDOR_PATTERN = re.compile(r"Vendor: ", re.IGNORECASE)
SG_DEVICE_PATTERN = re.compile(r"^" + r"\s+".join([r"([0-9-]+)"] * 9))


class ProcFileCache:
    """Contents of pseudo-files keyed by path.

    Owned by a single detection run and cleared when the run starts, so
    every prober sees the same snapshot without re-reading.
    """

    def __init__(self):
        self._contents: Dict[str, str] = {}

    def clear(self):
        self._contents.clear()

    def read(self, path: str) -> str:
        """Return file contents, reading it on first use.

        Raises:
            ProcReadError: The file is missing or unreadable.
        """
        if path in self._contents:
            return self._contents[path]

        logger.debug(f"Reading {path}")
        try:
            # procfs files report zero size, so read them as a stream.
            with open(path, "r", errors="replace") as f:
                contents = f.read()
        except OSError as exc:
            raise ProcReadError(path, exc.strerror or str(exc)) from exc

        self._contents[path] = contents
        return contents

    def read_lines(self, path: str) -> List[str]:
        """Non-empty lines of a file."""
        return [line for line in self.read(path).splitlines() if line.strip()]

    def __contains__(self, path: str) -> bool:
        return path in self._contents


def read_proc_devices(cache: ProcFileCache, path: str) -> List[str]:
    """Lines of /proc/devices."""
    return cache.read_lines(path)


def read_proc_scsi_scsi(cache: ProcFileCache, path: str) -> List[Tuple[int, str]]:
    """(host number, vendor line) pairs from /proc/scsi/scsi.

    Host: scsi0 Channel: 00 Id: 00 Lun: 00
      Vendor: AMCC     Model: 9650SE-16M DISK  Rev: 4.10
    """
    vendors = []
    host = -1
    for line in cache.read_lines(path):
        line = line.strip()
        match = SCSI_HOST_PATTERN.search(line)
        if match:
            host = int(match.group(1))
        elif SCSI_VENDOR_PATTERN.search(line):
            vendors.append((host, line))
    return vendors


def read_proc_scsi_sg_devices(cache: ProcFileCache, path: str) -> List[List[int]]:
    """Numeric columns of /proc/scsi/sg/devices; the list index is N in /dev/sgN.

    Columns: host chan id lun type opens qdepth busy online. Values like
    "-" become -1, and malformed lines yield empty rows so indices stay
    aligned with sg numbers.
    """
    rows = []
    for line in cache.read(path).splitlines():
        line = line.strip()
        if not line:
            continue
        match = SG_DEVICE_PATTERN.match(line)
        if not match:
            logger.debug(f"Unexpected sg devices line: {line}")
            rows.append([])
            continue
        row = []
        for value in match.groups():
            try:
                row.append(int(value))
            except ValueError:
                row.append(-1)
        rows.append(row)
    return rows


def read_sys_int(path: Path) -> int:
    """Read an integer from a sysfs attribute, 0 when missing or invalid."""
    try:
        return int(Path(path).read_text().strip())
    except (OSError, ValueError):
        return 0
