"""Linux drive enumeration through /proc/partitions."""
import re
from typing import List

from storprobe.core.errors import ProcReadError, StorageDeviceError
from storprobe.core.logger import get_logger
from storprobe.detection.context import DetectionRun, ProbeResult
from storprobe.models.device import DeviceSource, StorageDevice

logger = get_logger(__name__)

# major minor  #blocks  name
#    8     0  156290904 sda
PARTITION_LINE_PATTERN = re.compile(
    r"^[ \t]*[^ \t\n]+[ \t]+[^ \t\n]+[ \t]+[^ \t\n]+[ \t]+([^ \t\n]+)"
)

# Partitions, ramdisks, loop devices, software raid and device-mapper nodes
# (sda1, ram0, loop0, part1 on devfs, mmcblk0p1, md0, dm-0).
PARTITION_DENYLIST = [
    re.compile(pattern)
    for pattern in (
        r"d[a-z][0-9]+$",
        r"ram[0-9]+$",
        r"loop[0-9]*$",
        r"part[0-9]+$",
        r"p[0-9]+$",
        r"md[0-9]*$",
        r"dm-[0-9]*$",
    )
]

THREEWARE_FRONTEND_PATTERN = re.compile(r"try adding '-d 3ware,N'", re.IGNORECASE | re.MULTILINE)


def parse_partitions(contents: str) -> List[str]:
    """Return unique /dev paths of whole-disk entries in a partitions file."""
    devices = []
    for line in contents.splitlines():
        if not line.strip() or line.lstrip().startswith("major"):
            continue

        match = PARTITION_LINE_PATTERN.search(line)
        if not match:
            logger.debug(f"Skipping unrecognized partitions line: {line.strip()}")
            continue

        name = match.group(1)
        if any(pattern.search(name) for pattern in PARTITION_DENYLIST):
            continue

        path = f"/dev/{name}"
        if path not in devices:
            devices.append(path)
    return devices


class LinuxPartitionsEnumerator:
    """Base block devices from /proc/partitions, verified through smartctl."""

    name = "partitions"

    def enumerate(self, run: DetectionRun) -> ProbeResult:
        result = ProbeResult()
        path = run.config.linux_proc_partitions_path
        if not path:
            result.error = "Partitions file path is not set."
            return result

        logger.info(f"Detecting drives through {path}")
        try:
            contents = run.cache.read(path)
        except ProcReadError as exc:
            logger.warning(str(exc))
            result.error = str(exc)
            return result

        for device_path in parse_partitions(contents):
            drive = StorageDevice(device_path, source=DeviceSource.BASE)
            try:
                drive.fetch_basic_data_and_parse(run.bridge)
            except StorageDeviceError as exc:
                logger.debug(f"Skipping {device_path}: {exc}")
                continue

            # 3ware front-end nodes; the 3ware prober adds the real ports.
            if THREEWARE_FRONTEND_PATTERN.search(drive.basic_output):
                logger.debug(f"Skipping {device_path}: 3ware controller front-end")
                continue

            logger.info(f"Added drive {drive.get_device_with_type()}")
            result.devices.append(drive)

        return result
