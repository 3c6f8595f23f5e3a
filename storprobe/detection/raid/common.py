"""Helpers shared by the Linux RAID probers."""
import re
from typing import Callable, Iterable, List, Optional, Pattern, Tuple

from storprobe.core.logger import get_logger
from storprobe.detection.context import DetectionRun
from storprobe.detection.proc_files import (
    read_proc_devices,
    read_proc_scsi_scsi,
    read_proc_scsi_sg_devices,
)
from storprobe.models.controller import ControllerHandle, ControllerVendor

logger = get_logger(__name__)


def devices_file_matches(run: DetectionRun, pattern: Pattern) -> List[re.Match]:
    """Matches of a driver signature in /proc/devices."""
    matches = []
    for line in read_proc_devices(run.cache, run.config.linux_proc_devices_path):
        match = pattern.search(line.strip())
        if match:
            matches.append(match)
    return matches


def find_controllers(
    run: DetectionRun,
    vendor: ControllerVendor,
    pattern: Pattern,
    exclude: Optional[Pattern] = None,
    has_enclosure: Callable[[str], bool] = lambda line: False,
) -> List[ControllerHandle]:
    """Controllers from /proc/scsi/scsi vendor lines, first line per host only.

    Several hosts lines for one host are LUNs or volumes of the same
    controller.
    """
    controllers = []
    seen = set()
    for host, line in read_proc_scsi_scsi(run.cache, run.config.linux_proc_scsi_scsi_path):
        if not pattern.search(line):
            continue
        if exclude is not None and exclude.search(line):
            continue
        if host in seen:
            logger.debug(f"Skipping adapter with scsi host {host}, host already found")
            continue
        seen.add(host)
        controller = ControllerHandle(
            host_number=host,
            vendor=vendor,
            has_enclosure=has_enclosure(line),
            vendor_line=line,
        )
        logger.debug(f"Found {controller.label} in SCSI file")
        controllers.append(controller)
    return controllers


def sg_devices(
    run: DetectionRun,
    min_columns: int,
    accept: Callable[[List[int]], bool],
) -> Iterable[Tuple[int, List[int]]]:
    """(sg number, columns) for /proc/scsi/sg/devices rows passing accept()."""
    rows = read_proc_scsi_sg_devices(run.cache, run.config.linux_proc_scsi_sg_devices_path)
    for sg_num, row in enumerate(rows):
        if len(row) < min_columns:
            continue
        if accept(row):
            yield sg_num, row
