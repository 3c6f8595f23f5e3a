"""Drives behind HP Smart Array controllers using the hpsa or hpahcisr drivers.

These drivers leave no trace in /proc/devices. The controller is the
"Vendor: HP" entry in /proc/scsi/scsi that is not a logical volume, and the
drives are reached through its sg nodes: smartctl -d cciss,N /dev/sgK.
"""
import re

from storprobe.core.errors import ProcReadError
from storprobe.core.logger import get_logger
from storprobe.detection.context import DetectionRun, ProbeResult
from storprobe.detection.raid.common import find_controllers, sg_devices
from storprobe.detection.scan import PORT_LIMIT, TerminalMarker, scan_ports_sequentially
from storprobe.models.controller import ControllerVendor
from storprobe.services.table_parser import ci

logger = get_logger(__name__)

VENDOR_PATTERN = ci(r"Vendor: HP ")
LOGICAL_VOLUME_PATTERN = ci(r"LOGICAL VOLUME")

MAX_PORT = 127

CONTROLLER_PORT_LIMIT = TerminalMarker(
    "controller port limit",
    re.compile(r"No such device or address", re.IGNORECASE | re.MULTILINE),
)
MARKERS = (PORT_LIMIT, CONTROLLER_PORT_LIMIT)


class HpsaProber:
    """hpsa/hpahcisr prober for Linux."""

    name = "hpsa"

    def probe(self, run: DetectionRun) -> ProbeResult:
        result = ProbeResult()
        logger.info("Detecting drives behind HP RAID (hpsa/hpahcisr) controller(s)")

        try:
            controllers = find_controllers(
                run, ControllerVendor.HP, VENDOR_PATTERN, exclude=LOGICAL_VOLUME_PATTERN
            )
            nodes = []
            for controller in controllers:
                for sg_num, _row in sg_devices(
                    run,
                    min_columns=3,
                    accept=lambda row, host=controller.host_number: row[0] == host,
                ):
                    nodes.append(f"/dev/sg{sg_num}")
        except ProcReadError as exc:
            result.error = str(exc)
            return result

        if not controllers:
            logger.debug("No hpsa/hpahcisr-specific entries found in SCSI file")
            return result

        for device_path in nodes:
            logger.info(f"Scanning {device_path}: ports 0-{MAX_PORT}")
            scan = scan_ports_sequentially(
                run.bridge, device_path, "cciss,%d", 0, MAX_PORT,
                markers=MARKERS,
                workers=run.config.scan_workers,
            )
            result.devices += scan.devices

        return result
