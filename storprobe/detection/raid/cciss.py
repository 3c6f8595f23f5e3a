"""Drives behind HP Smart Array controllers using the cciss driver.

smartctl -d cciss,N /dev/cciss/cKd0, where K comes from "ccissK" entries in
/proc/devices. hpsa/hpahcisr controllers are handled in hpsa.py.
"""
import re

from storprobe.core.errors import ProcReadError
from storprobe.core.logger import get_logger
from storprobe.detection.context import DetectionRun, ProbeResult
from storprobe.detection.raid.common import devices_file_matches
from storprobe.detection.scan import PORT_LIMIT, TerminalMarker, scan_ports_sequentially

logger = get_logger(__name__)

DRIVER_PATTERN = re.compile(r"^[ \t]*[0-9]+[ \t]+cciss([0-9]+)(?:[ \t]*|$)")

MAX_PORT = 127

# Low ports may be empty slots; past 15 the same error means the controller ran out.
CONTROLLER_PORT_LIMIT = TerminalMarker(
    "controller port limit",
    re.compile(r"No such device or address", re.IGNORECASE | re.MULTILINE),
    min_port=15,
)
MARKERS = (PORT_LIMIT, CONTROLLER_PORT_LIMIT)


class CcissProber:
    """cciss prober for Linux."""

    name = "cciss"

    def probe(self, run: DetectionRun) -> ProbeResult:
        result = ProbeResult()
        logger.info("Detecting drives behind HP RAID (cciss) controller(s)")

        try:
            controllers = sorted({int(m.group(1)) for m in devices_file_matches(run, DRIVER_PATTERN)})
        except ProcReadError as exc:
            result.error = str(exc)
            return result

        if not controllers:
            logger.debug("No cciss-specific entries found in devices file")
            return result

        for controller in controllers:
            device_path = f"/dev/cciss/c{controller}d0"
            logger.info(f"Scanning {device_path}: ports 0-{MAX_PORT}")
            scan = scan_ports_sequentially(
                run.bridge, device_path, "cciss,%d", 0, MAX_PORT,
                markers=MARKERS,
                workers=run.config.scan_workers,
            )
            result.devices += scan.devices

        return result
