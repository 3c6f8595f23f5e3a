"""Drives behind Adaptec (aacraid) controllers.

Each physical drive shows up as its own /dev/sgN with a non-zero scsi id;
smartctl talks to it through SAT.
"""
import re

from storprobe.core.errors import ProcReadError, StorageDeviceError
from storprobe.core.logger import get_logger
from storprobe.detection.context import DetectionRun, ProbeResult
from storprobe.detection.raid.common import devices_file_matches, find_controllers, sg_devices
from storprobe.models.controller import ControllerVendor
from storprobe.models.device import DeviceSource, StorageDevice
from storprobe.services.table_parser import ci

logger = get_logger(__name__)

DRIVER_PATTERN = re.compile(r"^[ \t]*[0-9]+[ \t]+aac(?:[ \t]*|$)")
VENDOR_PATTERN = ci(r"Vendor: Adaptec ")
IDENTITY_FAILED_PATTERN = ci(r"Device Read Identity Failed")


class AdaptecProber:
    """Adaptec prober for Linux."""

    name = "adaptec"

    def probe(self, run: DetectionRun) -> ProbeResult:
        result = ProbeResult()
        logger.info("Detecting drives behind Adaptec controller(s)")

        try:
            if not devices_file_matches(run, DRIVER_PATTERN):
                logger.debug("No aacraid-specific entries found in devices file")
                return result
            controllers = find_controllers(run, ControllerVendor.ADAPTEC, VENDOR_PATTERN)
            if not controllers:
                logger.warning("aacraid driver loaded, but SCSI file contains no known controllers")
                return result

            nodes = []
            for controller in controllers:
                for sg_num, _row in sg_devices(
                    run,
                    min_columns=3,
                    accept=lambda row, host=controller.host_number: row[0] == host and row[2] > 0,
                ):
                    nodes.append(f"/dev/sg{sg_num}")
        except ProcReadError as exc:
            result.error = str(exc)
            return result

        for device_path in nodes:
            drive = self._probe_node(run, device_path)
            if drive is not None:
                logger.info(f"Added Adaptec drive {drive.get_device_with_type()}")
                result.devices.append(drive)
        return result

    def _probe_node(self, run: DetectionRun, device_path: str):
        drive = StorageDevice(device_path, "sat", source=DeviceSource.SCAN)
        error = self._fetch(run, drive)

        if IDENTITY_FAILED_PATTERN.search(drive.basic_output):
            # Not a SATA drive; fall back to smartctl's default (scsi).
            drive.clear_fetched()
            drive.type_argument = ""
            error = self._fetch(run, drive)

        if error is not None:
            logger.debug(f"Skipping {drive.get_device_with_type()}: {error}")
            return None
        return drive

    def _fetch(self, run: DetectionRun, drive: StorageDevice):
        try:
            drive.fetch_basic_data_and_parse(run.bridge)
        except StorageDeviceError as exc:
            return exc
        return None
