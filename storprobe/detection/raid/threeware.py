"""Drives behind 3ware / AMCC / LSI controllers.

Linux: smartctl -d 3ware,N /dev/tw[ael]K. twe is used by the 6xxx-8xxx
series, twa by 9xxx and twl by 9750. Driver presence comes from
/proc/devices, controllers from /proc/scsi/scsi, and ports from
`tw_cli /cK show all` where K is the scsi host number.

Windows: 3DM2 installs tw_cli, and drives are queried as tw_cli/cK/pN.
"""
import re
from collections import defaultdict
from typing import Dict

from storprobe.core.config import clamp
from storprobe.core.errors import ProcReadError, VendorCliError
from storprobe.core.logger import get_logger
from storprobe.detection.context import DetectionRun, ProbeResult
from storprobe.detection.raid.common import devices_file_matches, find_controllers
from storprobe.detection.scan import scan_ports_sequentially
from storprobe.models.controller import ControllerVendor
from storprobe.models.device import DeviceSource, StorageDevice
from storprobe.services.table_parser import ci

logger = get_logger(__name__)

DRIVER_PATTERN = re.compile(r"^[ \t]*[0-9]+[ \t]+(tw[ael])(?:[ \t]*|$)")
VENDOR_PATTERN = ci(r"Vendor: (AMCC)|(3ware)|(LSI) ")

# Vendor string -> device base when several driver kinds are loaded.
VENDOR_BASES = {"amcc": "twa", "3ware": "twe", "lsi": "twl"}

MAX_PORT_LIMIT = 127


def choose_device_base(drivers, vendor: str) -> str:
    """Pick twa/twe/twl for a controller."""
    base = "twe"
    if "twa" in drivers:
        base = "twa"
    elif "twl" in drivers:
        base = "twl"

    # We can't map mixed systems to tw_cli order, so go by vendor name.
    if len(drivers) > 1:
        preferred = VENDOR_BASES.get(vendor.lower())
        if preferred in drivers:
            base = preferred
    return base


def _vendor_of(line: str) -> str:
    match = VENDOR_PATTERN.search(line)
    if not match:
        return ""
    return next((group for group in match.groups() if group), "")


class ThreewareProber:
    """3ware prober for Linux."""

    name = "3ware"

    def probe(self, run: DetectionRun) -> ProbeResult:
        result = ProbeResult()
        logger.info("Detecting drives behind 3ware controller(s)")

        try:
            drivers = {m.group(1) for m in devices_file_matches(run, DRIVER_PATTERN)}
            if not drivers:
                logger.debug("No 3ware-specific entries found in devices file")
                return result
            controllers = find_controllers(run, ControllerVendor.THREEWARE, VENDOR_PATTERN)
        except ProcReadError as exc:
            result.error = str(exc)
            return result

        if not controllers:
            logger.warning("3ware driver loaded, but SCSI file contains no known controllers")
            return result

        # twaN numbering is assumed to follow scsi host order.
        device_numbers: Dict[str, int] = defaultdict(int)
        for controller in controllers:
            base = choose_device_base(drivers, _vendor_of(controller.vendor_line))
            device_path = f"/dev/{base}{device_numbers[base]}"
            device_numbers[base] += 1

            result.devices += self._controller_drives(run, controller.host_number, device_path)

        return result

    def _controller_drives(self, run: DetectionRun, host: int, device_path: str):
        try:
            ports = run.tw_cli().get_ports(host)
        except VendorCliError as exc:
            max_port = clamp(run.config.linux_3ware_max_scan_port, 0, MAX_PORT_LIMIT)
            logger.info(
                f"tw_cli unavailable ({exc}), scanning ports 0-{max_port} on {device_path}"
            )
            scan = scan_ports_sequentially(
                run.bridge, device_path, "3ware,%d", 0, max_port,
                workers=run.config.scan_workers,
            )
            return scan.devices

        drives = []
        for port in ports:
            drive = StorageDevice(device_path, f"3ware,{port}", source=DeviceSource.STRUCTURED)
            logger.info(f"Added 3ware drive {drive.get_device_with_type()}")
            drives.append(drive)
        return drives


def windows_tw_cli_drives(run: DetectionRun) -> ProbeResult:
    """tw_cli/cK/pN devices for every controller tw_cli reports.

    Used on Windows when smartctl --scan-open finds no port-qualified
    devices but 3DM2 is installed.
    """
    result = ProbeResult()
    tw_cli = run.tw_cli()
    try:
        controllers = tw_cli.get_controllers()
    except VendorCliError as exc:
        logger.debug(f"Cannot list 3ware controllers: {exc}")
        return result

    for controller in controllers:
        try:
            ports = tw_cli.get_ports(controller)
        except VendorCliError as exc:
            result.add_error(f"3ware controller {controller}: {exc}")
            continue
        for port in ports:
            # smartctl ignores the device in tw_cli mode
            drive = StorageDevice(f"tw_cli/c{controller}/p{port}", source=DeviceSource.STRUCTURED)
            logger.info(f"Added 3ware drive {drive.get_device_with_type()}")
            result.devices.append(drive)
    return result
