"""Drives behind Areca controllers.

smartctl addresses them as -d areca,N (N in 1-24) or, on models with
enclosures ("ix" in the model name), -d areca,N/E (N in 1-128, E in 1-8).
On Linux the device is the controller's /dev/sgX node; on Windows it is
/dev/arcmsrK.
"""
from pathlib import Path
from typing import List, Optional

from storprobe.core.config import clamp
from storprobe.core.errors import ProcReadError, StorageDeviceError, VendorCliError
from storprobe.core.logger import get_logger
from storprobe.detection.context import DetectionRun, ProbeResult
from storprobe.detection.proc_files import read_sys_int
from storprobe.detection.raid.common import find_controllers, sg_devices
from storprobe.detection.scan import CONTROLLER_ABSENT_MARKERS, scan_ports_sequentially
from storprobe.models.controller import ControllerHandle, ControllerVendor
from storprobe.models.device import DeviceSource, StorageDevice
from storprobe.services.areca_cli import ArecaCli
from storprobe.services.table_parser import ci
from storprobe.services.win_registry import HKEY_LOCAL_MACHINE, RegistryReader

logger = get_logger(__name__)

VENDOR_PATTERN = ci(r"Vendor: Areca ")
ENCLOSURE_MODEL_PATTERN = ci(r"Model:.+ix.+Rev:")

# /proc/scsi/sg/devices columns identifying the controller node itself
SG_CONTROLLER_ID = 16
SG_CONTROLLER_TYPE = 3

CLI_REGPATHS = [
    "SOFTWARE\\Wow6432Node\\Microsoft\\Windows\\CurrentVersion\\Uninstall\\CLI",
    "SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\Uninstall\\CLI",
]
HTTP_REGPATHS = [
    "SOFTWARE\\Wow6432Node\\Microsoft\\Windows\\CurrentVersion\\Uninstall\\archttp",
    "SOFTWARE\\Microsoft\\Windows\\CurrentVersion\\Uninstall\\archttp",
]
INSTALL_PATH_KEY = "InstallPath"

MODE_OFF = 0
MODE_FORCE = 1
MODE_AUTO = 2


class ArecaProber:
    """Areca prober for Linux."""

    name = "areca"

    def probe(self, run: DetectionRun) -> ProbeResult:
        result = ProbeResult()
        logger.info("Detecting drives behind Areca controller(s)")

        try:
            controllers = find_controllers(
                run,
                ControllerVendor.ARECA,
                VENDOR_PATTERN,
                has_enclosure=lambda line: bool(ENCLOSURE_MODEL_PATTERN.search(line)),
            )
            if not controllers:
                logger.debug("No Areca-specific entries found in SCSI file")
                return result
            # Controllers are scanned in host order.
            controllers.sort(key=lambda c: c.host_number)

            nodes = []
            for controller in controllers:
                for sg_num, _row in sg_devices(
                    run,
                    min_columns=5,
                    accept=lambda row, host=controller.host_number: (
                        row[0] == host and row[2] == SG_CONTROLLER_ID and row[4] == SG_CONTROLLER_TYPE
                    ),
                ):
                    nodes.append((controller, f"/dev/sg{sg_num}"))
        except ProcReadError as exc:
            result.error = str(exc)
            return result

        for controller, device_path in nodes:
            result.devices += self._scan_controller(run, controller, device_path)

        return result

    def _scan_controller(self, run: DetectionRun, controller: ControllerHandle, device_path: str):
        config = run.config
        devices = []
        if controller.has_enclosure:
            max_enclosures = clamp(config.linux_areca_enc_max_enclosure, 1, 8)
            max_ports = clamp(config.linux_areca_enc_max_scan_port, 1, 128)
            logger.info(
                f"Scanning {device_path}: ports 1-{max_ports} on enclosures 1-{max_enclosures}"
            )
            for enclosure in range(1, max_enclosures + 1):
                scan = scan_ports_sequentially(
                    run.bridge, device_path, f"areca,%d/{enclosure}", 1, max_ports,
                    workers=config.scan_workers,
                )
                devices += scan.devices
                if scan.controller_absent:
                    break
            return devices

        host = controller.host_number
        channels_file = (
            Path(config.linux_sys_scsi_devices_path)
            / f"host{host}" / "scsi_host" / f"host{host}" / "host_fw_hd_channels"
        )
        max_ports = read_sys_int(channels_file)
        if max_ports == 0:
            logger.debug(f"Cannot read port count from {channels_file}, using configured maximum")
            max_ports = config.linux_areca_noenc_max_scan_port
        max_ports = clamp(max_ports, 1, 24)

        logger.info(f"Scanning {device_path}: ports 1-{max_ports}")
        scan = scan_ports_sequentially(
            run.bridge, device_path, "areca,%d", 1, max_ports,
            workers=config.scan_workers,
        )
        return scan.devices


class WindowsArecaProber:
    """Areca prober for Windows, through the Areca CLI or /dev/arcmsrN scanning."""

    name = "areca"

    def __init__(self, registry: Optional[RegistryReader] = None):
        self.registry = registry or RegistryReader()

    def probe(self, run: DetectionRun) -> ProbeResult:
        result = ProbeResult()
        config = run.config

        scan_controllers = config.win32_areca_scan_controllers
        if scan_controllers == MODE_OFF:
            logger.info("Areca controller scanning is disabled through config")
            return result

        cli_install = self.registry.get_first(HKEY_LOCAL_MACHINE, CLI_REGPATHS, INSTALL_PATH_KEY)
        if scan_controllers == MODE_AUTO:
            http_install = self.registry.get_first(HKEY_LOCAL_MACHINE, HTTP_REGPATHS, INSTALL_PATH_KEY)
            if not cli_install and not http_install:
                logger.info(
                    "No Areca software found. Install Areca CLI or set "
                    "win32_areca_scan_controllers to 1 to force scanning"
                )
                return result

        use_cli = config.win32_areca_use_cli
        # Manual scanning only happens when the CLI is not forced.
        scan_detect = use_cli != MODE_FORCE
        if use_cli == MODE_AUTO:
            use_cli = MODE_FORCE if cli_install else MODE_OFF

        cli_binary = ""
        if use_cli:
            cli_binary = self._cli_binary(config.areca_cli_binary, cli_install)
            if not cli_binary:
                use_cli = MODE_OFF

        # The CLI may crash without a controller, so test for one first.
        if use_cli and not self._controller_present(run, "/dev/arcmsr0"):
            logger.info("Areca controller not found")
            return result

        if use_cli:
            try:
                result.devices += self._cli_drives(run, cli_binary, "/dev/arcmsr0")
                return result
            except VendorCliError as exc:
                logger.warning(f"Areca scan using CLI failed: {exc}")

        if scan_detect:
            result.devices += self._scan_controllers(run)
        return result

    def _cli_binary(self, binary: str, install_path: Optional[str]) -> str:
        path = Path(binary)
        if not path.is_absolute() and install_path:
            path = Path(install_path) / path
        if path.is_absolute() and not path.exists():
            logger.debug(f"Areca CLI binary {path} not found")
            return ""
        return str(path)

    def _controller_present(self, run: DetectionRun, device_path: str) -> bool:
        drive = StorageDevice(device_path, "areca,1")
        try:
            drive.fetch_basic_data_and_parse(run.bridge)
        except StorageDeviceError:
            pass
        return not any(m.pattern.search(drive.basic_output) for m in CONTROLLER_ABSENT_MARKERS)

    def _cli_drives(self, run: DetectionRun, cli_binary: str, device_path: str) -> List[StorageDevice]:
        # The CLI has no way to select a controller outside interactive mode.
        disks = ArecaCli(cli_binary, run.run_cmd).get_disks()
        drives = []
        for disk in disks:
            drive = StorageDevice(device_path, disk.type_argument, source=DeviceSource.STRUCTURED)
            logger.info(f"Added Areca drive {drive.get_device_with_type()}")
            drives.append(drive)
        return drives

    def _scan_controllers(self, run: DetectionRun) -> List[StorageDevice]:
        config = run.config
        max_controllers = clamp(config.win32_areca_max_controllers, 0, 15)
        max_noenc_ports = clamp(config.win32_areca_noenc_max_scan_port, 1, 24)
        max_enc_ports = clamp(config.win32_areca_enc_max_scan_port, 1, 128)
        max_enclosures = clamp(config.win32_areca_enc_max_enclosure, 1, 8)

        drives = []
        for controller in range(max_controllers):
            device_path = f"/dev/arcmsr{controller}"
            logger.info(f"Scanning {device_path}: ports 1-{max_noenc_ports}")
            scan = scan_ports_sequentially(
                run.bridge, device_path, "areca,%d", 1, max_noenc_ports,
                workers=config.scan_workers,
            )
            if scan.controller_absent:
                logger.debug(f"Areca controller {controller} not present, stopping scan")
                break
            drives += scan.devices
            if scan.devices:
                continue

            # Nothing found on a present controller: it likely needs the enclosure syntax.
            for enclosure in range(1, max_enclosures + 1):
                logger.info(f"Scanning {device_path}: ports 1-{max_enc_ports} on enclosure {enclosure}")
                scan = scan_ports_sequentially(
                    run.bridge, device_path, f"areca,%d/{enclosure}", 1, max_enc_ports,
                    workers=config.scan_workers,
                )
                drives += scan.devices
                if scan.controller_absent:
                    break
        return drives
