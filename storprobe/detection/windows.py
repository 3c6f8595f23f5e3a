"""Windows drive enumeration.

smartctl accepts pdN for \\\\.\\PhysicalDriveN. Port-qualified devices
(/dev/sda,0 behind 3ware, /dev/csmi0,1 behind Intel RAID) only show up in
`smartctl --scan-open`. The same drive may be reachable both ways, so pdN
entries are matched against --scan-open devices by model and serial, and the
port-qualified one is kept since it gives more information.
"""
import ctypes
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

import psutil

from storprobe.core.errors import StorageDeviceError
from storprobe.core.logger import get_logger
from storprobe.detection.context import DetectionRun, ProbeResult
from storprobe.detection.raid.areca import WindowsArecaProber
from storprobe.detection.raid.threeware import windows_tw_cli_drives
from storprobe.models.device import DeviceSource, StorageDevice
from storprobe.services.win_registry import HKEY_USERS, RegistryReader

logger = get_logger(__name__)

# /dev/sda,0 -d ata (opened)
# /dev/csmi0,1 -d ata # /dev/csmi0,1, ATA device
SCAN_OPEN_PORT_PATTERN = re.compile(r"^(/dev/[a-z0-9]+),([0-9]+)[ \t]+-d[ \t]+([^ \t\n]+)", re.IGNORECASE)
SD_DEVICE_PATTERN = re.compile(r"^/dev/sd([a-z])$")
UNRECOGNIZED_OPTION_PATTERN = re.compile(r"UNRECOGNIZED OPTION", re.IGNORECASE | re.MULTILINE)

THREEWARE_3DM2_REGPATH = ".DEFAULT\\Software\\3ware\\3DM2"
THREEWARE_3DM2_REGKEY = "InstallPath"

# Drive numbers may have holes after removable devices go away.
MAX_FAILED_OPENS = 3

# Win32 constants
GENERIC_READ = 0x80000000
FILE_SHARE_READ = 0x00000001
FILE_SHARE_WRITE = 0x00000002
OPEN_EXISTING = 3
FILE_FLAG_NO_BUFFERING = 0x20000000
FILE_FLAG_RANDOM_ACCESS = 0x10000000
IOCTL_VOLUME_GET_VOLUME_DISK_EXTENTS = 0x00560000
MAX_PATH = 260
MAX_EXTENTS = 32
INVALID_HANDLE_VALUE = ctypes.c_void_p(-1).value


class DISK_EXTENT(ctypes.Structure):
    _fields_ = [
        ("DiskNumber", ctypes.c_uint32),
        ("StartingOffset", ctypes.c_int64),
        ("ExtentLength", ctypes.c_int64),
    ]


class VOLUME_DISK_EXTENTS(ctypes.Structure):
    _fields_ = [
        ("NumberOfDiskExtents", ctypes.c_uint32),
        ("Extents", DISK_EXTENT * MAX_EXTENTS),
    ]


@dataclass
class DriveLetterInfo:
    """Physical drives a volume spans, and the volume label."""
    physical_drives: Set[int] = field(default_factory=set)
    volume_name: str = ""


def _kernel32():
    kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
    kernel32.CreateFileW.restype = ctypes.c_void_p
    kernel32.CreateFileW.argtypes = [
        ctypes.c_wchar_p, ctypes.c_uint32, ctypes.c_uint32, ctypes.c_void_p,
        ctypes.c_uint32, ctypes.c_uint32, ctypes.c_void_p,
    ]
    kernel32.CloseHandle.argtypes = [ctypes.c_void_p]
    kernel32.DeviceIoControl.argtypes = [
        ctypes.c_void_p, ctypes.c_uint32, ctypes.c_void_p, ctypes.c_uint32,
        ctypes.c_void_p, ctypes.c_uint32, ctypes.POINTER(ctypes.c_uint32), ctypes.c_void_p,
    ]
    return kernel32


class VolumeInspector:
    """Maps fixed drive letters to the physical drives they live on."""

    def drive_letter_map(self) -> Dict[str, DriveLetterInfo]:
        letters = {}
        for letter in self._fixed_letters():
            drives = self._disk_extents(letter)
            if drives is None:
                logger.debug(f"Windows drive {letter} is not mapped to any physical drives")
                continue
            letters[letter] = DriveLetterInfo(drives, self._volume_name(letter))
            logger.debug(f"Windows drive {letter} corresponds to physical drive(s) {sorted(drives)}")
        return letters

    def _fixed_letters(self) -> List[str]:
        letters = []
        for partition in psutil.disk_partitions(all=False):
            if "fixed" not in partition.opts.split(","):
                continue
            letter = partition.mountpoint[:1].upper()
            if letter.isalpha():
                letters.append(letter)
        return sorted(set(letters))

    def _disk_extents(self, letter: str) -> Optional[Set[int]]:
        kernel32 = _kernel32()
        handle = kernel32.CreateFileW(
            f"\\\\.\\{letter}:", GENERIC_READ, FILE_SHARE_READ | FILE_SHARE_WRITE, None,
            OPEN_EXISTING, FILE_FLAG_NO_BUFFERING | FILE_FLAG_RANDOM_ACCESS, None,
        )
        if handle is None or handle == INVALID_HANDLE_VALUE:
            logger.warning(f"Windows drive {letter} cannot be opened")
            return None
        try:
            extents = VOLUME_DISK_EXTENTS()
            returned = ctypes.c_uint32(0)
            ok = kernel32.DeviceIoControl(
                handle, IOCTL_VOLUME_GET_VOLUME_DISK_EXTENTS, None, 0,
                ctypes.byref(extents), ctypes.sizeof(extents), ctypes.byref(returned), None,
            )
            if not ok:
                return None
            count = min(extents.NumberOfDiskExtents, MAX_EXTENTS)
            return {int(extents.Extents[i].DiskNumber) for i in range(count)}
        finally:
            kernel32.CloseHandle(handle)

    def _volume_name(self, letter: str) -> str:
        buffer = ctypes.create_unicode_buffer(MAX_PATH + 1)
        ok = _kernel32().GetVolumeInformationW(
            f"{letter}:\\", buffer, MAX_PATH + 1, None, None, None, None, 0
        )
        return buffer.value if ok else ""


class PhysicalDriveOpener:
    """Tells whether \\\\.\\PhysicalDriveN can be opened. Needs admin rights."""

    def exists(self, number: int) -> bool:
        kernel32 = _kernel32()
        handle = kernel32.CreateFileW(
            f"\\\\.\\PhysicalDrive{number}", 0, FILE_SHARE_READ | FILE_SHARE_WRITE, None,
            OPEN_EXISTING, 0, None,
        )
        if handle is None or handle == INVALID_HANDLE_VALUE:
            return False
        kernel32.CloseHandle(handle)
        return True


def parse_scan_open(output: str) -> List[Tuple[str, str, Optional[int]]]:
    """Port-qualified devices from --scan-open output.

    Returns (device, type, physical drive number) tuples. The drive number is
    set for /dev/sdX bases, which smartctl maps to PhysicalDrive(X - 'a').
    Devices without a port are left to the pdN scan.
    """
    entries = []
    for line in output.splitlines():
        match = SCAN_OPEN_PORT_PATTERN.search(line.strip())
        if not match:
            continue
        base, port, type_argument = match.groups()
        sd = SD_DEVICE_PATTERN.search(base)
        drive_number = ord(sd.group(1)) - ord("a") if sd else None
        entries.append((f"{base},{port}", type_argument, drive_number))
    return entries


def letters_for(letter_map: Dict[str, DriveLetterInfo], drive_number: Optional[int]) -> Dict[str, str]:
    if drive_number is None:
        return {}
    return {
        letter: info.volume_name
        for letter, info in letter_map.items()
        if drive_number in info.physical_drives
    }


def serial_key(drive: StorageDevice) -> str:
    # Model as well, serials may repeat across vendors.
    return f"{drive.model_name or ''}_{drive.serial_number}"


class WindowsEnumerator:
    """pdN drives plus port-qualified devices from smartctl --scan-open."""

    name = "windows"

    def __init__(
        self,
        volumes: Optional[VolumeInspector] = None,
        opener: Optional[PhysicalDriveOpener] = None,
        registry: Optional[RegistryReader] = None,
        areca_prober: Optional[WindowsArecaProber] = None,
    ):
        self.volumes = volumes or VolumeInspector()
        self.opener = opener or PhysicalDriveOpener()
        self.registry = registry or RegistryReader()
        self.areca_prober = areca_prober or WindowsArecaProber(self.registry)

    def enumerate(self, run: DetectionRun) -> ProbeResult:
        result = ProbeResult()

        logger.info("Checking which drive letters belong to which physical drives")
        letter_map = self.volumes.drive_letter_map()

        multiport, covered, error = self._scan_open_devices(run, letter_map)
        if error:
            result.add_error(error)
        result.devices += multiport

        serials: Dict[str, StorageDevice] = {}
        areca_found = False
        for drive in multiport:
            try:
                drive.fetch_basic_data_and_parse(run.bridge)
            except StorageDeviceError as exc:
                logger.info(f"Smartctl returned with an error for {drive.get_device_with_type()}: {exc}")
            if drive.serial_number:
                serials[serial_key(drive)] = drive
            if "areca" in drive.type_argument:
                areca_found = True

        result.devices += self._physical_drives(run, letter_map, covered, serials)

        if not multiport:
            result.devices += self._threeware_drives(run)

        if not areca_found:
            areca = self.areca_prober.probe(run)
            result.devices += areca.devices
            if areca.error:
                result.add_error(areca.error)

        return result

    def _scan_open_devices(self, run: DetectionRun, letter_map) -> Tuple[List[StorageDevice], Set[int], str]:
        logger.info("Getting multi-port devices through smartctl --scan-open")
        try:
            output = run.bridge.scan_all()
        except StorageDeviceError as exc:
            logger.warning(f"smartctl --scan-open failed: {exc}")
            return [], set(), str(exc)

        if UNRECOGNIZED_OPTION_PATTERN.search(output):
            return [], set(), "Unsupported smartctl version: Smartctl doesn't support --scan-open switch."

        devices = []
        covered = set()
        for device_path, type_argument, drive_number in parse_scan_open(output):
            if drive_number is not None:
                covered.add(drive_number)
            drive = StorageDevice(
                device_path,
                type_argument,
                source=DeviceSource.STRUCTURED,
                drive_letters=letters_for(letter_map, drive_number),
            )
            logger.info(f"Added drive {drive.get_device_with_type()}")
            devices.append(drive)
        return devices, covered, ""

    def _physical_drives(self, run: DetectionRun, letter_map, covered: Set[int], serials) -> List[StorageDevice]:
        logger.info("Starting sequential scan of \\\\.\\PhysicalDriveN devices")
        drives = []
        failed = 0
        number = 0
        while True:
            current = number
            number += 1
            if current in covered:
                logger.debug(f"pd{current} already found by --scan-open, skipping")
                continue

            if not self.opener.exists(current):
                failed += 1
                logger.debug(f"Could not open \\\\.\\PhysicalDrive{current}")
                if failed >= MAX_FAILED_OPENS:
                    break
                continue

            drive = StorageDevice(
                f"pd{current}",
                source=DeviceSource.BASE,
                drive_letters=letters_for(letter_map, current),
            )

            if serials:
                try:
                    drive.fetch_basic_data_and_parse(run.bridge)
                except StorageDeviceError as exc:
                    logger.info(f"Smartctl returned with an error for pd{current}: {exc}")
                # Serials are empty under "-q noserial"; both entries are then kept.
                key = serial_key(drive)
                if drive.serial_number and key in serials:
                    logger.info(
                        f"Skipping pd{current}, same drive as {serials[key].get_device_with_type()}"
                    )
                    serials[key].drive_letters.update(drive.drive_letters)
                    continue

            logger.info(f"Added drive {drive.get_device_with_type()}")
            drives.append(drive)
        return drives

    def _threeware_drives(self, run: DetectionRun) -> List[StorageDevice]:
        logger.info("Checking for additional 3ware devices")
        install_path = self.registry.get_string(HKEY_USERS, THREEWARE_3DM2_REGPATH, THREEWARE_3DM2_REGKEY)
        if not install_path:
            logger.info("3ware 3DM2 not installed")
            return []
        logger.debug(f"3ware 3DM2 found at {install_path}")
        found = windows_tw_cli_drives(run)
        if found.error:
            logger.debug(found.error)
        return found.devices
