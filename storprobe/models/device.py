"""Storage device descriptors."""
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple

from storprobe.core.errors import StorageDeviceError
from storprobe.core.logger import get_logger

logger = get_logger(__name__)

_FLAGS = re.IGNORECASE | re.MULTILINE

SPECIFY_TYPE_PATTERN = re.compile(r"specify device type with the -d option", _FLAGS)
VERSION_PATTERN = re.compile(r"^smartctl(?:[ \t]+version)?[ \t]+([0-9][^ \t\n]*)", _FLAGS)


class DetectedType(Enum):
    """Device type as guessed from smartctl basic output."""
    UNKNOWN = "unknown"
    NEEDS_EXPLICIT_TYPE = "needs_explicit_type"  # smartctl asked for -d
    ATA_ANY = "ata_any"
    ATA_HDD = "ata_hdd"
    ATA_SSD = "ata_ssd"
    NVME = "nvme"
    BASIC_SCSI = "basic_scsi"
    CD_DVD = "cd_dvd"
    UNSUPPORTED_RAID = "unsupported_raid"

    @property
    def display_name(self) -> str:
        return _TYPE_NAMES[self]


_TYPE_NAMES = {
    DetectedType.UNKNOWN: "Unknown",
    DetectedType.NEEDS_EXPLICIT_TYPE: "Needs explicit type",
    DetectedType.ATA_ANY: "ATA",
    DetectedType.ATA_HDD: "ATA HDD",
    DetectedType.ATA_SSD: "ATA SSD",
    DetectedType.NVME: "NVMe",
    DetectedType.BASIC_SCSI: "SCSI",
    DetectedType.CD_DVD: "CD/DVD",
    DetectedType.UNSUPPORTED_RAID: "RAID",
}


class DeviceSource(Enum):
    """How a descriptor was discovered. Higher rank wins on duplicate identity."""
    BASE = "base"              # partitions file, device directory, pdN
    SCAN = "scan"              # sequential port scan
    STRUCTURED = "structured"  # vendor CLI or smartctl --scan-open
    MANUAL = "manual"          # added by the user
    VIRTUAL = "virtual"        # loaded from a saved output file

    @property
    def rank(self) -> int:
        return _SOURCE_RANKS[self]


_SOURCE_RANKS = {
    DeviceSource.BASE: 0,
    DeviceSource.SCAN: 1,
    DeviceSource.STRUCTURED: 2,
    DeviceSource.MANUAL: 2,
    DeviceSource.VIRTUAL: 2,
}


def _field(pattern: str, text: str) -> Optional[str]:
    """Return a trimmed "Key: value" field with runs of spaces collapsed."""
    match = re.search(pattern, text, _FLAGS)
    if not match:
        return None
    return re.sub(r" {2,}", " ", match.group(1).strip())


@dataclass
class StorageDevice:
    """One physical or logical access path to a drive."""
    device_path: str
    type_argument: str = ""
    extra_arguments: str = ""
    source: DeviceSource = DeviceSource.BASE
    detected_type: DetectedType = DetectedType.UNKNOWN
    basic_output: str = ""
    full_output: str = ""
    drive_letters: Dict[str, str] = field(default_factory=dict)  # letter -> volume name
    is_virtual: bool = False
    virtual_file: str = ""

    # Parsed from basic_output
    model_name: Optional[str] = None
    family_name: Optional[str] = None
    serial_number: Optional[str] = None
    size: Optional[str] = None
    is_hdd: Optional[bool] = None
    smart_supported: Optional[bool] = None
    smart_enabled: Optional[bool] = None

    @classmethod
    def from_output_file(cls, path: str) -> "StorageDevice":
        """Load a virtual device from a saved smartctl output file."""
        try:
            contents = Path(path).read_text(errors="replace")
        except OSError as exc:
            raise StorageDeviceError(f"Cannot read {path}: {exc}", device=str(path))

        contents = contents.replace("\r\n", "\n").strip()
        if not contents:
            raise StorageDeviceError(f"File {path} is empty.", device=str(path))

        device = cls(
            device_path="",
            source=DeviceSource.VIRTUAL,
            is_virtual=True,
            virtual_file=str(path),
            basic_output=contents,
        )
        device.parse_basic_data()
        return device

    @property
    def identity(self) -> Tuple[str, str]:
        """Model and serial once known, access path otherwise."""
        if self.model_name and self.serial_number:
            return (self.model_name, self.serial_number)
        return self.path_key

    @property
    def path_key(self) -> Tuple[str, str]:
        if self.is_virtual:
            return (f"virtual:{self.virtual_file}", self.type_argument)
        return (self.device_path, self.type_argument)

    def get_device_base(self) -> str:
        """Device name without directories (/dev/sda -> sda)."""
        return self.device_path.rsplit("/", 1)[-1]

    def get_device_with_type(self) -> str:
        if self.is_virtual:
            return f"Virtual ({os.path.basename(self.virtual_file)})"
        if self.type_argument:
            return f"{self.device_path} ({self.type_argument})"
        return self.device_path

    def format_drive_letters(self) -> str:
        """Format drive letters as "C: (System), D:"."""
        parts = []
        for letter in sorted(self.drive_letters):
            volume = self.drive_letters[letter]
            text = f"{letter.upper()}:"
            if volume:
                text += f" ({volume})"
            parts.append(text)
        return ", ".join(parts)

    def sort_key(self) -> Tuple[bool, str, str, str]:
        """Real drives first, then by base device name and type argument."""
        return (self.is_virtual, self.virtual_file, self.get_device_base(), self.type_argument)

    def clear_fetched(self, clear_outputs: bool = True):
        """Forget everything parsed from smartctl output."""
        if clear_outputs:
            self.basic_output = ""
            self.full_output = ""
        self.detected_type = DetectedType.UNKNOWN
        self.model_name = None
        self.family_name = None
        self.serial_number = None
        self.size = None
        self.is_hdd = None
        self.smart_supported = None
        self.smart_enabled = None

    def fetch_basic_data_and_parse(self, bridge):
        """Query basic info through the smartctl bridge and parse it.

        Raises:
            StorageDeviceError: Query failed. Whatever output was captured is
                still stored and parsed.
        """
        if self.is_virtual:
            raise StorageDeviceError(
                "Cannot execute smartctl on a virtual device.",
                device=self.get_device_with_type(),
            )

        self.clear_fetched()

        error = None
        try:
            output = bridge.query_basic(self.device_path, self.type_argument, self.extra_arguments)
        except StorageDeviceError as exc:
            error = exc
            output = exc.output
        self.basic_output = output

        if error is None:
            self.parse_basic_data()
            return

        needs_type = bool(SPECIFY_TYPE_PATTERN.search(output))
        if needs_type and not self.type_argument:
            # Some smartctl builds default to usb; plain scsi at least gives the identity.
            logger.debug(f"{self.device_path} needs an explicit type, retrying with scsi")
            self.type_argument = "scsi"
            self.fetch_basic_data_and_parse(bridge)
            return

        # Some devices print their identity even with a failing exit status.
        try:
            self.parse_basic_data()
        except StorageDeviceError:
            pass
        if needs_type:
            self.detected_type = DetectedType.NEEDS_EXPLICIT_TYPE
        raise error

    def parse_basic_data(self):
        """Fill identity and type fields from basic_output.

        Raises:
            StorageDeviceError: Output is empty or is not smartctl output.
        """
        self.clear_fetched(clear_outputs=False)
        text = self.basic_output

        if not text:
            raise StorageDeviceError(
                "Cannot read information from an empty string.",
                device=self.get_device_with_type(),
            )

        if not VERSION_PATTERN.search(text):
            raise StorageDeviceError(
                "Cannot get smartctl version information.",
                device=self.get_device_with_type(),
                output=text,
            )

        if re.search(r"this device: CD\/DVD", text, _FLAGS) or re.search(r"^Device type:\s+CD\/DVD", text, _FLAGS):
            self.detected_type = DetectedType.CD_DVD
        elif re.search(r"Product:[ \t]*Raid", text, _FLAGS):
            self.detected_type = DetectedType.UNSUPPORTED_RAID

        if self.detected_type == DetectedType.UNSUPPORTED_RAID:
            # RAID volumes may claim SMART support but never have it.
            self.smart_supported = False
            self.smart_enabled = False
        elif (
            re.search(r"^SMART support is:[ \t]*Unavailable", text, _FLAGS)
            or re.search(r"Device does not support SMART", text, _FLAGS)
            or re.search(r"Device Read Identity Failed", text, _FLAGS)
        ):
            self.smart_supported = False
            self.smart_enabled = False
        elif re.search(r"^SMART support is:[ \t]*(?:Available|Ambiguous)", text, _FLAGS):
            self.smart_supported = True
            if re.search(r"^SMART support is:[ \t]*Enabled", text, _FLAGS):
                self.smart_enabled = True
            elif re.search(r"^SMART support is:[ \t]*Disabled", text, _FLAGS):
                self.smart_enabled = False

        self.model_name = _field(r"^Device Model:[ \t]*(.*)$", text)
        if self.model_name is None:
            self.model_name = _field(r"^(?:Device|Product|Model Number):[ \t]*(.*)$", text)
        self.family_name = _field(r"^Model Family:[ \t]*(.*)$", text)
        self.serial_number = _field(r"^Serial Number:[ \t]*(.*)$", text)
        self.size = _field(r"^User Capacity:[ \t]*(.*)$", text)

        rpm = _field(r"^Rotation Rate:[ \t]*(.*)$", text)
        if rpm is not None:
            digits = re.match(r"[0-9]+", rpm)
            self.is_hdd = bool(digits) and int(digits.group(0)) > 0

        if self.detected_type == DetectedType.UNKNOWN:
            self.detected_type = self._guess_type(text)

    def _guess_type(self, text: str) -> DetectedType:
        if re.search(r"^Model Number:", text, _FLAGS) and re.search(r"NVMe|NVM Commands", text, _FLAGS):
            return DetectedType.NVME
        if re.search(r"^S?ATA Version is:", text, _FLAGS) or re.search(r"^Device Model:", text, _FLAGS):
            if self.is_hdd is None:
                return DetectedType.ATA_ANY
            return DetectedType.ATA_HDD if self.is_hdd else DetectedType.ATA_SSD
        if re.search(r"^Transport protocol:", text, _FLAGS) or (
            re.search(r"^Vendor:", text, _FLAGS) and re.search(r"^Product:", text, _FLAGS)
        ):
            return DetectedType.BASIC_SCSI
        return DetectedType.UNKNOWN
