"""RAID controller handles used while probing."""
from dataclasses import dataclass
from enum import Enum


class ControllerVendor(Enum):
    """Controller families with a dedicated prober."""
    THREEWARE = "3ware"
    ARECA = "areca"
    ADAPTEC = "adaptec"
    HP = "hp"


@dataclass
class ControllerHandle:
    """One RAID controller seen during a probe."""
    host_number: int          # scsi host or enumeration index
    vendor: ControllerVendor
    has_enclosure: bool = False
    vendor_line: str = ""     # raw /proc/scsi/scsi vendor line

    @property
    def label(self) -> str:
        return f"{self.vendor.value} controller {self.host_number}"
