"""Hardware RAID controller probers."""
from storprobe.detection.raid.adaptec import AdaptecProber
from storprobe.detection.raid.areca import ArecaProber, WindowsArecaProber
from storprobe.detection.raid.cciss import CcissProber
from storprobe.detection.raid.hpsa import HpsaProber
from storprobe.detection.raid.threeware import ThreewareProber, windows_tw_cli_drives

# Run order on Linux.
LINUX_PROBERS = (ThreewareProber, ArecaProber, AdaptecProber, CcissProber, HpsaProber)

__all__ = [
    'LINUX_PROBERS',
    'AdaptecProber',
    'ArecaProber',
    'CcissProber',
    'HpsaProber',
    'ThreewareProber',
    'WindowsArecaProber',
    'windows_tw_cli_drives',
]
