"""Drive enumeration for the BSDs, Solaris, macOS and QNX.

These systems have no partitions table to read, so whole-disk names are
picked out of the device directory with a per-kernel whitelist.
"""
import errno
import os
import re
import sys
from pathlib import Path
from typing import List, Optional, Pattern

from storprobe.core.logger import get_logger
from storprobe.detection.context import DetectionRun, ProbeResult
from storprobe.models.device import DeviceSource, StorageDevice

logger = get_logger(__name__)

FREEBSD_PATTERNS = [
    r"^ad[0-9]+$",     # ide
    r"^da[0-9]+$",     # scsi, usb
    r"^ada[0-9]+$",    # ata cam
    r"^aacd[0-9]+$",   # adaptec raid
    r"^mlxd[0-9]+$",   # mylex raid
    r"^mlyd[0-9]+$",   # mylex raid
    r"^amrd[0-9]+$",   # AMI raid
    r"^idad[0-9]+$",   # compaq raid
    r"^twed[0-9]+$",   # 3ware raid
    r"^tw[ae][0-9]+$", # 3ware raid
]

# s0 is what smartctl itself looks for.
SOLARIS_PATTERNS = [r"^c[0-9]+(?:t[0-9]+)?d[0-9]+s0$"]

DARWIN_PATTERNS = [r"^disk[0-9]+$"]

QNX_PATTERNS = [r"^hd[0-9]+$"]

# Partition letter that means "whole disk" (getrawpartition()).
DEFAULT_RAW_PARTITION = {"openbsd": 2, "netbsd": 3}

# Kernels that keep dummy device nodes around.
DUMMY_NODE_KERNELS = {"freebsd", "dragonfly", "openbsd", "netbsd"}

# Fewer matches than this are probably all real (newer FreeBSD).
OPEN_CHECK_THRESHOLD = 4


def kernel_family(platform: Optional[str] = None) -> str:
    """Normalize sys.platform to a kernel family name."""
    platform = (platform or sys.platform).lower()
    for family in ("freebsd", "dragonfly", "openbsd", "netbsd", "darwin", "qnx"):
        if platform.startswith(family):
            return family
    if platform.startswith("sunos") or platform.startswith("solaris"):
        return "solaris"
    return platform


def whitelist_for(kernel: str, raw_partition: Optional[int] = None) -> List[Pattern]:
    """Compiled whole-disk name patterns for a kernel family."""
    if kernel in ("freebsd", "dragonfly"):
        patterns = FREEBSD_PATTERNS
    elif kernel == "solaris":
        patterns = SOLARIS_PATTERNS
    elif kernel in ("openbsd", "netbsd"):
        if raw_partition is None:
            raw_partition = DEFAULT_RAW_PARTITION[kernel]
        whole = chr(ord("a") + raw_partition)
        patterns = [rf"^wd[0-9]+{whole}$", rf"^sd[0-9]+{whole}$", rf"^st[0-9]+{whole}$"]
    elif kernel == "darwin":
        patterns = DARWIN_PATTERNS
    elif kernel == "qnx":
        patterns = QNX_PATTERNS
    else:
        patterns = []
    return [re.compile(p) for p in patterns]


def is_dummy_node(path: Path) -> bool:
    """True when opening the node fails with ENXIO (device not configured)."""
    try:
        fd = os.open(str(path), os.O_RDONLY | os.O_NONBLOCK)
    except OSError as exc:
        return exc.errno == errno.ENXIO
    os.close(fd)
    return False


class OtherUnixEnumerator:
    """Whole-disk device nodes from the device directory."""

    name = "devices"

    def __init__(self, kernel: Optional[str] = None):
        self.kernel = kernel or kernel_family()

    def enumerate(self, run: DetectionRun) -> ProbeResult:
        result = ProbeResult()
        config = run.config

        dev_dir = config.solaris_dev_path if self.kernel == "solaris" else config.unix_sdev_path
        if not dev_dir:
            result.error = "Device directory path is not set."
            return result

        logger.info(f"Detecting drives through {dev_dir}")
        directory = Path(dev_dir)
        if not directory.exists():
            logger.warning(f"Device directory {dev_dir} doesn't exist")
            result.error = "Device directory does not exist."
            return result

        whitelist = whitelist_for(self.kernel, config.bsd_raw_partition)
        try:
            entries = sorted(directory.iterdir())
        except OSError as exc:
            result.error = f"Cannot list device directory entries: {exc}"
            return result

        matched = []
        for path in entries:
            if not any(pattern.search(path.name) for pattern in whitelist):
                continue
            # Solaris has dangling links.
            if not path.exists():
                continue
            matched.append(path)

        open_needed = self.kernel in DUMMY_NODE_KERNELS and len(matched) >= OPEN_CHECK_THRESHOLD
        if open_needed:
            logger.info(f"{len(matched)} devices matched, filtering out non-existent ones")

        for path in matched:
            if open_needed and is_dummy_node(path):
                logger.debug(f"Device {path} failed to open, ignoring")
                continue
            logger.info(f"Added drive {path}")
            result.devices.append(StorageDevice(str(path), source=DeviceSource.BASE))

        return result
