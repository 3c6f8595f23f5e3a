"""Merging descriptors from every enumerator into one list."""
import re
from typing import Callable, Dict, Hashable, Iterable, List, Pattern

from storprobe.core.logger import get_logger
from storprobe.models.device import StorageDevice

logger = get_logger(__name__)


def compile_blacklist(patterns: Iterable[str]) -> List[Pattern]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as exc:
            logger.warning(f"Ignoring invalid blacklist pattern {pattern!r}: {exc}")
    return compiled


def _dedup(devices: List[StorageDevice], key: Callable[[StorageDevice], Hashable]) -> List[StorageDevice]:
    """Keep one device per key. Higher source rank wins, then the earlier one."""
    kept: Dict[Hashable, int] = {}
    result: List[StorageDevice] = []
    for device in devices:
        k = key(device)
        if k not in kept:
            kept[k] = len(result)
            result.append(device)
            continue

        index = kept[k]
        current = result[index]
        if device.source.rank > current.source.rank:
            winner, loser = device, current
            result[index] = device
        else:
            winner, loser = current, device

        for letter, volume in loser.drive_letters.items():
            winner.drive_letters.setdefault(letter, volume)
        logger.debug(
            f"Dropping duplicate {loser.get_device_with_type()} in favor of {winner.get_device_with_type()}"
        )
    return result


class DeviceRegistry:
    """Blacklist filtering, deduplication and ordering of detected devices."""

    def merge(self, devices: Iterable[StorageDevice], blacklist_patterns: Iterable[str] = ()) -> List[StorageDevice]:
        blacklist = compile_blacklist(blacklist_patterns)

        allowed = []
        for device in devices:
            if not device.is_virtual and any(p.search(device.device_path) for p in blacklist):
                logger.info(f"Device {device.device_path} is blacklisted, ignoring")
                continue
            allowed.append(device)

        # Saved outputs never collapse into live drives.
        merged = _dedup(allowed, lambda d: (d.is_virtual, d.identity))
        merged = _dedup(merged, lambda d: d.path_key)
        merged.sort(key=lambda d: d.sort_key())
        return merged
