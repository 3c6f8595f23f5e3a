"""Brute-force port scanning through smartctl."""
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Sequence, Tuple

from storprobe.core.errors import StorageDeviceError
from storprobe.core.logger import get_logger
from storprobe.models.device import DeviceSource, StorageDevice

logger = get_logger(__name__)

_FLAGS = re.IGNORECASE | re.MULTILINE


@dataclass(frozen=True)
class TerminalMarker:
    """Output text that ends a port scan.

    A marker with min_port only applies to ports above it.
    """
    name: str
    pattern: Pattern
    min_port: Optional[int] = None

    def matches(self, output: str, port: int) -> bool:
        if self.min_port is not None and port <= self.min_port:
            return False
        return bool(self.pattern.search(output))


PORT_LIMIT = TerminalMarker("port limit", re.compile(r"VALID ARGUMENTS ARE", _FLAGS))
NO_CONTROLLER = TerminalMarker("no controller", re.compile(r"No .* controller found", _FLAGS))
NO_SUCH_DEVICE = TerminalMarker(
    "no such device", re.compile(r"Smartctl open device: .* failed: No such device", _FLAGS)
)

DEFAULT_MARKERS = (PORT_LIMIT, NO_CONTROLLER, NO_SUCH_DEVICE)
CONTROLLER_ABSENT_MARKERS = (NO_CONTROLLER, NO_SUCH_DEVICE)


@dataclass
class ScanResult:
    """Drives found by a port scan and why it stopped."""
    devices: List[StorageDevice] = field(default_factory=list)
    last_output: str = ""
    halted_by: Optional[str] = None
    halted_at: Optional[int] = None
    ports_queried: List[int] = field(default_factory=list)

    @property
    def controller_absent(self) -> bool:
        return self.halted_by in {m.name for m in CONTROLLER_ABSENT_MARKERS}


def _query_port(bridge, device_path: str, type_argument: str) -> Tuple[StorageDevice, Optional[str]]:
    drive = StorageDevice(device_path, type_argument, source=DeviceSource.SCAN)
    try:
        drive.fetch_basic_data_and_parse(bridge)
    except StorageDeviceError as exc:
        # Empty ports make smartctl fail; that is expected.
        return drive, str(exc)
    return drive, None


def scan_ports_sequentially(
    bridge,
    device_path: str,
    type_template: str,
    first: int,
    last: int,
    markers: Sequence[TerminalMarker] = DEFAULT_MARKERS,
    workers: int = 1,
) -> ScanResult:
    """Query `type_template % port` on device_path for every port in [first, last].

    Stops at the first port whose output matches a terminal marker; that
    port and every later one produce no drives. Ports that merely fail are
    skipped. With workers > 1 ports are queried in waves of that size, and a
    wave never extends past a detected ceiling.
    """
    result = ScanResult()
    workers = max(1, workers)
    ports = list(range(first, last + 1))

    logger.debug(
        f"Scanning {device_path} with -d {type_template} over ports {first}-{last}"
    )

    executor = ThreadPoolExecutor(max_workers=workers) if workers > 1 else None
    try:
        for start in range(0, len(ports), workers):
            wave = ports[start:start + workers]
            if executor is None:
                answers = [_query_port(bridge, device_path, type_template % port) for port in wave]
            else:
                futures = [
                    executor.submit(_query_port, bridge, device_path, type_template % port)
                    for port in wave
                ]
                answers = [f.result() for f in futures]

            for port, (drive, error) in zip(wave, answers):
                result.ports_queried.append(port)
                result.last_output = drive.basic_output

                marker = next((m for m in markers if m.matches(drive.basic_output, port)), None)
                if marker is not None:
                    logger.debug(f"Stopping scan of {device_path} at port {port}: {marker.name}")
                    result.halted_by = marker.name
                    result.halted_at = port
                    return result

                if error:
                    logger.debug(f"Skipping {drive.get_device_with_type()}: {error}")
                else:
                    logger.info(f"Added drive {drive.get_device_with_type()}")
                    result.devices.append(drive)
    finally:
        if executor is not None:
            executor.shutdown(wait=True)

    return result
