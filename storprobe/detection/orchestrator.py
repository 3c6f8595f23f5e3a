"""Detection orchestration: enumerate, probe controllers, merge, fetch."""
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional, Sequence

from storprobe.core.config import StorprobeConfig, get_config
from storprobe.core.errors import GeneralDetectionErrors, StorageDeviceError
from storprobe.core.logger import get_logger
from storprobe.detection.context import DetectionRun, DetectionState, ProbeResult
from storprobe.detection.linux import LinuxPartitionsEnumerator
from storprobe.detection.other_unix import OtherUnixEnumerator, kernel_family
from storprobe.detection.raid import LINUX_PROBERS
from storprobe.detection.registry import DeviceRegistry
from storprobe.detection.windows import WindowsEnumerator
from storprobe.models.device import DeviceSource, StorageDevice
from storprobe.services.command import CommandRunner, make_runner
from storprobe.services.smartctl import SmartctlBridge

logger = get_logger(__name__)

__all__ = ['DetectionRun', 'DetectionState', 'StorageDetector', 'parse_device_spec', 'platform_sources']

DEVICE_SPEC_SEPARATOR = "::"


def parse_device_spec(spec: str) -> StorageDevice:
    """Build a manually added device from "device[::type[::extra options]]"."""
    parts = spec.split(DEVICE_SPEC_SEPARATOR, 2)
    device_path = parts[0].strip()
    if not device_path:
        raise StorageDeviceError(f"Invalid device specification: {spec!r}")
    type_argument = parts[1].strip() if len(parts) > 1 else ""
    extra_arguments = parts[2].strip() if len(parts) > 2 else ""
    return StorageDevice(
        device_path,
        type_argument,
        extra_arguments=extra_arguments,
        source=DeviceSource.MANUAL,
    )


def platform_sources(platform: Optional[str] = None):
    """Platform enumerator and RAID probers for a sys.platform value."""
    platform = platform or sys.platform
    if platform.startswith("linux"):
        return LinuxPartitionsEnumerator(), [prober() for prober in LINUX_PROBERS]
    if platform == "win32":
        # Windows controller detection runs inside the enumerator.
        return WindowsEnumerator(), []
    return OtherUnixEnumerator(kernel_family(platform)), []


class StorageDetector:
    """Finds every drive smartctl can talk to on this machine."""

    def __init__(
        self,
        config: Optional[StorprobeConfig] = None,
        run_cmd: Optional[CommandRunner] = None,
        bridge: Optional[SmartctlBridge] = None,
        enumerator=None,
        probers: Optional[Sequence] = None,
        platform: Optional[str] = None,
    ):
        self.config = config or get_config()
        self.run_cmd = run_cmd or make_runner(self.config.command_timeout)
        self.bridge = bridge or SmartctlBridge(
            self.config,
            self.run_cmd,
            windows=(platform == "win32") if platform else None,
        )
        default_enumerator, default_probers = platform_sources(platform)
        self.enumerator = enumerator if enumerator is not None else default_enumerator
        self.probers = list(probers) if probers is not None else default_probers
        self.registry = DeviceRegistry()

    def new_run(self) -> DetectionRun:
        return DetectionRun(
            config=self.config,
            bridge=self.bridge,
            run_cmd=self.run_cmd,
            blacklist_patterns=list(self.config.device_blacklist_patterns),
        )

    def detect(
        self,
        run: DetectionRun,
        manual_devices: Iterable[str] = (),
        virtual_files: Iterable[str] = (),
        no_scan: bool = False,
    ) -> List[StorageDevice]:
        """Enumerate drives into run.devices.

        Raises:
            GeneralDetectionErrors: Nothing was found at all.
        """
        run.state = DetectionState.ENUMERATING
        run.cache.clear()
        run.errors.clear()

        found: List[StorageDevice] = []
        if no_scan:
            logger.info("Skipping drive scan")
        else:
            for result in self._collect(run):
                found += result.devices
                if result.error:
                    logger.warning(result.error)
                    run.errors.append(result.error)

        for spec in manual_devices:
            try:
                found.append(parse_device_spec(spec))
            except StorageDeviceError as exc:
                run.errors.append(str(exc))

        for path in virtual_files:
            try:
                found.append(StorageDevice.from_output_file(path))
            except StorageDeviceError as exc:
                logger.warning(f"Cannot load {path}: {exc}")
                run.errors.append(str(exc))

        if not found:
            run.state = DetectionState.DONE
            raise GeneralDetectionErrors(run.errors)

        run.devices = self.registry.merge(found, run.blacklist_patterns)
        logger.info(f"Detected {len(run.devices)} drive(s)")
        return run.devices

    def _collect(self, run: DetectionRun) -> List[ProbeResult]:
        results = [self.enumerator.enumerate(run)]
        if not self.probers:
            return results

        if self.config.parallel_probers and len(self.probers) > 1:
            with ThreadPoolExecutor(max_workers=len(self.probers)) as executor:
                # map() keeps prober order regardless of completion order
                results += list(executor.map(lambda prober: prober.probe(run), self.probers))
        else:
            for prober in self.probers:
                results.append(prober.probe(run))
        return results

    def fetch_basic_data(self, run: DetectionRun, return_first_error: bool = False):
        """Query basic info for every real device that has none yet.

        Failures are recorded on the run and the device stays in the list.

        Raises:
            StorageDeviceError: First failure, when return_first_error is set.
        """
        run.state = DetectionState.FETCHING_BASIC_DATA
        run.clear_fetch_errors()

        for device in run.devices:
            if device.is_virtual or device.basic_output:
                continue
            try:
                device.fetch_basic_data_and_parse(run.bridge)
            except StorageDeviceError as exc:
                message = f"{device.get_device_with_type()}: {exc}"
                logger.warning(f"Cannot fetch basic data for {message}")
                run.record_fetch_error(device, message, device.basic_output)
                if return_first_error:
                    raise

        # Serial numbers are known now; collapse drives seen through several paths.
        run.devices = self.registry.merge(run.devices, run.blacklist_patterns)
        run.state = DetectionState.DONE

    def detect_and_fetch_basic_data(
        self,
        run: Optional[DetectionRun] = None,
        manual_devices: Iterable[str] = (),
        virtual_files: Iterable[str] = (),
        no_scan: bool = False,
        return_first_error: bool = False,
    ) -> List[StorageDevice]:
        run = run or self.new_run()
        self.detect(run, manual_devices, virtual_files, no_scan)
        self.fetch_basic_data(run, return_first_error)
        return run.devices
