"""Tests for detection orchestration."""
import threading
import time

import pytest

from samples import ATA_HDD_OUTPUT, SCSI_OUTPUT, ata_output
from storprobe.core.config import StorprobeConfig
from storprobe.core.errors import GeneralDetectionErrors, StorageDeviceError
from storprobe.detection.context import ProbeResult
from storprobe.detection.linux import LinuxPartitionsEnumerator
from storprobe.detection.orchestrator import (
    DetectionState,
    StorageDetector,
    parse_device_spec,
    platform_sources,
)
from storprobe.detection.other_unix import OtherUnixEnumerator
from storprobe.detection.windows import WindowsEnumerator
from storprobe.models.device import DeviceSource, StorageDevice


class FakeSource:
    """Enumerator or prober returning canned results and recording calls."""

    def __init__(self, name, devices=(), error="", log=None, delay=0.0):
        self.name = name
        self.devices = list(devices)
        self.error = error
        self.log = log if log is not None else []
        self.delay = delay

    def _result(self):
        if self.delay:
            time.sleep(self.delay)
        self.log.append((self.name, threading.get_ident()))
        return ProbeResult(devices=[StorageDevice(d.device_path, d.type_argument, source=d.source)
                                    for d in self.devices], error=self.error)

    def enumerate(self, run):
        return self._result()

    def probe(self, run):
        return self._result()


def _detector(commands, enumerator, probers=(), **config):
    return StorageDetector(
        StorprobeConfig(**config),
        run_cmd=commands,
        enumerator=enumerator,
        probers=list(probers),
        platform="linux",
    )


class TestParseDeviceSpec:
    """Test parse_device_spec."""

    def test_full(self):
        device = parse_device_spec("/dev/sdb::sat::-T permissive")
        assert (device.device_path, device.type_argument, device.extra_arguments) == (
            "/dev/sdb", "sat", "-T permissive"
        )
        assert device.source == DeviceSource.MANUAL

    def test_device_only(self):
        assert parse_device_spec("/dev/sdb").type_argument == ""

    def test_empty_device(self):
        with pytest.raises(StorageDeviceError, match="Invalid device specification"):
            parse_device_spec("::sat")


class TestPlatformSources:
    """Test platform_sources."""

    def test_linux(self):
        enumerator, probers = platform_sources("linux")
        assert isinstance(enumerator, LinuxPartitionsEnumerator)
        assert [p.name for p in probers] == ["3ware", "areca", "adaptec", "cciss", "hpsa"]

    def test_windows(self):
        enumerator, probers = platform_sources("win32")
        assert isinstance(enumerator, WindowsEnumerator)
        assert probers == []

    def test_bsd(self):
        enumerator, probers = platform_sources("freebsd13")
        assert isinstance(enumerator, OtherUnixEnumerator)
        assert enumerator.kernel == "freebsd"


class TestDetect:
    """Test StorageDetector.detect."""

    def test_enumerator_then_probers(self, commands):
        """Results are collected in order and errors do not void devices."""
        log = []
        enumerator = FakeSource("partitions", [StorageDevice("/dev/sda")], log=log)
        threeware = FakeSource(
            "3ware", [StorageDevice("/dev/twa0", "3ware,0", source=DeviceSource.STRUCTURED)],
            error="tw_cli failed", log=log,
        )
        areca = FakeSource("areca", error="Cannot read /proc/scsi/sg/devices", log=log)
        detector = _detector(commands, enumerator, [threeware, areca])
        run = detector.new_run()

        devices = detector.detect(run)

        assert [name for name, _ in log] == ["partitions", "3ware", "areca"]
        assert [(d.device_path, d.type_argument) for d in devices] == [
            ("/dev/sda", ""), ("/dev/twa0", "3ware,0"),
        ]
        assert run.errors == ["tw_cli failed", "Cannot read /proc/scsi/sg/devices"]
        assert run.state == DetectionState.ENUMERATING

    def test_nothing_found(self, commands):
        detector = _detector(commands, FakeSource("partitions", error="Cannot read /proc/partitions"))
        run = detector.new_run()

        with pytest.raises(GeneralDetectionErrors) as exc_info:
            detector.detect(run)

        assert exc_info.value.messages == ["Cannot read /proc/partitions"]
        assert run.state == DetectionState.DONE

    def test_manual_and_virtual_devices(self, commands, tmp_path):
        saved = tmp_path / "saved.txt"
        saved.write_text(ATA_HDD_OUTPUT)
        detector = _detector(commands, FakeSource("partitions"))
        run = detector.new_run()

        devices = detector.detect(
            run,
            manual_devices=["/dev/sdb::sat", "::broken"],
            virtual_files=[str(saved), str(tmp_path / "missing.txt")],
        )

        assert [d.source for d in devices] == [DeviceSource.MANUAL, DeviceSource.VIRTUAL]
        assert len(run.errors) == 2
        assert "Invalid device specification" in run.errors[0]

    def test_no_scan(self, commands):
        log = []
        detector = _detector(commands, FakeSource("partitions", log=log), [FakeSource("3ware", log=log)])

        devices = detector.detect(detector.new_run(), manual_devices=["/dev/sdc"], no_scan=True)

        assert log == []
        assert [d.device_path for d in devices] == ["/dev/sdc"]

    def test_blacklist_from_config(self, commands):
        enumerator = FakeSource("partitions", [StorageDevice("/dev/sda"), StorageDevice("/dev/sr0")])
        detector = _detector(commands, enumerator, device_blacklist_patterns=[r"^/dev/sr"])

        devices = detector.detect(detector.new_run())

        assert [d.device_path for d in devices] == ["/dev/sda"]

    def test_parallel_probers_keep_order(self, commands):
        """Probers run on worker threads, results still come back in prober order."""
        log = []
        probers = [
            FakeSource("slow", [StorageDevice("/dev/sg1", "cciss,0")], log=log, delay=0.05),
            FakeSource("fast", [StorageDevice("/dev/sg2", "cciss,0")], error="fast failed", log=log),
        ]
        detector = _detector(commands, FakeSource("partitions", log=log), probers, parallel_probers=True)
        run = detector.new_run()

        detector.detect(run)

        assert {name for name, _ in log} == {"partitions", "slow", "fast"}
        prober_threads = {ident for name, ident in log if name != "partitions"}
        assert threading.get_ident() not in prober_threads
        assert run.errors == ["fast failed"]


class TestFetchBasicData:
    """Test StorageDetector.fetch_basic_data."""

    def test_records_errors_and_keeps_devices(self, commands):
        commands.device("/dev/sda", "", ATA_HDD_OUTPUT)
        enumerator = FakeSource("partitions", [StorageDevice("/dev/sda"), StorageDevice("/dev/sdb")])
        detector = _detector(commands, enumerator)

        run = detector.new_run()
        devices = detector.detect_and_fetch_basic_data(run)

        assert [d.device_path for d in devices] == ["/dev/sda", "/dev/sdb"]
        assert devices[0].model_name == "WDC WD10EZEX-00BN5A0"
        assert len(run.fetch_errors) == 1
        assert run.fetch_errors[0].startswith("/dev/sdb: ")
        assert "Input/output error" in run.fetch_error_outputs[0]
        assert run.fetch_error_devices == [devices[1]]
        assert run.state == DetectionState.DONE

    def test_fail_fast(self, commands):
        enumerator = FakeSource("partitions", [StorageDevice("/dev/sdb")])
        detector = _detector(commands, enumerator)

        with pytest.raises(StorageDeviceError):
            detector.detect_and_fetch_basic_data(return_first_error=True)

    def test_already_fetched_not_requeried(self, commands):
        """Devices with output from enumeration are not queried again."""
        commands.device("/dev/sdc", "", SCSI_OUTPUT)
        detector = _detector(commands, LinuxStub())
        run = detector.new_run()

        detector.detect_and_fetch_basic_data(run)

        assert commands.smartctl_calls() == [("/dev/sdc", "")]

    def test_same_drive_through_two_paths(self, commands):
        """Drives only identifiable after fetching are merged by serial."""
        output = ata_output("WDC WD5000AAKS", "WD-1")
        commands.device("/dev/sg1", "cciss,0", output)
        commands.device("/dev/cciss/c0d0", "cciss,0", output)
        enumerator = FakeSource("partitions", [
            StorageDevice("/dev/cciss/c0d0", "cciss,0", source=DeviceSource.SCAN),
            StorageDevice("/dev/sg1", "cciss,0", source=DeviceSource.STRUCTURED),
        ])
        detector = _detector(commands, enumerator)

        devices = detector.detect_and_fetch_basic_data()

        assert [(d.device_path, d.type_argument) for d in devices] == [("/dev/sg1", "cciss,0")]


class LinuxStub:
    """Enumerator that queries its device, as the partitions enumerator does."""

    name = "partitions"

    def enumerate(self, run):
        device = StorageDevice("/dev/sdc")
        device.fetch_basic_data_and_parse(run.bridge)
        return ProbeResult(devices=[device])
