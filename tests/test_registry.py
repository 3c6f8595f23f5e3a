"""Tests for device merging."""
import random
import re

import pytest

from storprobe.detection.registry import DeviceRegistry, compile_blacklist
from storprobe.models.device import DeviceSource, StorageDevice


def _device(path, type_argument="", source=DeviceSource.BASE, model=None, serial=None, letters=None):
    device = StorageDevice(path, type_argument, source=source, drive_letters=dict(letters or {}))
    device.model_name = model
    device.serial_number = serial
    return device


class TestBlacklist:
    """Test blacklist filtering."""

    def test_invalid_patterns_ignored(self):
        assert [p.pattern for p in compile_blacklist(["^/dev/sd[", "^/dev/sr"])] == ["^/dev/sr"]

    def test_virtual_devices_exempt(self):
        virtual = StorageDevice("", is_virtual=True, virtual_file="saved.txt", source=DeviceSource.VIRTUAL)
        merged = DeviceRegistry().merge([virtual, _device("/dev/sda")], [".*"])
        assert merged == [virtual]

    @pytest.mark.parametrize("seed", range(20))
    def test_no_blacklisted_device_survives(self, seed):
        """Whatever the input, no surviving real device matches a blacklist pattern."""
        rng = random.Random(seed)
        names = [f"/dev/sd{chr(ord('a') + i)}" for i in range(8)] + ["/dev/sr0", "/dev/nvme0"]
        devices = [_device(rng.choice(names), rng.choice(["", "sat", "scsi"])) for _ in range(15)]
        patterns = rng.sample([r"^/dev/sd[a-c]$", r"nvme", r"^/dev/sr", r"sd[fg]"], k=rng.randint(1, 3))

        merged = DeviceRegistry().merge(devices, patterns)

        compiled = [re.compile(p) for p in patterns]
        assert not any(p.search(d.device_path) for d in merged for p in compiled)
        # Everything not blacklisted is still represented.
        expected = {(d.device_path, d.type_argument) for d in devices
                    if not any(p.search(d.device_path) for p in compiled)}
        assert {d.path_key for d in merged} == expected


class TestDedup:
    """Test duplicate removal."""

    def test_same_path_and_type(self):
        """Exact path duplicates collapse; the higher source rank wins."""
        base = _device("/dev/sda")
        manual = _device("/dev/sda", source=DeviceSource.MANUAL)

        merged = DeviceRegistry().merge([base, manual])

        assert merged == [manual]

    def test_different_types_are_different_devices(self):
        merged = DeviceRegistry().merge([_device("/dev/twa0", "3ware,0"), _device("/dev/twa0", "3ware,1")])
        assert len(merged) == 2

    def test_serial_prefers_port_device(self):
        """A pdN and a port-qualified path to one drive keep the richer one, with all letters."""
        pd = _device("pd1", model="WDC", serial="123", letters={"E": ""})
        port = _device(
            "/dev/sdb,0", "ata", source=DeviceSource.STRUCTURED, model="WDC", serial="123", letters={"D": "Data"}
        )

        merged = DeviceRegistry().merge([pd, port])

        assert merged == [port]
        assert port.drive_letters == {"D": "Data", "E": ""}

    def test_equal_rank_keeps_first(self):
        first = _device("/dev/sda", model="WDC", serial="1")
        second = _device("/dev/sdb", model="WDC", serial="1")
        assert DeviceRegistry().merge([second, first]) == [second]

    def test_virtual_never_merges_with_real(self):
        """A saved output of a live drive stays a separate entry."""
        real = _device("/dev/sda", model="WDC", serial="1")
        virtual = StorageDevice("", is_virtual=True, virtual_file="sda.txt", source=DeviceSource.VIRTUAL)
        virtual.model_name = "WDC"
        virtual.serial_number = "1"

        merged = DeviceRegistry().merge([virtual, real])

        assert merged == [real, virtual]

    def test_idempotent(self):
        devices = [
            _device("/dev/sdb"),
            _device("/dev/sda", model="A", serial="1"),
            _device("/dev/sdc", model="A", serial="1", source=DeviceSource.SCAN),
            _device("/dev/sda"),
        ]
        registry = DeviceRegistry()

        once = registry.merge(devices)
        twice = registry.merge(once)

        assert once == twice
        # /dev/sda with a serial loses to the scanned path; the unqueried /dev/sda stays.
        assert [d.device_path for d in once] == ["/dev/sda", "/dev/sdb", "/dev/sdc"]
        assert once[0].serial_number is None
