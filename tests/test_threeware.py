"""Tests for the 3ware prober."""
from samples import VALID_ARGUMENTS_OUTPUT, ata_output
from storprobe.detection.raid.threeware import (
    ThreewareProber,
    choose_device_base,
    windows_tw_cli_drives,
)
from storprobe.models.device import DeviceSource

DEVICES = """Character devices:
  1 mem
  4 tty
251 twa
Block devices:
  8 sd
"""

SCSI = """Attached devices:
Host: scsi0 Channel: 00 Id: 00 Lun: 00
  Vendor: ATA      Model: WDC WD10EZEX-00B Rev: 1A01
Host: scsi6 Channel: 00 Id: 00 Lun: 00
  Vendor: AMCC     Model: 9650SE-16M DISK  Rev: 4.10
Host: scsi6 Channel: 00 Id: 01 Lun: 00
  Vendor: AMCC     Model: 9650SE-16M DISK  Rev: 4.10
"""

SHOW_ALL = """
Port   Status           Unit   Size        Blocks        Serial
---------------------------------------------------------------
p0     OK               u0     465.76 GB   976773168     WD-WCAS80000000
p1     NOT-PRESENT      -      -           -             -
p2     OK               u0     465.76 GB   976773168     WD-WCAS80000002
"""


class TestChooseDeviceBase:
    """Test choose_device_base."""

    def test_single_driver(self):
        assert choose_device_base({"twa"}, "AMCC") == "twa"
        assert choose_device_base({"twl"}, "LSI") == "twl"
        assert choose_device_base({"twe"}, "3ware") == "twe"

    def test_mixed_drivers_use_vendor(self):
        assert choose_device_base({"twa", "twe"}, "3ware") == "twe"
        assert choose_device_base({"twa", "twl"}, "LSI") == "twl"
        assert choose_device_base({"twa", "twe"}, "") == "twa"


class TestThreewareProber:
    """Test ThreewareProber."""

    def test_tw_cli_ports(self, commands, proc_files, make_run):
        """Controller at scsi host 6 maps to /dev/twa0 with ports from tw_cli /c6."""
        commands.command(["tw_cli", "/c6", "show", "all"], SHOW_ALL)
        run = make_run(proc_files(devices=DEVICES, scsi=SCSI), commands)

        result = ThreewareProber().probe(run)

        assert [(d.device_path, d.type_argument) for d in result.devices] == [
            ("/dev/twa0", "3ware,0"),
            ("/dev/twa0", "3ware,2"),
        ]
        assert all(d.source == DeviceSource.STRUCTURED for d in result.devices)
        assert result.error == ""
        # Structured devices are not queried until fetch time.
        assert commands.smartctl_calls() == []

    def test_falls_back_to_scan(self, commands, proc_files, make_run):
        """Without tw_cli, ports are scanned up to the controller's ceiling."""
        commands.device("/dev/twa0", "3ware,1", ata_output("WDC WD5000AAKS", "WD-1"))
        commands.device("/dev/twa0", "3ware,4", VALID_ARGUMENTS_OUTPUT, returncode=1)
        run = make_run(proc_files(devices=DEVICES, scsi=SCSI), commands)

        result = ThreewareProber().probe(run)

        assert [(d.device_path, d.type_argument) for d in result.devices] == [
            ("/dev/twa0", "3ware,1"),
        ]
        assert result.devices[0].source == DeviceSource.SCAN
        assert result.devices[0].serial_number == "WD-1"
        assert ("/dev/twa0", "3ware,5") not in commands.smartctl_calls()

    def test_failing_tw_cli_falls_back_to_scan(self, commands, proc_files, make_run):
        """tw_cli that runs but fails does not hide the controller's drives."""
        error = "Error: (CLI:003) Specified controller does not exist."
        for binary in ("tw_cli", "tw_cli.x86_64", "tw_cli.x86"):
            commands.command([binary, "/c6", "show", "all"], error, returncode=1)
        commands.device("/dev/twa0", "3ware,1", ata_output("WDC WD5000AAKS", "WD-1"))
        commands.device("/dev/twa0", "3ware,2", VALID_ARGUMENTS_OUTPUT, returncode=1)
        run = make_run(proc_files(devices=DEVICES, scsi=SCSI), commands)

        result = ThreewareProber().probe(run)

        assert [(d.device_path, d.type_argument) for d in result.devices] == [
            ("/dev/twa0", "3ware,1"),
        ]
        assert result.devices[0].source == DeviceSource.SCAN

    def test_garbled_tw_cli_falls_back_to_scan(self, commands, proc_files, make_run):
        commands.command(["tw_cli", "/c6", "show", "all"], "Segmentation fault\n")
        commands.device("/dev/twa0", "3ware,0", ata_output("WDC WD5000AAKS", "WD-0"))
        commands.device("/dev/twa0", "3ware,1", VALID_ARGUMENTS_OUTPUT, returncode=1)
        run = make_run(proc_files(devices=DEVICES, scsi=SCSI), commands)

        result = ThreewareProber().probe(run)

        assert [(d.device_path, d.type_argument) for d in result.devices] == [
            ("/dev/twa0", "3ware,0"),
        ]

    def test_scan_range_from_config(self, commands, proc_files, make_run):
        commands.device("/dev/twa0", "3ware,3", ata_output("WDC", "WD-3"))
        config = proc_files(devices=DEVICES, scsi=SCSI, linux_3ware_max_scan_port=2)

        result = ThreewareProber().probe(make_run(config, commands))

        assert result.devices == []
        assert commands.smartctl_calls()[-1] == ("/dev/twa0", "3ware,2")

    def test_no_driver(self, commands, proc_files, make_run):
        run = make_run(proc_files(devices="  1 mem\n", scsi=SCSI), commands)
        result = ThreewareProber().probe(run)
        assert result.devices == []
        assert result.error == ""

    def test_driver_without_controllers(self, commands, proc_files, make_run):
        run = make_run(proc_files(devices=DEVICES, scsi="Attached devices:\n"), commands)
        assert ThreewareProber().probe(run).devices == []

    def test_missing_devices_file(self, commands, proc_files, make_run, tmp_path):
        config = proc_files(linux_proc_devices_path=str(tmp_path / "missing"))
        result = ThreewareProber().probe(make_run(config, commands))
        assert "Cannot read" in result.error

    def test_numbering_follows_host_order(self, commands, proc_files, make_run):
        """Second controller of the same kind becomes twa1."""
        scsi = SCSI + (
            "Host: scsi7 Channel: 00 Id: 00 Lun: 00\n"
            "  Vendor: AMCC     Model: 9650SE-8LP DISK  Rev: 4.10\n"
        )
        commands.command(["tw_cli", "/c6", "show", "all"], SHOW_ALL)
        commands.command(["tw_cli", "/c7", "show", "all"], "p5 OK u0 1 TB\n")
        run = make_run(proc_files(devices=DEVICES, scsi=scsi), commands)

        result = ThreewareProber().probe(run)

        assert ("/dev/twa1", "3ware,5") in [(d.device_path, d.type_argument) for d in result.devices]


class TestWindowsTwCli:
    """Test windows_tw_cli_drives."""

    def test_controllers_and_ports(self, commands, proc_files, make_run):
        commands.command(["tw_cli", "show"], "c0  9650SE-4LPML  4  4  1  0  1  1  -\n")
        commands.command(["tw_cli", "/c0", "show", "all"], SHOW_ALL)
        run = make_run(proc_files(), commands, windows=True)

        result = windows_tw_cli_drives(run)

        assert [d.device_path for d in result.devices] == ["tw_cli/c0/p0", "tw_cli/c0/p2"]

    def test_no_tw_cli(self, commands, proc_files, make_run):
        result = windows_tw_cli_drives(make_run(proc_files(), commands, windows=True))
        assert result.devices == []
        assert result.error == ""
