"""Shared test fixtures for storprobe tests."""
import pytest

from samples import FakeCommands
from storprobe.core.config import StorprobeConfig, set_config
from storprobe.detection.context import DetectionRun
from storprobe.services.smartctl import SmartctlBridge


@pytest.fixture(autouse=True)
def reset_global_config():
    """Keep the global config from leaking between tests."""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def commands():
    """Fake command runner."""
    return FakeCommands()


@pytest.fixture
def proc_files(tmp_path):
    """Write Linux /proc files into a temp dir and return a config pointing at them."""

    def _write(partitions="", devices="", scsi="", sg_devices="", **overrides) -> StorprobeConfig:
        proc = tmp_path / "proc"
        (proc / "scsi" / "sg").mkdir(parents=True, exist_ok=True)
        (proc / "partitions").write_text(partitions)
        (proc / "devices").write_text(devices)
        (proc / "scsi" / "scsi").write_text(scsi)
        (proc / "scsi" / "sg" / "devices").write_text(sg_devices)
        sys_dir = tmp_path / "sys" / "bus" / "scsi" / "devices"
        sys_dir.mkdir(parents=True, exist_ok=True)
        config = StorprobeConfig(
            linux_proc_partitions_path=str(proc / "partitions"),
            linux_proc_devices_path=str(proc / "devices"),
            linux_proc_scsi_scsi_path=str(proc / "scsi" / "scsi"),
            linux_proc_scsi_sg_devices_path=str(proc / "scsi" / "sg" / "devices"),
            linux_sys_scsi_devices_path=str(sys_dir),
        )
        config.update(overrides)
        return config

    return _write


@pytest.fixture
def make_run():
    """Build a DetectionRun around a config and fake runner."""

    def _make(config: StorprobeConfig, runner, windows: bool = False) -> DetectionRun:
        bridge = SmartctlBridge(config, runner, windows=windows)
        return DetectionRun(config=config, bridge=bridge, run_cmd=runner)

    return _make
