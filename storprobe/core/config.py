"""storprobe runtime configuration and settings."""
import os
from dataclasses import dataclass, field, fields
from typing import Dict, List, Optional

from storprobe.core.errors import ConfigValidationError


def clamp(value: int, low: int, high: int) -> int:
    """Clamp a configured scan range to its hard limits."""
    return max(low, min(high, int(value)))


def _env_int(name: str) -> int:
    """Positive integer from an environment variable."""
    raw = os.environ[name]
    try:
        value = int(raw)
    except ValueError:
        raise ConfigValidationError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ConfigValidationError(f"{name} must be at least 1, got {value}")
    return value


def env_overrides() -> Dict:
    """Config values set through STORPROBE_* environment variables.

    Raises:
        ConfigValidationError: A numeric variable does not hold a positive integer.
    """
    values: Dict = {}
    if "STORPROBE_SMARTCTL_BINARY" in os.environ:
        values["smartctl_binary"] = os.environ["STORPROBE_SMARTCTL_BINARY"]
    if "STORPROBE_SMARTCTL_OPTIONS" in os.environ:
        values["smartctl_options"] = os.environ["STORPROBE_SMARTCTL_OPTIONS"]
    if "STORPROBE_TW_CLI_BINARY" in os.environ:
        values["tw_cli_binary"] = os.environ["STORPROBE_TW_CLI_BINARY"]
    if os.getenv("STORPROBE_COMMAND_TIMEOUT"):
        values["command_timeout"] = _env_int("STORPROBE_COMMAND_TIMEOUT")
    if os.getenv("STORPROBE_SCAN_WORKERS"):
        values["scan_workers"] = _env_int("STORPROBE_SCAN_WORKERS")
    blacklist = os.getenv("STORPROBE_DEVICE_BLACKLIST", "")
    if blacklist:
        values["device_blacklist_patterns"] = [p.strip() for p in blacklist.split(",") if p.strip()]
    return values


@dataclass
class StorprobeConfig:
    """Runtime configuration for detection runs.

    Attributes:
        smartctl_binary: smartctl executable name or path
        smartctl_options: Options passed to every smartctl invocation
        smartctl_device_options: Per-device options, list of {device, type, options}
        tw_cli_binary: 3ware tw_cli executable
        areca_cli_binary: Areca CLI executable, relative to its install dir on Windows
        device_blacklist_patterns: Regexes matched against device paths
        command_timeout: Timeout in seconds for each external command (default: 60)
        scan_workers: Parallel queries per controller port scan (default: 1)
        parallel_probers: Run RAID probers in a thread pool (default: False)
    """

    # External tools
    smartctl_binary: str = "smartctl"
    smartctl_options: str = ""
    smartctl_device_options: List[Dict[str, str]] = field(default_factory=list)
    tw_cli_binary: str = "tw_cli"
    areca_cli_binary: str = "cli.exe"
    win32_search_smartctl_in_smartmontools: bool = True

    device_blacklist_patterns: List[str] = field(default_factory=list)

    # Linux data sources
    linux_proc_partitions_path: str = "/proc/partitions"
    linux_proc_devices_path: str = "/proc/devices"
    linux_proc_scsi_scsi_path: str = "/proc/scsi/scsi"
    linux_proc_scsi_sg_devices_path: str = "/proc/scsi/sg/devices"
    linux_sys_scsi_devices_path: str = "/sys/bus/scsi/devices"

    # Linux scan ranges
    linux_3ware_max_scan_port: int = 23  # clamped to 0-127
    linux_areca_enc_max_scan_port: int = 36  # clamped to 1-128
    linux_areca_enc_max_enclosure: int = 4  # clamped to 1-8
    linux_areca_noenc_max_scan_port: int = 24  # clamped to 1-24

    # Other Unix
    unix_sdev_path: str = "/dev"
    solaris_dev_path: str = "/dev/rdsk"
    bsd_raw_partition: Optional[int] = None  # None = 2 on OpenBSD, 3 on NetBSD

    # Windows Areca: 0 = off, 1 = force, 2 = auto
    win32_areca_scan_controllers: int = 2
    win32_areca_use_cli: int = 2
    win32_areca_max_controllers: int = 4  # clamped to 0-15
    win32_areca_enc_max_scan_port: int = 36  # clamped to 1-128
    win32_areca_enc_max_enclosure: int = 3  # clamped to 1-8
    win32_areca_noenc_max_scan_port: int = 24  # clamped to 1-24

    # Execution
    command_timeout: int = 60
    scan_workers: int = 1
    parallel_probers: bool = False

    def device_options_for(self, device: str, type_argument: str) -> str:
        """Return configured smartctl options for an exact (device, type) pair."""
        if not device:
            return ""
        for entry in self.smartctl_device_options:
            if entry.get("device") == device and entry.get("type", "") == type_argument:
                return entry.get("options", "")
        return ""

    def update(self, values: Dict) -> "StorprobeConfig":
        """Overlay known keys from a mapping onto this config."""
        known = {f.name for f in fields(self)}
        for key, value in values.items():
            if key in known and value is not None:
                setattr(self, key, value)
        return self

    @classmethod
    def from_env(cls) -> "StorprobeConfig":
        """Create config from environment variables.

        Environment variables:
            STORPROBE_SMARTCTL_BINARY: smartctl executable
            STORPROBE_SMARTCTL_OPTIONS: Options added to every smartctl call
            STORPROBE_TW_CLI_BINARY: tw_cli executable
            STORPROBE_COMMAND_TIMEOUT: Per-command timeout in seconds
            STORPROBE_SCAN_WORKERS: Parallel queries per port scan
            STORPROBE_DEVICE_BLACKLIST: Comma-separated device path regexes

        Returns:
            StorprobeConfig instance with values from environment or defaults
        """
        return cls().update(env_overrides())


# Global config instance (can be overridden)
_config: Optional[StorprobeConfig] = None


def get_config() -> StorprobeConfig:
    """Get the global storprobe configuration.

    Returns:
        StorprobeConfig instance (creates from environment if not set)
    """
    global _config
    if _config is None:
        _config = StorprobeConfig.from_env()
    return _config


def set_config(config: Optional[StorprobeConfig]):
    """Set the global storprobe configuration.

    Args:
        config: StorprobeConfig instance to use globally, or None to reset
    """
    global _config
    _config = config
