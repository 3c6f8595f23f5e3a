"""Configuration file schema."""
import re
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DeviceOptionEntry(BaseModel):
    """Extra smartctl options for one (device, type) pair."""

    model_config = ConfigDict(extra='forbid')

    device: str = Field(..., description="Device path, e.g. /dev/sda")
    type: str = Field("", description="Type argument the options apply to")
    options: str = Field(..., description="Options appended to the smartctl command line")

    @field_validator('device', 'options')
    @classmethod
    def validate_not_empty(cls, v):
        """Device and options must be non-empty."""
        if not v.strip():
            raise ValueError("must not be empty")
        return v


class DetectionSettings(BaseModel):
    """Contents of a storprobe.yml file. Every key is optional."""

    model_config = ConfigDict(extra='forbid')

    smartctl_binary: Optional[str] = None
    smartctl_options: Optional[str] = None
    smartctl_device_options: Optional[List[DeviceOptionEntry]] = None
    tw_cli_binary: Optional[str] = None
    areca_cli_binary: Optional[str] = None
    win32_search_smartctl_in_smartmontools: Optional[bool] = None

    device_blacklist_patterns: Optional[List[str]] = None

    linux_proc_partitions_path: Optional[str] = None
    linux_proc_devices_path: Optional[str] = None
    linux_proc_scsi_scsi_path: Optional[str] = None
    linux_proc_scsi_sg_devices_path: Optional[str] = None
    linux_sys_scsi_devices_path: Optional[str] = None

    # Out-of-range values are accepted here and clamped when scanning.
    linux_3ware_max_scan_port: Optional[int] = None
    linux_areca_enc_max_scan_port: Optional[int] = None
    linux_areca_enc_max_enclosure: Optional[int] = None
    linux_areca_noenc_max_scan_port: Optional[int] = None

    unix_sdev_path: Optional[str] = None
    solaris_dev_path: Optional[str] = None
    bsd_raw_partition: Optional[int] = Field(None, ge=0, le=15)

    win32_areca_scan_controllers: Optional[int] = Field(None, ge=0, le=2)
    win32_areca_use_cli: Optional[int] = Field(None, ge=0, le=2)
    win32_areca_max_controllers: Optional[int] = None
    win32_areca_enc_max_scan_port: Optional[int] = None
    win32_areca_enc_max_enclosure: Optional[int] = None
    win32_areca_noenc_max_scan_port: Optional[int] = None

    command_timeout: Optional[int] = Field(None, gt=0)
    scan_workers: Optional[int] = Field(None, ge=1, le=32)
    parallel_probers: Optional[bool] = None

    @field_validator('device_blacklist_patterns')
    @classmethod
    def validate_patterns(cls, v):
        """Blacklist entries must be valid regular expressions."""
        for pattern in v or []:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"Invalid blacklist pattern '{pattern}': {exc}")
        return v
