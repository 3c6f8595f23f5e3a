"""Data models for storprobe."""
from storprobe.models.controller import ControllerHandle, ControllerVendor
from storprobe.models.device import DetectedType, DeviceSource, StorageDevice
from storprobe.models.settings import DetectionSettings, DeviceOptionEntry

__all__ = [
    'ControllerHandle',
    'ControllerVendor',
    'DetectedType',
    'DeviceSource',
    'StorageDevice',
    'DetectionSettings',
    'DeviceOptionEntry',
]
