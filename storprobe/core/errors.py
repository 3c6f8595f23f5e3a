"""Exception types raised by storprobe."""
from typing import List, Optional


class StorprobeError(Exception):
    """Base class for all storprobe errors."""


class ProcReadError(StorprobeError):
    """A required platform data source (proc file, device directory) could not be read."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        message = f"Cannot read {path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class StorageDeviceError(StorprobeError):
    """A query against a single device failed.

    The captured tool output is kept so callers can show it next to the message.
    """

    def __init__(self, message: str, device: str = "", output: str = ""):
        self.device = device
        self.output = output
        super().__init__(message)


class GeneralDetectionErrors(StorprobeError):
    """No drives were found; carries every error collected along the way."""

    def __init__(self, messages: Optional[List[str]] = None):
        self.messages = [m for m in (messages or []) if m]
        super().__init__("\n".join(self.messages) if self.messages else "No drives found.")


class VendorCliError(StorprobeError):
    """A vendor RAID CLI could not be run or its output was not understood."""


class CommandNotFoundError(StorprobeError):
    """The requested executable does not exist."""


class ConfigValidationError(StorprobeError):
    """Configuration file contents are invalid."""
