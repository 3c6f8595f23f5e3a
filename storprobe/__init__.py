"""storprobe: find the storage devices smartctl can talk to."""

__version__ = "0.1.0"
