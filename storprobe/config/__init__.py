"""Configuration management."""
from storprobe.config.loader import ConfigLoader
from storprobe.core.errors import ConfigValidationError

__all__ = ['ConfigLoader', 'ConfigValidationError']
