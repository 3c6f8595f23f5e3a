"""YAML configuration loader."""
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from storprobe.core.config import StorprobeConfig, env_overrides
from storprobe.core.errors import ConfigValidationError
from storprobe.core.logger import get_logger
from storprobe.models.settings import DetectionSettings

logger = get_logger(__name__)


class ConfigLoader:
    """Loads storprobe.yml and turns it into a StorprobeConfig.

    Precedence, lowest first: built-in defaults, the config file,
    STORPROBE_* environment variables.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path) if config_path else None
        self.raw_config: Optional[Dict[str, Any]] = None
        self.settings: Optional[DetectionSettings] = None

    def load_settings(self) -> DetectionSettings:
        """Read and validate the config file. No file means empty settings."""
        if self.config_path is None:
            self.settings = DetectionSettings()
            return self.settings

        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        try:
            with open(self.config_path) as f:
                self.raw_config = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"Invalid YAML in {self.config_path}: {exc}") from exc

        if self.raw_config is None:
            logger.debug(f"Config file {self.config_path} is empty, using defaults")
            self.raw_config = {}
        if not isinstance(self.raw_config, dict):
            raise ConfigValidationError(f"Config file {self.config_path} must contain a mapping of settings")

        try:
            self.settings = DetectionSettings.model_validate(self.raw_config)
        except ValidationError as exc:
            raise ConfigValidationError(self._format_errors(exc)) from exc
        return self.settings

    def load(self) -> StorprobeConfig:
        """Build the effective configuration."""
        settings = self.load_settings()
        values = settings.model_dump(exclude_none=True)

        config = StorprobeConfig()
        config.update(values)
        config.update(env_overrides())

        if self.config_path is not None:
            logger.debug(f"Loaded configuration from {self.config_path}")
        return config

    def _format_errors(self, exc: ValidationError) -> str:
        lines = [f"Invalid configuration in {self.config_path}:"]
        for error in exc.errors():
            location = ".".join(str(part) for part in error["loc"])
            lines.append(f"  {location}: {error['msg']}")
        return "\n".join(lines)
