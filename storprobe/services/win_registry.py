"""Windows registry lookups for vendor software installs."""
import sys
from typing import Optional

from storprobe.core.logger import get_logger

logger = get_logger(__name__)

HKEY_LOCAL_MACHINE = "HKEY_LOCAL_MACHINE"
HKEY_USERS = "HKEY_USERS"


class RegistryReader:
    """Reads string values from the Windows registry.

    On other platforms every lookup returns None, so callers need no
    platform checks of their own.
    """

    def get_string(self, root: str, path: str, key: str) -> Optional[str]:
        """Return a registry string value, or None if missing or empty."""
        if sys.platform != "win32":
            return None

        import winreg

        hive = getattr(winreg, root)
        try:
            with winreg.OpenKey(hive, path) as handle:
                value, _kind = winreg.QueryValueEx(handle, key)
        except OSError:
            logger.debug(f"Registry value {root}\\{path}\\{key} not found")
            return None

        value = str(value).strip() if value is not None else ""
        return value or None

    def get_first(self, root: str, paths, key: str) -> Optional[str]:
        """Return the value from the first path that has it."""
        for path in paths:
            value = self.get_string(root, path, key)
            if value:
                return value
        return None
