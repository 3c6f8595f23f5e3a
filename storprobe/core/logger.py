"""Logging for storprobe: rich console on stderr, optional log file.

stdout is kept free for command output (tables, --json), so console log
records go to stderr.
"""
import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

console = Console(stderr=True)

LOG_DIR = Path("/var/log/storprobe")
LOG_FILE = LOG_DIR / "storprobe.log"
FALLBACK_LOG_FILE = Path("/tmp/storprobe.log")

FILE_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"

_file_handler: Optional[logging.FileHandler] = None


def _level(verbose: bool, quiet: bool = False) -> int:
    if verbose:
        return logging.DEBUG
    return logging.WARNING if quiet else logging.INFO


def setup_file_logging(log_file: Optional[str] = None, verbose: bool = False) -> Path:
    """Mirror every storprobe record into a log file.

    Only the first call installs a handler; later calls return the file
    already in use. An unwritable log directory falls back to
    /tmp/storprobe.log.

    Returns:
        Path of the log file being written
    """
    global _file_handler

    if _file_handler is not None:
        return Path(_file_handler.baseFilename)

    target = Path(log_file) if log_file else LOG_FILE
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except PermissionError:
        target = FALLBACK_LOG_FILE

    handler = logging.FileHandler(target)
    handler.setLevel(_level(verbose))
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    package_logger = logging.getLogger("storprobe")
    package_logger.addHandler(handler)
    package_logger.setLevel(_level(verbose))
    _file_handler = handler

    package_logger.debug(f"Writing detection log to {target}")
    return target


def set_console_level(verbose: bool = False, quiet: bool = False):
    """Apply -v/-q to the console handlers of every storprobe logger so far."""
    level = _level(verbose, quiet)
    for name, logger in logging.Logger.manager.loggerDict.items():
        if not name.startswith("storprobe") or not isinstance(logger, logging.Logger):
            continue
        for handler in logger.handlers:
            if isinstance(handler, RichHandler):
                handler.setLevel(level)
        logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """Module logger with a single rich console handler attached."""
    logger = logging.getLogger(name)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=console, show_path=False, markup=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

    return logger
