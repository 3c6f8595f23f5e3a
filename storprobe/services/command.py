"""External command execution."""
import subprocess
from dataclasses import dataclass
from typing import Callable, List, Optional

from storprobe.core.errors import CommandNotFoundError
from storprobe.core.logger import get_logger

logger = get_logger(__name__)


@dataclass
class CommandResult:
    """Captured result of one external command."""
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def output(self) -> str:
        """stdout with Windows line endings converted and whitespace trimmed."""
        return self.stdout.replace("\r\n", "\n").strip()


# run_cmd(argv) -> CommandResult; tests substitute their own
CommandRunner = Callable[[List[str]], CommandResult]


def run_command(argv: List[str], timeout: Optional[int] = 60) -> CommandResult:
    """Run a command and capture its output without raising on exit status.

    Raises:
        CommandNotFoundError: The executable does not exist.
    """
    logger.debug(f"Executing: {' '.join(argv)}")
    try:
        result = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as exc:
        raise CommandNotFoundError(f"Command not found: {argv[0]}") from exc
    except PermissionError as exc:
        raise CommandNotFoundError(f"Cannot execute {argv[0]}: {exc}") from exc
    except subprocess.TimeoutExpired as exc:
        logger.warning(f"Command timed out after {timeout}s: {' '.join(argv)}")
        stdout = exc.stdout or ""
        if isinstance(stdout, bytes):
            stdout = stdout.decode(errors="replace")
        return CommandResult(returncode=-1, stdout=stdout, timed_out=True)

    return CommandResult(returncode=result.returncode, stdout=result.stdout or "", stderr=result.stderr or "")


def make_runner(timeout: Optional[int] = 60) -> CommandRunner:
    """Bind a timeout into a command runner."""
    def _run(argv: List[str]) -> CommandResult:
        return run_command(argv, timeout=timeout)
    return _run
