"""Locating and probing the FFmpeg capture binary."""

import asyncio
import os
import re
import shutil
from pathlib import Path
from typing import Awaitable, Callable, List, NamedTuple, Optional

from voxtap.audio.models import BinaryAvailability
from voxtap.utils.logger import setup_logger

logger = setup_logger(__name__)

DEFAULT_BINARY_NAME = "ffmpeg"
PROBE_TIMEOUT = 10.0

NOT_ON_PATH_ERROR = (
    "FFmpeg not found in PATH. Please install FFmpeg and add it to your "
    "system PATH, or set audio.ffmpeg_path in the configuration."
)

_VERSION_RE = re.compile(r"ffmpeg version (\S+)")


class CommandOutput(NamedTuple):
    """Exit code and decoded output of a short-lived command."""

    returncode: Optional[int]
    stdout: str
    stderr: str

    @property
    def combined(self) -> str:
        return f"{self.stdout}\n{self.stderr}" if self.stdout else self.stderr


CommandRunner = Callable[[List[str], float], Awaitable[CommandOutput]]


async def run_command(argv: List[str], timeout: float = PROBE_TIMEOUT) -> CommandOutput:
    """Run a command to completion and capture both output streams.

    Args:
        argv: Program and arguments, no shell involved.
        timeout: Seconds before the process is killed.

    Returns:
        CommandOutput with decoded text.

    Raises:
        OSError: If the program cannot be spawned.
        asyncio.TimeoutError: If the command outlives the timeout.
    """
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise

    return CommandOutput(
        returncode=process.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def parse_version(output: str) -> str:
    """Extract the version token from ``-version`` output."""
    match = _VERSION_RE.search(output)
    return match.group(1) if match else "unknown"


def locate_binary(explicit_path: Optional[str] = None) -> Optional[str]:
    """Resolve the capture binary without running it.

    Args:
        explicit_path: Configured path or program name. Paths must point at
            an executable file; bare names are searched on PATH.

    Returns:
        Absolute path of the binary, or None if it cannot be found.
    """
    if explicit_path:
        candidate = Path(explicit_path).expanduser()
        if candidate.is_absolute() or os.sep in explicit_path or (
            os.altsep and os.altsep in explicit_path
        ):
            if candidate.is_file() and os.access(candidate, os.X_OK):
                return str(candidate)
            return None
        return shutil.which(explicit_path)

    return shutil.which(DEFAULT_BINARY_NAME)


class BinaryLocator:
    """Finds the capture binary and checks that it runs."""

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        runner: Optional[CommandRunner] = None,
        timeout: float = PROBE_TIMEOUT,
    ) -> None:
        """Initialize the locator.

        Args:
            ffmpeg_path: Explicit binary path overriding the PATH search.
            runner: Coroutine used to execute commands.
            timeout: Seconds allowed for the version check.
        """
        self.ffmpeg_path = ffmpeg_path
        self.runner: CommandRunner = runner or run_command
        self.timeout = timeout

    def locate(self) -> Optional[str]:
        return locate_binary(self.ffmpeg_path)

    def _not_found_error(self) -> str:
        if self.ffmpeg_path:
            return (
                f"FFmpeg binary not found or not executable: {self.ffmpeg_path}. "
                "Check audio.ffmpeg_path in the configuration."
            )
        return NOT_ON_PATH_ERROR

    async def check_availability(self) -> BinaryAvailability:
        """Locate the binary and confirm it answers ``-version``.

        Never raises; every failure is reported through the result.

        Returns:
            BinaryAvailability describing the outcome.
        """
        path = self.locate()
        if path is None:
            error = self._not_found_error()
            logger.warning(f"🟡 {error}")
            return BinaryAvailability(available=False, error=error)

        try:
            output = await self.runner([path, "-version"], self.timeout)
        except asyncio.TimeoutError:
            error = f"FFmpeg did not respond within {self.timeout:g}s"
            logger.warning(f"🟡 {error}")
            return BinaryAvailability(available=False, path=path, error=error)
        except OSError as e:
            error = f"Error running FFmpeg: {e}"
            logger.warning(f"🟡 {error}")
            return BinaryAvailability(available=False, path=path, error=error)

        if output.returncode != 0:
            error = (
                "FFmpeg found but not working properly "
                f"(exit code: {output.returncode})"
            )
            logger.warning(f"🟡 {error}")
            return BinaryAvailability(available=False, path=path, error=error)

        version = parse_version(output.combined)
        logger.debug(f"🐛 FFmpeg {version} at {path}")
        return BinaryAvailability(available=True, version=version, path=path)
