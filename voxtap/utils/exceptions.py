"""Custom exception definitions for voxtap."""

from typing import Optional


class VoxtapError(Exception):
    """Base exception class for voxtap errors."""

    pass


class ConfigurationError(VoxtapError):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


class FileOperationError(VoxtapError):
    """Raised when file operations (temp files, debug saves, cleanup) fail."""

    pass


class AudioRecorderError(VoxtapError):
    """Base class for capture supervisor failures."""

    pass


class RecordingInProgressError(AudioRecorderError):
    """Raised when a capture is requested while another one is active."""

    pass


class BinaryNotFoundError(AudioRecorderError):
    """Raised when the capture binary is missing or not runnable."""

    pass


class SpawnError(AudioRecorderError):
    """Raised when the capture subprocess cannot be started."""

    pass


class ProcessExitError(AudioRecorderError):
    """Raised when the capture subprocess exits abnormally."""

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        stderr: str = "",
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr
        self.hint = hint


class EmptyRecordingError(ProcessExitError):
    """Raised when the capture finished but produced no usable audio."""

    pass
