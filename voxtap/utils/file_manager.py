"""File management utilities for voxtap."""

import os
import tempfile
import time
from pathlib import Path
from typing import List, Optional

from voxtap.utils.exceptions import FileOperationError
from voxtap.utils.logger import setup_logger

logger = setup_logger(__name__)

TEMP_PREFIX = "voxtap-recording-"


def create_temp_capture_path(audio_format: str) -> Path:
    """Allocate a unique temporary file for one capture.

    The file is created empty so the name cannot be claimed by another
    process before the capture binary opens it.

    Args:
        audio_format: Extension of the output container (e.g. "wav").

    Returns:
        Path to the new temporary file.

    Raises:
        FileOperationError: If the temp directory is not writable.
    """
    try:
        fd, name = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=f".{audio_format}")
    except OSError as e:
        raise FileOperationError(f"Could not create temporary capture file: {e}") from e
    os.close(fd)
    return Path(name)


def remove_temp_file(path: Optional[Path]) -> bool:
    """Delete a temporary capture file, ignoring failures.

    Args:
        path: File to delete, or None.

    Returns:
        True if a file was removed.
    """
    if path is None:
        return False
    try:
        path.unlink()
        logger.debug(f"🐛 Removed temp file {path}")
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"🟡 Could not remove temp file {path}: {e}")
        return False


class FileManager:
    """Manages file operations including cleanup and retention policies."""

    def __init__(self, base_directory: str = "debug_audio"):
        """Initialize file manager.

        Args:
            base_directory: Base directory for file operations
        """
        self.base_directory = Path(base_directory)
        self.base_directory.mkdir(parents=True, exist_ok=True)

    def cleanup_old_files(
        self,
        retention_days: int = 7,
        max_files: Optional[int] = None,
        file_pattern: str = "*.wav",
    ) -> int:
        """Clean up old files based on retention policy.

        Args:
            retention_days: Number of days to retain files
            max_files: Maximum number of files to keep (None for unlimited)
            file_pattern: File pattern to match (e.g., "*.wav", "*.webm")

        Returns:
            Number of files removed
        """
        if not self.base_directory.exists():
            return 0

        files = self._sorted_files(file_pattern)
        if not files:
            return 0

        cutoff_time = time.time() - (retention_days * 24 * 3600)
        files_removed = 0
        survivors: List[Path] = []

        for file_path in files:
            if file_path.stat().st_mtime < cutoff_time:
                if self._safe_delete_file(file_path):
                    files_removed += 1
                    continue
            survivors.append(file_path)

        # Keep the newest max_files
        if max_files is not None and len(survivors) > max_files:
            for file_path in survivors[: len(survivors) - max_files]:
                if self._safe_delete_file(file_path):
                    files_removed += 1

        if files_removed > 0:
            logger.info(
                f"🧹 Cleaned up {files_removed} files from {self.base_directory}"
            )

        return files_removed

    def _sorted_files(self, file_pattern: str) -> List[Path]:
        """Matching files, oldest first."""
        files = [f for f in self.base_directory.glob(file_pattern) if f.is_file()]
        files.sort(key=lambda f: f.stat().st_mtime)
        return files

    def _safe_delete_file(self, file_path: Path) -> bool:
        try:
            file_path.unlink()
            return True
        except OSError as e:
            logger.warning(f"🟡 Failed to delete {file_path}: {e}")
            return False

