"""Capture analysis and debug capture storage for voxtap."""

import io
from datetime import datetime
from pathlib import Path
from typing import Optional

import numpy as np
import soundfile as sf

from voxtap.audio.models import CaptureStats
from voxtap.utils.file_manager import FileManager
from voxtap.utils.logger import setup_logger

logger = setup_logger(__name__)

# Peak level under which a capture is reported as near-silent
SILENT_PEAK_DB = -60.0


def _to_db(value: float) -> float:
    if value <= 0:
        return float("-inf")
    return float(20 * np.log10(value))


def analyze_capture(data: bytes) -> Optional[CaptureStats]:
    """Compute duration and levels for captured audio.

    Only containers libsndfile can decode are analysed; anything else
    yields None.

    Args:
        data: Encoded audio bytes.

    Returns:
        CaptureStats or None when the bytes cannot be decoded.
    """
    if not data:
        return None

    try:
        samples, sample_rate = sf.read(io.BytesIO(data), dtype="float32")
    except (RuntimeError, TypeError) as e:
        logger.debug(f"🐛 Capture not decodable for analysis: {e}")
        return None

    if samples.ndim > 1:
        samples = samples.mean(axis=1)

    duration = len(samples) / float(sample_rate) if sample_rate else 0.0
    if samples.size == 0:
        return CaptureStats(duration=duration, peak_db=float("-inf"), rms_db=float("-inf"))

    peak = float(np.abs(samples).max())
    rms = float(np.sqrt(np.mean(np.square(samples))))
    stats = CaptureStats(duration=duration, peak_db=_to_db(peak), rms_db=_to_db(rms))

    if stats.peak_db < SILENT_PEAK_DB:
        logger.warning(
            f"🟡 Capture is near-silent (peak {stats.peak_db:.1f} dBFS), "
            "check the selected input device"
        )
    else:
        logger.debug(
            f"🐛 Capture stats: {duration:.2f}s, peak {stats.peak_db:.1f} dBFS, "
            f"rms {stats.rms_db:.1f} dBFS"
        )
    return stats


class AudioDebugManager:
    """Keeps copies of captures on disk for troubleshooting."""

    def __init__(self, debug_directory: str = "debug_audio", max_files: int = 50):
        """Initialize audio debug manager.

        Args:
            debug_directory: Directory to save debug captures
            max_files: Number of captures to keep per format
        """
        self.debug_dir = Path(debug_directory)
        self.max_files = max_files
        self.file_manager = FileManager(debug_directory)

    def save_capture(self, data: bytes, audio_format: str) -> Optional[Path]:
        """Write a capture to the debug directory and prune old ones.

        Args:
            data: Encoded audio bytes.
            audio_format: Container extension.

        Returns:
            Path of the saved file, or None on failure.
        """
        if not data:
            logger.warning("🟡 Cannot save empty capture")
            return None

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")[:-3]
        filepath = self.debug_dir / f"capture_{timestamp}.{audio_format}"

        try:
            self.debug_dir.mkdir(parents=True, exist_ok=True)
            filepath.write_bytes(data)
        except OSError as e:
            logger.error(f"🛑 Failed to save debug capture: {e}")
            return None

        logger.info(f"💾 Debug capture saved: {filepath} ({len(data)} bytes)")
        self.file_manager.cleanup_old_files(
            max_files=self.max_files, file_pattern=f"*.{audio_format}"
        )
        return filepath
