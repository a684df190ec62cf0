"""Silence-triggered auto stop driven by FFmpeg's silencedetect filter."""

import asyncio
import re
from typing import Callable, Optional

from voxtap.utils.logger import setup_logger

logger = setup_logger(__name__)

# Minimum silence silencedetect needs before it reports silence_start
DETECTION_WINDOW = 0.5

_SILENCE_START_RE = re.compile(r"silence_start:\s*(-?[\d.]+)")
_SILENCE_END_RE = re.compile(r"silence_end:\s*(-?[\d.]+)")


def silencedetect_filter(threshold_db: int, window: float = DETECTION_WINDOW) -> str:
    """Build the ``-af`` value for silence detection.

    Args:
        threshold_db: Level in dB below full scale; the sign is ignored.
        window: Seconds of quiet before silencedetect reports silence.

    Returns:
        Filter string such as ``silencedetect=noise=-30dB:d=0.5``.
    """
    return f"silencedetect=noise=-{abs(threshold_db)}dB:d={window:g}"


class SilenceMonitor:
    """Fires a callback once the input has been quiet for long enough.

    Feed it stderr lines from the capture process. A ``silence_start``
    arms a timer and a ``silence_end`` (signal above threshold) disarms
    it, so the callback only runs after continuous silence. Silence in the
    first ``min_recording`` seconds never stops a capture.
    """

    def __init__(
        self,
        silence_duration: float,
        on_silence: Callable[[], None],
        min_recording: float = 5.0,
        window: float = DETECTION_WINDOW,
    ) -> None:
        self.silence_duration = silence_duration
        self.on_silence = on_silence
        self.min_recording = min_recording
        self.window = window

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._started_at = 0.0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._silent = False
        self._fired = False

    @property
    def is_silent(self) -> bool:
        return self._silent

    @property
    def armed(self) -> bool:
        return self._timer is not None

    def start(self) -> None:
        """Begin timing; must be called from the running loop."""
        self._loop = asyncio.get_running_loop()
        self._started_at = self._loop.time()
        self._fired = False

    def feed_line(self, line: str) -> None:
        """Inspect one line of diagnostic output."""
        if self._loop is None or self._fired:
            return

        if _SILENCE_START_RE.search(line):
            self._silent = True
            # silencedetect already waited one window before reporting
            self._arm(max(self.silence_duration - self.window, 0.0))
        elif _SILENCE_END_RE.search(line):
            self._silent = False
            self._disarm()

    def cancel(self) -> None:
        """Disarm and ignore any further input."""
        self._disarm()
        self._fired = True

    def _arm(self, delay: float) -> None:
        self._disarm()
        self._timer = self._loop.call_later(delay, self._on_timer)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        if not self._silent or self._fired:
            return

        elapsed = self._loop.time() - self._started_at
        if elapsed < self.min_recording:
            self._arm(self.min_recording - elapsed)
            return

        self._fired = True
        logger.info(
            f"🔇 {self.silence_duration:g}s of silence detected after "
            f"{elapsed:.1f}s, stopping capture"
        )
        self.on_silence()
