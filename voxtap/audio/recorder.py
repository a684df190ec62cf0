"""Audio capture supervisor for voxtap.

AudioRecorder owns at most one FFmpeg capture process at a time and walks
it through IDLE -> STARTING -> RECORDING -> STOPPING -> IDLE. Every
transition happens on the asyncio event loop, so state checks at each
entry point are enough to keep competing stop triggers (explicit stop,
max duration, silence) from running twice.
"""

import asyncio
import re
import signal
from collections import deque
from pathlib import Path
from typing import Awaitable, Callable, Deque, List, Optional

from PySide6.QtCore import QObject, Signal

from voxtap.audio.binary_locator import BinaryLocator
from voxtap.audio.capture_command import (
    build_capture_argv,
    resolve_device,
    stderr_hint,
    stderr_tail,
)
from voxtap.audio.diagnostics import DiagnosticsAggregator
from voxtap.audio.models import (
    CaptureResult,
    DiagnosticsReport,
    Platform,
    RecorderState,
    StopReason,
)
from voxtap.audio.silence import SilenceMonitor
from voxtap.config.config_loader import config
from voxtap.config.validators import AudioRecordingOptions
from voxtap.utils.audio_debug import AudioDebugManager, analyze_capture
from voxtap.utils.exceptions import (
    AudioRecorderError,
    BinaryNotFoundError,
    ConfigurationError,
    EmptyRecordingError,
    FileOperationError,
    ProcessExitError,
    RecordingInProgressError,
    SpawnError,
    VoxtapError,
)
from voxtap.utils.file_manager import create_temp_capture_path, remove_temp_file
from voxtap.utils.logger import setup_logger

logger = setup_logger(__name__)

ProcessFactory = Callable[[List[str]], Awaitable[asyncio.subprocess.Process]]

# Exit codes FFmpeg reports after a graceful stop we asked for
GRACEFUL_EXIT_CODES = frozenset({0, 255, -signal.SIGTERM})

# Captures under this size are probably only a container header
SMALL_CAPTURE_BYTES = 1000
MIN_CAPTURE_SECONDS = 0.5

STDERR_TAIL_LINES = 50
_LINE_SPLIT_RE = re.compile(r"[\r\n]")


async def spawn_capture_process(argv: List[str]) -> asyncio.subprocess.Process:
    """Start the capture binary with stdin and stderr piped."""
    return await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
    )


def _consume_exception(future: "asyncio.Future") -> None:
    # Marks the exception as retrieved when nobody awaits the session
    if not future.cancelled():
        future.exception()


class _CaptureSession:
    """Everything owned by one capture attempt."""

    def __init__(
        self, options: AudioRecordingOptions, future: "asyncio.Future[CaptureResult]"
    ) -> None:
        self.options = options
        self.future = future
        self.process: Optional[asyncio.subprocess.Process] = None
        self.temp_path: Optional[Path] = None
        self.device_id = ""
        self.argv: List[str] = []
        self.recording_since: Optional[float] = None
        self.stop_reason: Optional[StopReason] = None
        self.stop_requested = False
        self.force_killed = False
        self.quit_via_stdin = False
        self.max_duration_handle: Optional[asyncio.TimerHandle] = None
        self.kill_handle: Optional[asyncio.TimerHandle] = None
        self.silence_monitor: Optional[SilenceMonitor] = None
        self.stderr_task: Optional[asyncio.Task] = None
        self.monitor_task: Optional[asyncio.Task] = None
        self.stderr_lines: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)


class AudioRecorder(QObject):
    """Supervises FFmpeg capture processes and reports their outcome."""

    # Emitted once the capture process survived its startup window
    recording_started = Signal()
    # Emitted with the CaptureResult of a successful capture
    recording_stopped = Signal(object)
    # Emitted with the exception of a failed capture attempt
    error_occurred = Signal(object)
    state_changed = Signal(str)

    def __init__(
        self,
        options: Optional[AudioRecordingOptions] = None,
        diagnostics: Optional[DiagnosticsAggregator] = None,
        process_factory: Optional[ProcessFactory] = None,
    ) -> None:
        """Initialize the audio recorder.

        Args:
            options: Default capture options, read from config when omitted.
            diagnostics: Pre-flight checker; a fresh one honouring the
                session's ffmpeg_path is built per capture when omitted.
            process_factory: Coroutine that spawns the capture process.
        """
        super().__init__()
        if options is None:
            try:
                options = config.get_recording_options()
            except ConfigurationError as e:
                logger.error(f"🛑 {e}")
                logger.warning("🟡 Using default recording options")
                options = AudioRecordingOptions()
        self.options = options
        self.diagnostics = diagnostics
        self.process_factory: ProcessFactory = process_factory or spawn_capture_process

        self._state = RecorderState.IDLE
        self._session: Optional[_CaptureSession] = None

        logger.info(
            f"AudioRecorder initialized: {self.options.sample_rate}Hz, "
            f"{self.options.channel_count}ch, {self.options.audio_format}"
        )

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state in (RecorderState.STARTING, RecorderState.RECORDING)

    def get_recording_duration(self) -> float:
        """Seconds since the current capture entered RECORDING."""
        session = self._session
        if session is None or session.recording_since is None:
            return 0.0
        return asyncio.get_running_loop().time() - session.recording_since

    def _set_state(self, state: RecorderState) -> None:
        if state is self._state:
            return
        logger.debug(f"🐛 Recorder state: {self._state.value} -> {state.value}")
        self._state = state
        self.state_changed.emit(state.value)

    async def start_recording(
        self, options: Optional[AudioRecordingOptions] = None
    ) -> CaptureResult:
        """Capture audio until a stop condition and return the bytes.

        Args:
            options: Options for this capture, defaults to the recorder's.

        Returns:
            The finished CaptureResult.

        Raises:
            RecordingInProgressError: If a capture is already active.
            BinaryNotFoundError: If FFmpeg is unavailable.
            SpawnError: If the capture process cannot be started.
            ProcessExitError: If the process fails or produces no audio.
        """
        if self._state is not RecorderState.IDLE:
            raise RecordingInProgressError("Recording already in progress")

        loop = asyncio.get_running_loop()
        snapshot = (options or self.options).model_copy(deep=True)
        session = _CaptureSession(snapshot, loop.create_future())
        session.future.add_done_callback(_consume_exception)
        self._session = session
        self._set_state(RecorderState.STARTING)

        try:
            await self._launch(session)
            return await asyncio.shield(session.future)
        except asyncio.CancelledError:
            self._cancel_session(session)
            raise

    async def _launch(self, session: _CaptureSession) -> None:
        """Spawn the capture process and wait out the startup window."""
        snapshot = session.options
        try:
            report = await self._run_diagnostics(snapshot)
        except Exception as e:
            error = AudioRecorderError(f"Diagnostics failed: {e}")
            self._abort_start(session, error)
            raise error from e

        for warning in report.warnings:
            logger.warning(f"🟡 {warning}")

        if not report.binary.available or not report.binary.path:
            error = BinaryNotFoundError(
                report.binary.error or "FFmpeg is not available"
            )
            self._abort_start(session, error)
            raise error

        try:
            session.temp_path = create_temp_capture_path(snapshot.audio_format)
        except FileOperationError as e:
            self._abort_start(session, e)
            raise

        session.device_id = resolve_device(
            snapshot.input_device, report.input_devices, report.platform_commands
        )
        session.argv = build_capture_argv(
            report.binary.path,
            report.platform_commands,
            session.device_id,
            snapshot,
            session.temp_path,
        )
        session.quit_via_stdin = report.platform == Platform.WINDOWS
        logger.debug(f"🐛 Capture command: {' '.join(session.argv)}")

        try:
            session.process = await self.process_factory(session.argv)
        except (OSError, ValueError) as e:
            error = SpawnError(f"Failed to start FFmpeg: {e}")
            self._abort_start(session, error)
            raise error from e

        if snapshot.silence_detection:
            session.silence_monitor = SilenceMonitor(
                snapshot.silence_duration,
                lambda: self._on_silence(session),
                min_recording=snapshot.silence_min_recording,
            )

        session.stderr_task = asyncio.create_task(self._read_stderr(session))
        session.monitor_task = asyncio.create_task(self._monitor_process(session))

        # The process must survive a short window to count as started
        await asyncio.wait({session.future}, timeout=snapshot.startup_grace)

        if not session.future.done() and self._state is RecorderState.STARTING:
            self._enter_recording(session)

    def _cancel_session(self, session: _CaptureSession) -> None:
        """Unwind a capture whose start_recording() caller was cancelled."""
        if self._session is not session:
            return
        session.stop_requested = True

        if session.process is None:
            logger.info("⏹️ Capture start cancelled")
            remove_temp_file(session.temp_path)
            self._session = None
            self._set_state(RecorderState.IDLE)
            session.future.cancel()
        else:
            self._begin_stop(StopReason.REQUESTED)

    async def stop_recording(self) -> Optional[CaptureResult]:
        """Stop the active capture and wait for it to finish.

        Calling this while idle does nothing. A stop requested while the
        capture is still starting is applied once it is recording.

        Returns:
            The CaptureResult, or None when idle or the capture failed
            (failures are reported through error_occurred).
        """
        session = self._session
        if session is None or self._state in (RecorderState.IDLE, RecorderState.FAILED):
            return None

        if self._state is RecorderState.STARTING:
            logger.debug("🐛 Stop requested during startup, deferring")
            session.stop_requested = True
        elif self._state is RecorderState.RECORDING:
            self._begin_stop(StopReason.REQUESTED)

        try:
            return await asyncio.shield(session.future)
        except VoxtapError:
            return None
        except asyncio.CancelledError:
            # The start was cancelled; only our own cancellation propagates
            if session.future.cancelled():
                return None
            raise

    def cleanup(self) -> None:
        """Kill any running capture and delete its temp file.

        Synchronous so it can run from signal handlers and atexit.
        """
        session = self._session
        if session is None:
            return

        logger.info("🧹 Cleaning up active capture")
        self._cancel_timers(session)
        self._kill(session)
        remove_temp_file(session.temp_path)
        if not session.future.done():
            session.future.cancel()
        self._session = None
        self._set_state(RecorderState.IDLE)

    async def _run_diagnostics(self, options: AudioRecordingOptions) -> DiagnosticsReport:
        aggregator = self.diagnostics or DiagnosticsAggregator(
            BinaryLocator(options.ffmpeg_path)
        )
        return await aggregator.run_diagnostics()

    def _enter_recording(self, session: _CaptureSession) -> None:
        loop = asyncio.get_running_loop()
        session.recording_since = loop.time()
        self._set_state(RecorderState.RECORDING)
        logger.info(f"🎙️ Recording started from {session.device_id}")
        self.recording_started.emit()

        session.max_duration_handle = loop.call_later(
            session.options.max_duration, self._on_max_duration, session
        )
        if session.silence_monitor is not None:
            session.silence_monitor.start()

        if session.stop_requested:
            self._begin_stop(StopReason.REQUESTED)

    def _on_max_duration(self, session: _CaptureSession) -> None:
        if self._session is not session or self._state is not RecorderState.RECORDING:
            return
        logger.info(
            f"⏱️ Maximum duration of {session.options.max_duration:g}s reached"
        )
        self._begin_stop(StopReason.MAX_DURATION)

    def _on_silence(self, session: _CaptureSession) -> None:
        if self._session is not session or self._state is not RecorderState.RECORDING:
            return
        self._begin_stop(StopReason.SILENCE)

    def _begin_stop(self, reason: StopReason) -> None:
        session = self._session
        if session is None or self._state not in (
            RecorderState.STARTING,
            RecorderState.RECORDING,
        ):
            return

        self._set_state(RecorderState.STOPPING)
        session.stop_reason = reason
        session.stop_requested = True
        self._cancel_timers(session)
        logger.info(f"⏹️ Stopping capture ({reason.value})")

        self._request_graceful_exit(session)
        session.kill_handle = asyncio.get_running_loop().call_later(
            session.options.stop_timeout, self._force_kill, session
        )

    def _request_graceful_exit(self, session: _CaptureSession) -> None:
        process = session.process
        if process is None or process.returncode is not None:
            return

        if session.quit_via_stdin and process.stdin is not None:
            # FFmpeg finalizes the file and exits 0 on "q"
            try:
                process.stdin.write(b"q")
                return
            except (BrokenPipeError, ConnectionResetError, OSError) as e:
                logger.debug(f"🐛 Could not send quit command: {e}")

        try:
            process.terminate()
        except ProcessLookupError:
            pass

    def _force_kill(self, session: _CaptureSession) -> None:
        session.kill_handle = None
        if session.process is None or session.process.returncode is not None:
            return
        logger.warning(
            f"🟡 FFmpeg did not exit within {session.options.stop_timeout:g}s, killing it"
        )
        session.force_killed = True
        self._kill(session)

    def _kill(self, session: _CaptureSession) -> None:
        process = session.process
        if process is None or process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            pass

    def _cancel_timers(self, session: _CaptureSession) -> None:
        if session.max_duration_handle is not None:
            session.max_duration_handle.cancel()
            session.max_duration_handle = None
        if session.silence_monitor is not None:
            session.silence_monitor.cancel()

    async def _read_stderr(self, session: _CaptureSession) -> None:
        stream = session.process.stderr
        if stream is None:
            return

        pending = ""
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                break
            pending += chunk.decode("utf-8", errors="replace")
            # Progress lines end in \r, everything else in \n
            *lines, pending = _LINE_SPLIT_RE.split(pending)
            for line in lines:
                self._handle_stderr_line(session, line)

        if pending:
            self._handle_stderr_line(session, pending)

    def _handle_stderr_line(self, session: _CaptureSession, line: str) -> None:
        line = line.strip()
        if not line:
            return
        session.stderr_lines.append(line)
        if session.silence_monitor is not None:
            session.silence_monitor.feed_line(line)
        if not line.startswith("size="):
            logger.debug(f"🐛 ffmpeg: {line}")

    async def _monitor_process(self, session: _CaptureSession) -> None:
        try:
            returncode = await session.process.wait()
            if session.stderr_task is not None:
                await session.stderr_task
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._finish_failure(
                session, AudioRecorderError(f"Capture process error: {e}")
            )
            return

        try:
            self._finish(session, returncode)
        except Exception as e:
            self._finish_failure(
                session, AudioRecorderError(f"Capture post-processing failed: {e}")
            )

    def _finish(self, session: _CaptureSession, returncode: Optional[int]) -> None:
        if session.future.done():
            return

        if session.kill_handle is not None:
            session.kill_handle.cancel()
            session.kill_handle = None
        self._cancel_timers(session)

        loop = asyncio.get_running_loop()
        duration = (
            loop.time() - session.recording_since
            if session.recording_since is not None
            else 0.0
        )
        size = self._output_size(session.temp_path)
        expected_exit = returncode == 0 or (
            session.stop_requested
            and not session.force_killed
            and returncode in GRACEFUL_EXIT_CODES
        )
        stderr = stderr_tail(list(session.stderr_lines))

        if not expected_exit:
            hint = stderr_hint(stderr)
            reason = "killed after stop timeout" if session.force_killed else f"exit code {returncode}"
            message = f"FFmpeg capture failed ({reason})"
            if hint:
                message = f"{message}: {hint}"
            self._finish_failure(
                session, ProcessExitError(message, returncode, stderr, hint)
            )
            return

        if size == 0:
            message = (
                "Recording too short"
                if duration < MIN_CAPTURE_SECONDS
                else "Capture produced an empty file"
            )
            self._finish_failure(
                session,
                EmptyRecordingError(message, returncode, stderr, stderr_hint(stderr)),
            )
            return

        try:
            data = session.temp_path.read_bytes()
        except OSError as e:
            self._finish_failure(
                session, FileOperationError(f"Could not read capture file: {e}")
            )
            return
        finally:
            remove_temp_file(session.temp_path)

        if len(data) < SMALL_CAPTURE_BYTES:
            logger.warning(f"🟡 Capture is very small ({len(data)} bytes)")

        options = session.options
        stats = analyze_capture(data) if options.audio_format == "wav" else None
        if options.save_debug_captures:
            try:
                AudioDebugManager(options.debug_directory).save_capture(
                    data, options.audio_format
                )
            except OSError as e:
                logger.warning(f"🟡 Could not save debug capture: {e}")

        stop_reason = session.stop_reason
        if stop_reason is None:
            stop_reason = (
                StopReason.MAX_DURATION
                if duration >= options.max_duration - MIN_CAPTURE_SECONDS
                else StopReason.PROCESS_EXIT
            )

        result = CaptureResult(
            data=data,
            mime_type=options.mime_type,
            file_name=f"recording.{options.audio_format}",
            duration=duration,
            device_id=session.device_id,
            exit_code=returncode,
            stop_reason=stop_reason,
            stats=stats,
        )

        if self._state is RecorderState.STARTING:
            # Finished inside the startup window without failing
            self.recording_started.emit()

        self._session = None
        self._set_state(RecorderState.IDLE)
        logger.info(
            f"✅ Capture finished: {len(data)} bytes, {duration:.1f}s ({stop_reason.value})"
        )
        self.recording_stopped.emit(result)
        session.future.set_result(result)

    def _output_size(self, path: Optional[Path]) -> int:
        if path is None:
            return 0
        try:
            return path.stat().st_size
        except OSError:
            return 0

    def _finish_failure(self, session: _CaptureSession, error: VoxtapError) -> None:
        if session.future.done():
            return

        if session.kill_handle is not None:
            session.kill_handle.cancel()
            session.kill_handle = None
        self._cancel_timers(session)
        self._kill(session)
        remove_temp_file(session.temp_path)

        self._set_state(RecorderState.FAILED)
        logger.error(f"🛑 {error}")
        if isinstance(error, ProcessExitError) and error.stderr:
            logger.error(f"FFmpeg output:\n{error.stderr}")

        self._session = None
        self.error_occurred.emit(error)
        self._set_state(RecorderState.IDLE)
        session.future.set_exception(error)

    def _abort_start(self, session: _CaptureSession, error: VoxtapError) -> None:
        """Fail an attempt before a process exists; the caller raises."""
        remove_temp_file(session.temp_path)
        self._set_state(RecorderState.FAILED)
        logger.error(f"🛑 {error}")
        self._session = None
        self.error_occurred.emit(error)
        self._set_state(RecorderState.IDLE)
        session.future.set_exception(error)
