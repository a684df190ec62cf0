"""Diagnostics for audio capture.

This module gathers a pre-flight report on the capture environment, logs
it, suggests fixes for capture failures and runs short trial captures.
"""

import asyncio
import platform
import time
from typing import List, Optional

from voxtap.audio.binary_locator import BinaryLocator, CommandRunner, run_command
from voxtap.audio.capture_command import (
    build_capture_argv,
    resolve_device,
    stderr_hint,
)
from voxtap.audio.device_manager import (
    DeviceEnumerator,
    fallback_devices,
    is_fallback_only,
)
from voxtap.audio.models import (
    AudioDevice,
    BinaryAvailability,
    DiagnosticsReport,
    Platform,
    PlatformCommands,
    TestCaptureResult,
)
from voxtap.audio.platform_commands import (
    detect_platform,
    get_platform_commands,
    is_recognized_platform,
)
from voxtap.config.validators import AudioRecordingOptions
from voxtap.utils.file_manager import create_temp_capture_path, remove_temp_file
from voxtap.utils.logger import setup_logger

logger = setup_logger(__name__)

_BUILTIN_MIC_KEYWORDS = ("built-in", "microphone", "macbook")


class DiagnosticsAggregator:
    """Builds DiagnosticsReport objects from the locator and enumerator."""

    def __init__(
        self,
        locator: Optional[BinaryLocator] = None,
        enumerator: Optional[DeviceEnumerator] = None,
        system: Optional[str] = None,
    ) -> None:
        """Initialize the aggregator.

        Args:
            locator: Binary locator, defaults to a PATH lookup.
            enumerator: Device enumerator sharing the locator.
            system: OS name override, defaults to the running OS.
        """
        self.system = system
        self.platform = detect_platform(system)
        self.commands: PlatformCommands = get_platform_commands(system)
        self.locator = locator or BinaryLocator()
        self.enumerator = enumerator or DeviceEnumerator(self.locator, self.commands)

    async def run_diagnostics(self) -> DiagnosticsReport:
        """Probe the binary and the devices concurrently.

        Never raises; subsystem failures become report errors or warnings.

        Returns:
            A complete DiagnosticsReport.
        """
        errors: List[str] = []
        warnings: List[str] = []

        binary, devices = await asyncio.gather(
            self.locator.check_availability(),
            self.enumerator.detect_input_devices(),
            return_exceptions=True,
        )

        if isinstance(binary, BaseException):
            binary = BinaryAvailability(
                available=False, error=f"Binary check failed: {binary}"
            )
        if isinstance(devices, BaseException):
            warnings.append(f"Failed to detect input devices: {devices}")
            devices = fallback_devices(self.commands)

        if not binary.available:
            errors.append(binary.error or "FFmpeg is not available")

        if not devices:
            warnings.append("No audio input devices found")
        elif is_fallback_only(devices):
            warnings.append(
                "No input devices could be enumerated; using the platform default "
                f"device {self.commands.default_device}, which may not exist"
            )

        if not is_recognized_platform(self.system):
            warnings.append(
                f"Unrecognized platform '{self.system or platform.system()}', "
                "using the PulseAudio backend"
            )

        if self.platform == Platform.MACOS and devices and not is_fallback_only(devices):
            if not any(
                keyword in device.name.lower()
                for device in devices
                for keyword in _BUILTIN_MIC_KEYWORDS
            ):
                warnings.append(
                    "Built-in microphone not detected. You may need to grant "
                    "microphone permission to your terminal application."
                )

        recommended = next((d.id for d in devices if d.is_default), None)
        if recommended is None and devices:
            recommended = devices[0].id

        return DiagnosticsReport(
            binary=binary,
            input_devices=list(devices),
            platform=self.platform,
            platform_commands=self.commands,
            recommended_device=recommended,
            errors=errors,
            warnings=warnings,
        )


def log_diagnostics_report(report: DiagnosticsReport) -> None:
    """Log a diagnostics report as a banner block."""
    logger.info("=" * 60)
    logger.info("AUDIO CAPTURE DIAGNOSTICS")
    logger.info("=" * 60)
    logger.info(f"Platform: {report.platform.value} ({platform.system()} {platform.release()})")
    logger.info(f"Input backend: {' '.join(report.platform_commands.audio_input)}")

    if report.binary.available:
        logger.info(f"FFmpeg: {report.binary.version} at {report.binary.path}")
    else:
        logger.error(f"FFmpeg: unavailable ({report.binary.error})")

    logger.info(f"Input devices ({len(report.input_devices)}):")
    for device in report.input_devices:
        marker = " [default]" if device.is_default else ""
        logger.info(f"  {device.id}  {device.name}{marker}")

    if report.recommended_device:
        logger.info(f"Recommended device: {report.recommended_device}")

    for error in report.errors:
        logger.error(f"Error: {error}")
    for warning in report.warnings:
        logger.warning(f"Warning: {warning}")

    logger.info("=" * 60)


def suggest_capture_fixes(error: Exception) -> List[str]:
    """Suggest fixes based on the error and log them.

    Args:
        error: The exception that occurred.

    Returns:
        Suggested steps, most relevant first.
    """
    error_msg = str(error)
    stderr = getattr(error, "stderr", "") or ""
    combined = f"{error_msg}\n{stderr}"
    lowered = combined.lower()
    system = platform.system()

    suggestions: List[str] = []

    if "ffmpeg not found" in lowered or "not executable" in lowered:
        suggestions.append("Install FFmpeg and make sure it is on PATH")
        if system == "Darwin":
            suggestions.append("  brew install ffmpeg")
        elif system == "Windows":
            suggestions.append("  winget install ffmpeg")
        else:
            suggestions.append("  sudo apt install ffmpeg")
        suggestions.append("Or set audio.ffmpeg_path in config.yml")
    elif "permission" in lowered or "not authorized" in lowered:
        suggestions.append("Grant microphone access to your terminal application")
        if system == "Darwin":
            suggestions.append(
                "  System Settings > Privacy & Security > Microphone"
            )
    elif "busy" in lowered:
        suggestions.append("Close other applications using the microphone")
        if system == "Linux":
            suggestions.append("  pactl list short source-outputs")
    elif "already in progress" in lowered:
        suggestions.append("Stop the current recording before starting a new one")
    else:
        hint = stderr_hint(combined)
        if hint:
            suggestions.append(hint)
        suggestions.append("Run `voxtap diagnostics` to check devices")
        suggestions.append("Set audio.input_device to a device listed by `voxtap devices`")

    logger.info("=" * 60)
    logger.info("SUGGESTED FIXES")
    logger.info("=" * 60)
    for index, suggestion in enumerate(suggestions, 1):
        logger.info(f"  {index}. {suggestion}")
    logger.info("=" * 60)

    return suggestions


async def check_microphone_access(
    aggregator: Optional[DiagnosticsAggregator] = None,
) -> str:
    """Best-effort microphone availability check.

    Returns:
        "granted" when real devices are listed, "denied" when the binary is
        missing or only the synthetic device is available, "unknown" when
        the check itself failed.
    """
    aggregator = aggregator or DiagnosticsAggregator()
    try:
        report = await aggregator.run_diagnostics()
    except Exception as e:
        logger.warning(f"🟡 Microphone check failed: {e}")
        return "unknown"

    if not report.binary.available:
        return "denied"
    if not report.input_devices or is_fallback_only(report.input_devices):
        return "denied"
    return "granted"


async def run_test_capture(
    duration: float = 2.0,
    aggregator: Optional[DiagnosticsAggregator] = None,
    options: Optional[AudioRecordingOptions] = None,
    runner: Optional[CommandRunner] = None,
) -> TestCaptureResult:
    """Record a few seconds to verify the whole capture path.

    Args:
        duration: Seconds to capture.
        aggregator: Diagnostics source.
        options: Capture options, a WAV default when omitted.
        runner: Command runner.

    Returns:
        TestCaptureResult describing what happened.
    """
    aggregator = aggregator or DiagnosticsAggregator()
    options = options or AudioRecordingOptions()
    runner = runner or run_command

    report = await aggregator.run_diagnostics()
    if not report.binary.available or not report.binary.path:
        return TestCaptureResult(
            success=False, error=report.binary.error or "FFmpeg not available"
        )

    devices: List[AudioDevice] = report.input_devices
    device_id = resolve_device(options.input_device, devices, report.platform_commands)
    temp_path = create_temp_capture_path(options.audio_format)
    argv = build_capture_argv(
        report.binary.path,
        report.platform_commands,
        device_id,
        options.model_copy(update={"silence_detection": False}),
        temp_path,
        duration=duration,
    )

    logger.info(f"🎙️ Test capture for {duration:g}s from {device_id}")
    started = time.monotonic()
    try:
        output = await runner(argv, duration + 10.0)
        elapsed = time.monotonic() - started
        size = temp_path.stat().st_size if temp_path.exists() else 0

        if output.returncode == 0 and size > 0:
            logger.info(f"✅ Test capture OK: {size} bytes in {elapsed:.1f}s")
            return TestCaptureResult(
                success=True, file_size=size, duration=elapsed, command=argv
            )

        error = stderr_hint(output.stderr) or (
            f"FFmpeg exited with code {output.returncode}"
            if output.returncode != 0
            else "Capture produced an empty file"
        )
        logger.error(f"🛑 Test capture failed: {error}")
        return TestCaptureResult(
            success=False, file_size=size, duration=elapsed, command=argv, error=error
        )
    except asyncio.TimeoutError:
        return TestCaptureResult(
            success=False,
            duration=time.monotonic() - started,
            command=argv,
            error="Test capture timed out",
        )
    except OSError as e:
        return TestCaptureResult(
            success=False, command=argv, error=f"Error running FFmpeg: {e}"
        )
    finally:
        remove_temp_file(temp_path)
