"""Building the capture command line and interpreting its failures."""

from pathlib import Path
from typing import List, Optional, Sequence

from voxtap.audio.models import AudioDevice, Platform, PlatformCommands
from voxtap.audio.silence import silencedetect_filter
from voxtap.config.validators import AudioRecordingOptions
from voxtap.utils.logger import setup_logger

logger = setup_logger(__name__)

AUTO_DEVICE = "auto"

_STDERR_HINTS = (
    ("No such file or directory", "The input device was not found. Run `voxtap devices` to list inputs."),
    ("Permission denied", "Microphone access was denied. Check the system privacy settings."),
    ("Device or resource busy", "The microphone is in use by another application."),
    ("Invalid data found", "The input device returned data FFmpeg cannot decode. Try another device or sample rate."),
    ("Input/output error", "The input device could not be opened."),
    ("not found", "The input device was not found. Run `voxtap devices` to list inputs."),
)


def resolve_device(
    requested: Optional[str],
    devices: Sequence[AudioDevice],
    commands: PlatformCommands,
) -> str:
    """Pick the device id to capture from.

    ``auto`` (or nothing) selects the default enumerated device. Explicit
    values match a device id or name; anything unmatched logs a warning and
    falls back to the default.

    Args:
        requested: Configured device selector.
        devices: Devices from the latest enumeration.
        commands: Platform commands providing the last-resort default.

    Returns:
        The device id to pass to ``-i``.
    """
    default = next((d.id for d in devices if d.is_default), None)
    if default is None:
        default = devices[0].id if devices else commands.default_device

    if not requested or requested == AUTO_DEVICE:
        return default

    for device in devices:
        if requested == device.id:
            return device.id
    lowered = requested.lower()
    for device in devices:
        if lowered == device.name.lower():
            return device.id

    logger.warning(
        f"🟡 Input device '{requested}' not found, falling back to {default}"
    )
    return default


def device_argument(device_id: str, platform: Platform) -> str:
    """The ``-i`` value as passed to exec, without shell quoting.

    DirectShow ids are stored as ``audio="Name"``; the quotes only matter
    to a shell, so they are removed here.
    """
    if platform == Platform.WINDOWS and device_id.startswith('audio="') and device_id.endswith('"'):
        return f"audio={device_id[7:-1]}"
    return device_id


def build_capture_argv(
    binary: str,
    commands: PlatformCommands,
    device_id: str,
    options: AudioRecordingOptions,
    output_path: Path,
    duration: Optional[float] = None,
) -> List[str]:
    """Assemble the full capture command.

    Args:
        binary: Path to the capture binary.
        commands: Input backend flags for the platform.
        device_id: Resolved device id.
        options: Capture options snapshot.
        output_path: File the binary writes to.
        duration: Hard length limit, defaults to options.max_duration.

    Returns:
        Argument vector, binary first.
    """
    argv = [
        binary,
        "-hide_banner",
        "-loglevel",
        "info",
        *commands.input_args(device_argument(device_id, commands.platform)),
        "-ar",
        str(options.sample_rate),
        "-ac",
        str(options.channel_count),
        "-acodec",
        options.codec,
    ]

    if options.silence_detection:
        argv += ["-af", silencedetect_filter(options.silence_threshold_db)]

    limit = duration if duration is not None else options.max_duration
    if limit:
        argv += ["-t", f"{limit:g}"]

    argv += ["-y", str(output_path)]
    return argv


def stderr_hint(stderr: str) -> Optional[str]:
    """A remediation hint for well-known capture errors, if any."""
    for needle, hint in _STDERR_HINTS:
        if needle in stderr:
            return hint
    return None


def stderr_tail(lines: Sequence[str], limit: int = 10) -> str:
    """Last non-progress lines of diagnostic output."""
    meaningful = [line for line in lines if line and not line.startswith("size=")]
    return "\n".join(meaningful[-limit:])
