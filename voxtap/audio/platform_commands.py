"""Operating system to capture backend mapping."""

import platform as _platform
from typing import Optional

from voxtap.audio.models import Platform, PlatformCommands

_SYSTEM_NAMES = {
    "darwin": Platform.MACOS,
    "windows": Platform.WINDOWS,
    "linux": Platform.LINUX,
}

_COMMANDS = {
    Platform.MACOS: PlatformCommands(
        platform=Platform.MACOS,
        audio_input=["-f", "avfoundation"],
        default_device=":0",
    ),
    Platform.WINDOWS: PlatformCommands(
        platform=Platform.WINDOWS,
        audio_input=["-f", "dshow"],
        default_device='audio="Microphone"',
    ),
    Platform.LINUX: PlatformCommands(
        platform=Platform.LINUX,
        audio_input=["-f", "pulse"],
        default_device="default",
    ),
}


def is_recognized_platform(system: Optional[str] = None) -> bool:
    """Whether the OS has a dedicated backend rather than the linux fallback."""
    name = (system if system is not None else _platform.system()).lower()
    return name in _SYSTEM_NAMES


def detect_platform(system: Optional[str] = None) -> Platform:
    """Map a ``platform.system()`` name to a Platform.

    Unknown systems are treated as linux; callers can check
    is_recognized_platform() to report that.

    Args:
        system: System name override, defaults to the running OS.

    Returns:
        The matching Platform.
    """
    name = (system if system is not None else _platform.system()).lower()
    return _SYSTEM_NAMES.get(name, Platform.LINUX)


def get_platform_commands(system: Optional[str] = None) -> PlatformCommands:
    """Return the input backend flags and default device for an OS."""
    return _COMMANDS[detect_platform(system)]
