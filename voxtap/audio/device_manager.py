"""Input device enumeration through the capture binary.

FFmpeg announces devices on stderr in a different layout per input
backend, so each backend gets a small pure parser that turns that text
into AudioDevice entries. detect_input_devices() glues the parsers to a
list-devices invocation and always returns at least one device.
"""

import asyncio
import re
from typing import List, Optional

from voxtap.audio.binary_locator import (
    PROBE_TIMEOUT,
    BinaryLocator,
    CommandRunner,
    run_command,
)
from voxtap.audio.models import AudioDevice, Platform, PlatformCommands
from voxtap.audio.platform_commands import get_platform_commands
from voxtap.utils.logger import setup_logger

logger = setup_logger(__name__)

FALLBACK_DEVICE_NAME = "Default Audio Device"

_AVFOUNDATION_AUDIO_MARKER = "AVFoundation audio devices"
_AVFOUNDATION_VIDEO_MARKER = "AVFoundation video devices"
_DSHOW_AUDIO_MARKER = "DirectShow audio devices"
_DSHOW_VIDEO_MARKER = "DirectShow video devices"

# [AVFoundation indev @ 0x7f8b] [0] MacBook Pro Microphone
_INDEXED_DEVICE_RE = re.compile(r"\[[^\]]*?\]\s+\[(\d+)\]\s+(.+?)\s*$")
_QUOTED_NAME_RE = re.compile(r'"([^"]+)"')
# "  * alsa_input.pci-0000_00_1f.3.analog-stereo [Built-in Audio Analog Stereo]"
_PULSE_SOURCE_RE = re.compile(r"^\s*(\*)?\s*(\S+)\s+\[(.+?)\](?:\s+\(.*\))?\s*$")

# Dummy -i values for the listing run; pulse lists sources without an input
_LIST_DEVICES_INPUT = {
    Platform.MACOS: "",
    Platform.WINDOWS: "dummy",
}


def _section(text: str, start_marker: str, end_marker: str) -> Optional[List[str]]:
    """Lines between two markers, or None when the start marker is absent."""
    lines = text.splitlines()
    for index, line in enumerate(lines):
        if start_marker in line:
            section = []
            for following in lines[index + 1 :]:
                if end_marker in following:
                    break
                section.append(following)
            return section
    return None


def parse_avfoundation_devices(text: str) -> List[AudioDevice]:
    """Parse ``-f avfoundation -list_devices true`` output.

    Args:
        text: Diagnostic text from the binary.

    Returns:
        Audio devices in the order listed; the first is the default.
    """
    lines = _section(text, _AVFOUNDATION_AUDIO_MARKER, _AVFOUNDATION_VIDEO_MARKER)
    if lines is None:
        lines = text.splitlines()

    devices: List[AudioDevice] = []
    for line in lines:
        match = _INDEXED_DEVICE_RE.search(line)
        if not match:
            continue
        index, name = match.group(1), match.group(2).strip()
        if not name:
            continue
        devices.append(
            AudioDevice(id=f":{index}", name=name, is_default=not devices)
        )
    return devices


def parse_dshow_devices(text: str) -> List[AudioDevice]:
    """Parse ``-f dshow -list_devices true`` output.

    Older builds group devices under a "DirectShow audio devices" header;
    newer ones tag each line with "(audio)". Alternative-name lines repeat
    a device under its moniker and are skipped.

    Args:
        text: Diagnostic text from the binary.

    Returns:
        Audio devices in the order listed; the first is the default.
    """
    section = _section(text, _DSHOW_AUDIO_MARKER, _DSHOW_VIDEO_MARKER)
    if section is not None:
        candidates = section
    else:
        candidates = [line for line in text.splitlines() if "(audio)" in line]

    devices: List[AudioDevice] = []
    for line in candidates:
        if "Alternative name" in line:
            continue
        match = _QUOTED_NAME_RE.search(line)
        if not match:
            continue
        name = match.group(1)
        devices.append(
            AudioDevice(id=f'audio="{name}"', name=name, is_default=not devices)
        )
    return devices


def parse_pulse_devices(text: str) -> List[AudioDevice]:
    """Parse PulseAudio source listings.

    Accepts the numbered-bracket layout shared with AVFoundation, falling
    back to ``-sources pulse`` rows where ``*`` marks the server default.

    Args:
        text: Text from the binary.

    Returns:
        Audio devices in the order listed.
    """
    devices: List[AudioDevice] = []
    for line in text.splitlines():
        match = _INDEXED_DEVICE_RE.search(line)
        if match and match.group(2).strip():
            devices.append(
                AudioDevice(
                    id=match.group(1),
                    name=match.group(2).strip(),
                    is_default=not devices,
                )
            )
    if devices:
        return devices

    starred = False
    for line in text.splitlines():
        if line.rstrip().endswith(":") or "Auto-detected" in line:
            continue
        match = _PULSE_SOURCE_RE.match(line)
        if not match:
            continue
        if match.group(2).endswith(".monitor"):
            continue
        is_default = bool(match.group(1))
        starred = starred or is_default
        devices.append(
            AudioDevice(id=match.group(2), name=match.group(3).strip(), is_default=is_default)
        )

    if devices and not starred:
        first = devices[0]
        devices[0] = AudioDevice(id=first.id, name=first.name, is_default=True)
    return devices


_PARSERS = {
    Platform.MACOS: parse_avfoundation_devices,
    Platform.WINDOWS: parse_dshow_devices,
    Platform.LINUX: parse_pulse_devices,
}


def parse_devices(platform: Platform, text: str) -> List[AudioDevice]:
    """Dispatch to the parser for a platform."""
    return _PARSERS[platform](text)


def fallback_devices(commands: PlatformCommands) -> List[AudioDevice]:
    """The single synthetic device used when enumeration yields nothing."""
    return [
        AudioDevice(id=commands.default_device, name=FALLBACK_DEVICE_NAME, is_default=True)
    ]


def is_fallback_only(devices: List[AudioDevice]) -> bool:
    return len(devices) == 1 and devices[0].name == FALLBACK_DEVICE_NAME


class DeviceEnumerator:
    """Lists input devices by asking the capture binary."""

    def __init__(
        self,
        locator: Optional[BinaryLocator] = None,
        commands: Optional[PlatformCommands] = None,
        runner: Optional[CommandRunner] = None,
        timeout: float = PROBE_TIMEOUT,
    ) -> None:
        self.locator = locator or BinaryLocator()
        self.commands = commands or get_platform_commands()
        self.runner: CommandRunner = runner or run_command
        self.timeout = timeout

    def list_devices_argv(self, binary: str) -> List[str]:
        platform = self.commands.platform
        if platform not in _LIST_DEVICES_INPUT:
            return [binary, "-hide_banner", "-sources", self.commands.input_format]
        return [
            binary,
            "-hide_banner",
            "-list_devices",
            "true",
            *self.commands.input_args(_LIST_DEVICES_INPUT[platform]),
        ]

    async def detect_input_devices(self) -> List[AudioDevice]:
        """Enumerate input devices.

        Never raises and never returns an empty list: any failure yields
        the synthetic default device. The listing run exits non-zero on
        most builds, so only the parsed text decides the outcome.

        Returns:
            Devices in the order the binary reports them.
        """
        fallback = fallback_devices(self.commands)

        binary = self.locator.locate()
        if binary is None:
            logger.warning("🟡 Capture binary not found, using default device")
            return fallback

        argv = self.list_devices_argv(binary)
        try:
            output = await self.runner(argv, self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"🟡 Device listing timed out after {self.timeout:g}s, using default device"
            )
            return fallback
        except Exception as e:
            logger.warning(f"🟡 Device listing failed: {e}")
            return fallback

        text = output.stderr
        if self.commands.platform == Platform.LINUX:
            # -sources prints to stdout
            text = output.combined

        try:
            devices = parse_devices(self.commands.platform, text)
        except Exception as e:
            logger.warning(f"🟡 Could not parse device listing: {e}")
            return fallback

        if not devices:
            logger.warning("🟡 No input devices parsed, using default device")
            return fallback

        logger.info(f"🎤 Found {len(devices)} input device(s)")
        for device in devices:
            marker = " (default)" if device.is_default else ""
            logger.debug(f"🐛   {device.id}: {device.name}{marker}")
        return devices


async def detect_input_devices(ffmpeg_path: Optional[str] = None) -> List[AudioDevice]:
    """Enumerate input devices for the running OS."""
    return await DeviceEnumerator(BinaryLocator(ffmpeg_path)).detect_input_devices()
