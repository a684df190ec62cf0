"""Tests for the OS to capture backend mapping."""

import pytest

from voxtap.audio.models import Platform
from voxtap.audio.platform_commands import (
    detect_platform,
    get_platform_commands,
    is_recognized_platform,
)


class TestPlatformCommands:
    @pytest.mark.parametrize(
        "system,keyword,default",
        [
            ("Darwin", "avfoundation", ":0"),
            ("Windows", "dshow", 'audio="Microphone"'),
            ("Linux", "pulse", "default"),
        ],
    )
    def test_backend_per_system(self, system, keyword, default):
        commands = get_platform_commands(system)
        assert commands.audio_input
        assert keyword in commands.audio_input
        assert commands.audio_input[0] == "-f"
        assert commands.input_format == keyword
        assert commands.default_device == default

    def test_unknown_system_falls_back_to_linux(self):
        assert detect_platform("FreeBSD") is Platform.LINUX
        assert get_platform_commands("FreeBSD").input_format == "pulse"
        assert not is_recognized_platform("FreeBSD")

    def test_running_system_is_mapped(self):
        assert detect_platform() in set(Platform)

    def test_input_args_appends_device(self):
        assert get_platform_commands("Darwin").input_args(":1") == [
            "-f",
            "avfoundation",
            "-i",
            ":1",
        ]
