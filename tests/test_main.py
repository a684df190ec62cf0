"""Tests for the command line entry point."""

import asyncio

import pytest

from voxtap.main import COMMANDS, build_parser, request_stop


class TestParser:
    def test_subcommands_are_wired(self):
        assert set(COMMANDS) == {"diagnostics", "devices", "record", "test-capture"}

    def test_record_options(self):
        args = build_parser().parse_args(
            ["--ffmpeg", "/opt/ffmpeg", "record", "-d", ":1", "--silence", "--max-duration", "30"]
        )
        assert args.command == "record"
        assert args.ffmpeg_path == "/opt/ffmpeg"
        assert args.input_device == ":1"
        assert args.silence_detection is True
        assert args.max_duration == 30.0
        assert args.audio_format is None

    def test_silence_flag_defaults_to_config(self):
        args = build_parser().parse_args(["record"])
        assert args.silence_detection is None

    def test_test_capture_duration(self):
        args = build_parser().parse_args(["test-capture", "--duration", "3"])
        assert args.duration == 3.0

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class FakeStoppable:
    def __init__(self, outcome=None, error=None) -> None:
        self.outcome = outcome
        self.error = error
        self.calls = 0

    async def stop_recording(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.outcome


class TestRequestStop:
    @pytest.mark.asyncio
    async def test_stop_task_is_returned_and_awaitable(self):
        recorder = FakeStoppable(outcome=None)
        task = request_stop(recorder)
        assert await task is None
        assert recorder.calls == 1

    @pytest.mark.asyncio
    async def test_stop_failure_is_logged(self, caplog):
        task = request_stop(FakeStoppable(error=RuntimeError("pipe closed")))
        await asyncio.wait([task])
        await asyncio.sleep(0)
        assert "pipe closed" in caplog.text
