"""Tests for locating and probing the FFmpeg binary."""

import asyncio
import os

import pytest

from tests.conftest import FakeRunner
from voxtap.audio import binary_locator
from voxtap.audio.binary_locator import (
    BinaryLocator,
    locate_binary,
    parse_version,
    run_command,
)

VERSION_OUTPUT = (
    "ffmpeg version 6.1.1-3ubuntu5 Copyright (c) 2000-2023 the FFmpeg developers\n"
    "built with gcc 13 (Ubuntu 13.2.0-23ubuntu3)\n"
)


@pytest.fixture
def on_path(monkeypatch):
    monkeypatch.setattr(binary_locator.shutil, "which", lambda name: f"/usr/bin/{name}")


@pytest.fixture
def not_on_path(monkeypatch):
    monkeypatch.setattr(binary_locator.shutil, "which", lambda name: None)


class TestLocateBinary:
    def test_path_search(self, on_path):
        assert locate_binary() == "/usr/bin/ffmpeg"

    def test_missing_from_path(self, not_on_path):
        assert locate_binary() is None

    def test_explicit_executable(self, tmp_path):
        binary = tmp_path / "ffmpeg"
        binary.write_text("#!/bin/sh\n")
        binary.chmod(0o755)
        assert locate_binary(str(binary)) == str(binary)

    def test_explicit_path_must_exist(self, tmp_path, on_path):
        assert locate_binary(str(tmp_path / "nope" / "ffmpeg")) is None

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_explicit_path_must_be_executable(self, tmp_path):
        binary = tmp_path / "ffmpeg"
        binary.write_text("")
        binary.chmod(0o644)
        assert locate_binary(str(binary)) is None

    def test_explicit_bare_name_uses_path(self, on_path):
        assert locate_binary("ffmpeg7") == "/usr/bin/ffmpeg7"


class TestParseVersion:
    def test_version_token(self):
        assert parse_version(VERSION_OUTPUT) == "6.1.1-3ubuntu5"

    def test_unknown_version(self):
        assert parse_version("something else") == "unknown"


class TestCheckAvailability:
    @pytest.mark.asyncio
    async def test_available(self, on_path):
        runner = FakeRunner(stdout=VERSION_OUTPUT)
        result = await BinaryLocator(runner=runner).check_availability()

        assert result.available
        assert result.version == "6.1.1-3ubuntu5"
        assert result.path == "/usr/bin/ffmpeg"
        assert runner.calls == [["/usr/bin/ffmpeg", "-version"]]

    @pytest.mark.asyncio
    async def test_not_found_mentions_ffmpeg(self, not_on_path):
        runner = FakeRunner()
        result = await BinaryLocator(runner=runner).check_availability()

        assert not result.available
        assert "FFmpeg not found in PATH" in result.error
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_explicit_path_not_found(self, tmp_path):
        missing = str(tmp_path / "bin" / "ffmpeg")
        result = await BinaryLocator(missing, runner=FakeRunner()).check_availability()
        assert not result.available
        assert missing in result.error

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, on_path):
        result = await BinaryLocator(runner=FakeRunner(returncode=1)).check_availability()
        assert not result.available
        assert "exit code: 1" in result.error
        assert result.path == "/usr/bin/ffmpeg"

    @pytest.mark.asyncio
    async def test_timeout(self, on_path):
        runner = FakeRunner(error=asyncio.TimeoutError())
        result = await BinaryLocator(runner=runner, timeout=2).check_availability()
        assert not result.available
        assert "did not respond" in result.error

    @pytest.mark.asyncio
    async def test_spawn_error(self, on_path):
        runner = FakeRunner(error=PermissionError("denied"))
        result = await BinaryLocator(runner=runner).check_availability()
        assert not result.available
        assert "Error running FFmpeg" in result.error

    @pytest.mark.asyncio
    async def test_version_on_stderr(self, on_path):
        runner = FakeRunner(stderr=VERSION_OUTPUT)
        result = await BinaryLocator(runner=runner).check_availability()
        assert result.version == "6.1.1-3ubuntu5"


class TestRunCommand:
    @pytest.mark.asyncio
    @pytest.mark.skipif(os.name == "nt", reason="needs a POSIX shell")
    async def test_captures_both_streams(self):
        output = await run_command(["sh", "-c", "echo out; echo err 1>&2; exit 3"])
        assert output.returncode == 3
        assert output.stdout.strip() == "out"
        assert output.stderr.strip() == "err"
        assert "out" in output.combined and "err" in output.combined

    @pytest.mark.asyncio
    @pytest.mark.skipif(os.name == "nt", reason="needs a POSIX shell")
    async def test_timeout_kills(self):
        with pytest.raises(asyncio.TimeoutError):
            await run_command(["sh", "-c", "sleep 5"], timeout=0.1)

    @pytest.mark.asyncio
    async def test_missing_program(self, tmp_path):
        with pytest.raises(OSError):
            await run_command([str(tmp_path / "does-not-exist")])
