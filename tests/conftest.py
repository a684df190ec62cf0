"""Shared pytest configuration and fixtures for the voxtap test suite."""

import asyncio
import io
import os
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np
import pytest
import soundfile as sf

PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Must be set before voxtap is imported; keeps log files out of the tree
os.environ.setdefault("VOXTAP_CONFIG", str(Path(__file__).parent / "config.test.yml"))

from voxtap.audio.binary_locator import CommandOutput  # noqa: E402
from voxtap.audio.models import (  # noqa: E402
    AudioDevice,
    BinaryAvailability,
    DiagnosticsReport,
)
from voxtap.audio.platform_commands import get_platform_commands  # noqa: E402


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "hardware: mark test as requiring FFmpeg and a microphone"
    )


# =============================================================================
# Audio fixtures
# =============================================================================


def make_wav_bytes(seconds: float = 0.5, amplitude: float = 0.5, rate: int = 16000) -> bytes:
    t = np.arange(int(seconds * rate)) / rate
    samples = (amplitude * np.sin(2 * np.pi * 440 * t)).astype(np.float32)
    buffer = io.BytesIO()
    sf.write(buffer, samples, rate, format="WAV", subtype="PCM_16")
    return buffer.getvalue()


@pytest.fixture
def wav_bytes() -> bytes:
    return make_wav_bytes()


# =============================================================================
# Fake subprocesses
# =============================================================================


class FakeStdin:
    def __init__(self) -> None:
        self.written = b""

    def write(self, data: bytes) -> None:
        self.written += data


class FakeProcess:
    """Stands in for asyncio.subprocess.Process running FFmpeg."""

    def __init__(
        self,
        output_path: Path,
        data: bytes = b"",
        exit_on_terminate: bool = True,
        terminate_code: int = 255,
        wait_error: Optional[Exception] = None,
    ) -> None:
        self.output_path = output_path
        self.data = data
        self.exit_on_terminate = exit_on_terminate
        self.terminate_code = terminate_code
        self.wait_error = wait_error
        self.stdin = FakeStdin()
        self.stderr = asyncio.StreamReader()
        self.returncode: Optional[int] = None
        self.terminated = False
        self.killed = False
        self._exited = asyncio.Event()

    def feed_stderr(self, text: str) -> None:
        self.stderr.feed_data(text.encode())

    def exit(self, code: int, write: bool = True) -> None:
        if self.returncode is not None:
            return
        if write and self.data:
            self.output_path.write_bytes(self.data)
        self.returncode = code
        self.stderr.feed_eof()
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        if self.wait_error is not None:
            raise self.wait_error
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        if self.exit_on_terminate:
            self.exit(self.terminate_code)

    def kill(self) -> None:
        self.killed = True
        self.exit(-9, write=False)


class FakeProcessFactory:
    """Records capture commands and hands out FakeProcess objects."""

    def __init__(self, error: Optional[Exception] = None, **process_kwargs) -> None:
        self.error = error
        self.process_kwargs = process_kwargs
        self.calls: List[List[str]] = []
        self.processes: List[FakeProcess] = []

    @property
    def process(self) -> FakeProcess:
        return self.processes[-1]

    async def __call__(self, argv: List[str]) -> FakeProcess:
        self.calls.append(list(argv))
        if self.error is not None:
            raise self.error
        process = FakeProcess(Path(argv[-1]), **self.process_kwargs)
        self.processes.append(process)
        return process


class StubDiagnostics:
    """Returns a fixed DiagnosticsReport."""

    def __init__(self, report: DiagnosticsReport, delay: float = 0.0) -> None:
        self.report = report
        self.delay = delay
        self.calls = 0

    async def run_diagnostics(self) -> DiagnosticsReport:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.report


def make_report(
    available: bool = True,
    devices: Optional[List[AudioDevice]] = None,
    system: str = "Linux",
) -> DiagnosticsReport:
    commands = get_platform_commands(system)
    if devices is None:
        devices = [AudioDevice(id="default", name="Built-in Audio", is_default=True)]
    binary = (
        BinaryAvailability(available=True, version="6.1", path="/usr/bin/ffmpeg")
        if available
        else BinaryAvailability(available=False, error="FFmpeg not found in PATH.")
    )
    return DiagnosticsReport(
        binary=binary,
        input_devices=devices,
        platform=commands.platform,
        platform_commands=commands,
        recommended_device=devices[0].id if devices else None,
        errors=[] if available else [binary.error],
    )


class FakeRunner:
    """Replaces run_command with canned output."""

    def __init__(
        self,
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
        error: Optional[BaseException] = None,
    ) -> None:
        self.output = CommandOutput(returncode, stdout, stderr)
        self.error = error
        self.calls: List[List[str]] = []

    async def __call__(self, argv: List[str], timeout: float) -> CommandOutput:
        self.calls.append(list(argv))
        if self.error is not None:
            raise self.error
        return self.output


class FakeLocator:
    def __init__(self, path: Optional[str] = "/usr/bin/ffmpeg", availability=None) -> None:
        self.path = path
        self.availability = availability or BinaryAvailability(
            available=path is not None, version="6.1", path=path
        )

    def locate(self) -> Optional[str]:
        return self.path

    async def check_availability(self) -> BinaryAvailability:
        return self.availability


@pytest.fixture
def linux_report() -> DiagnosticsReport:
    return make_report()
