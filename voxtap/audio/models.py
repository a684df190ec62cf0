"""Data models shared by the capture components."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class Platform(str, Enum):
    """Operating systems with a known capture backend."""

    MACOS = "macos"
    WINDOWS = "windows"
    LINUX = "linux"


class RecorderState(Enum):
    """Lifecycle states of the capture supervisor."""

    IDLE = "idle"
    STARTING = "starting"
    RECORDING = "recording"
    STOPPING = "stopping"
    FAILED = "failed"


class StopReason(str, Enum):
    """Why a capture left the recording state."""

    REQUESTED = "requested"
    MAX_DURATION = "max_duration"
    SILENCE = "silence"
    PROCESS_EXIT = "process_exit"


class AudioDevice(BaseModel):
    """An input device as reported by the capture binary."""

    id: str = Field(description="Backend-specific identifier passed to -i")
    name: str = Field(description="Human readable device name")
    is_default: bool = Field(default=False)

    model_config = {"frozen": True}


class PlatformCommands(BaseModel):
    """Input backend flags for one operating system."""

    platform: Platform
    audio_input: List[str] = Field(description="Flags selecting the input backend")
    default_device: str = Field(description="Device id used when none is chosen")

    model_config = {"frozen": True}

    @property
    def input_format(self) -> str:
        """The value passed to -f."""
        return self.audio_input[-1]

    def input_args(self, device: str) -> List[str]:
        """Backend flags followed by ``-i device``."""
        return [*self.audio_input, "-i", device]


class BinaryAvailability(BaseModel):
    """Result of probing the capture binary."""

    available: bool
    version: Optional[str] = None
    path: Optional[str] = None
    error: Optional[str] = None

    model_config = {"frozen": True}


class CaptureStats(BaseModel):
    """Levels measured on a finished capture."""

    duration: float
    peak_db: float
    rms_db: float

    model_config = {"frozen": True}


class CaptureResult(BaseModel):
    """A finished capture, held entirely in memory."""

    data: bytes = Field(repr=False)
    mime_type: str
    file_name: str
    duration: float = Field(description="Wall-clock seconds spent recording")
    device_id: str
    exit_code: Optional[int] = None
    stop_reason: StopReason = StopReason.REQUESTED
    stats: Optional[CaptureStats] = None

    model_config = {"frozen": True}

    @property
    def size(self) -> int:
        return len(self.data)


class DiagnosticsReport(BaseModel):
    """Pre-flight summary of the capture environment."""

    binary: BinaryAvailability
    input_devices: List[AudioDevice] = Field(default_factory=list)
    platform: Platform
    platform_commands: PlatformCommands
    recommended_device: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.binary.available and not self.errors


class TestCaptureResult(BaseModel):
    """Outcome of a short trial capture."""

    __test__ = False

    success: bool
    file_size: int = 0
    duration: float = 0.0
    command: List[str] = Field(default_factory=list)
    error: Optional[str] = None
