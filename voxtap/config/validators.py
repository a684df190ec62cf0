"""Configuration validation schemas using Pydantic."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from voxtap.utils.exceptions import ConfigurationError

VALID_SAMPLE_RATES = (8000, 16000, 22050, 44100, 48000)

DEFAULT_CODECS = {
    "wav": "pcm_s16le",
    "mp3": "libmp3lame",
    "opus": "libopus",
    "webm": "libvorbis",
}

MIME_TYPES = {
    "wav": "audio/wav",
    "mp3": "audio/mpeg",
    "opus": "audio/ogg",
    "webm": "audio/webm",
}

# Longest capture accepted from configuration, in seconds
MAX_CAPTURE_SECONDS = 4 * 3600


class AudioRecordingOptions(BaseModel):
    """Per-capture options. Every field has a default."""

    sample_rate: int = Field(default=16000, description="Capture sample rate")
    channel_count: int = Field(default=1, description="Number of audio channels")
    audio_format: str = Field(default="wav", description="Output container")
    codec: Optional[str] = Field(
        default=None, description="Encoder name, derived from format when unset"
    )
    input_device: str = Field(
        default="auto", description="Device id, device name or 'auto'"
    )
    ffmpeg_path: Optional[str] = Field(
        default=None, description="Explicit path to the capture binary"
    )
    max_duration: float = Field(
        default=3600, description="Maximum capture duration in seconds"
    )

    # Silence-based auto stop
    silence_detection: bool = Field(
        default=False, description="Stop automatically after trailing silence"
    )
    silence_duration: float = Field(
        default=3.0, description="Seconds of continuous silence before stopping"
    )
    silence_threshold: int = Field(
        default=30, description="Silence level in dB below full scale"
    )
    silence_min_recording: float = Field(
        default=5.0, description="Seconds of capture before silence may stop it"
    )

    # Supervisor timing
    startup_grace: float = Field(
        default=0.3, description="Seconds the process must survive to count as started"
    )
    stop_timeout: float = Field(
        default=5.0, description="Seconds to wait for a graceful exit before killing"
    )

    # Debug captures
    save_debug_captures: bool = Field(
        default=False, description="Keep a copy of every capture on disk"
    )
    debug_directory: str = Field(
        default="debug_audio", description="Directory for debug captures"
    )

    model_config = {"extra": "ignore", "validate_assignment": True}

    @field_validator("sample_rate")
    @classmethod
    def validate_sample_rate(cls, v: int) -> int:
        if v not in VALID_SAMPLE_RATES:
            raise ValueError(f"Sample rate must be one of: {VALID_SAMPLE_RATES}")
        return v

    @field_validator("channel_count")
    @classmethod
    def validate_channels(cls, v: int) -> int:
        if v not in (1, 2):
            raise ValueError("Channels must be 1 (mono) or 2 (stereo)")
        return v

    @field_validator("audio_format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        v = v.lower()
        if v not in DEFAULT_CODECS:
            raise ValueError(f"Audio format must be one of: {tuple(DEFAULT_CODECS)}")
        return v

    @field_validator("input_device")
    @classmethod
    def validate_input_device(cls, v: str) -> str:
        if not v or not str(v).strip():
            return "auto"
        return str(v)

    @field_validator("max_duration")
    @classmethod
    def validate_max_duration(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Max recording duration must be positive")
        if v > MAX_CAPTURE_SECONDS:
            raise ValueError("Max recording duration cannot exceed 4 hours")
        return v

    @field_validator("silence_duration", "stop_timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Duration must be positive")
        return v

    @field_validator("silence_min_recording", "startup_grace")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Duration cannot be negative")
        return v

    @field_validator("silence_threshold")
    @classmethod
    def validate_silence_threshold(cls, v: int) -> int:
        if v < 20 or v > 80:
            raise ValueError("Silence threshold must be between 20 and 80 dB")
        return v

    @model_validator(mode="after")
    def fill_default_codec(self) -> "AudioRecordingOptions":
        if not self.codec:
            # Bypass validate_assignment to avoid re-entering this validator
            object.__setattr__(self, "codec", DEFAULT_CODECS[self.audio_format])
        return self

    @property
    def mime_type(self) -> str:
        return MIME_TYPES[self.audio_format]

    @property
    def silence_threshold_db(self) -> int:
        """Threshold as a negative dBFS value, as passed to silencedetect."""
        return -abs(self.silence_threshold)


class LoggingConfig(BaseModel):
    """Logging configuration validation."""

    level: str = Field(default="INFO", description="Logging level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log record format",
    )
    directory: Optional[str] = Field(
        default="logs", description="Directory for daily log files, null to disable"
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()


class RetryConfig(BaseModel):
    """Retry policy for operations wrapped by the retry helpers."""

    max_attempts: int = Field(default=3, description="Total attempts including the first")
    strategy: str = Field(default="exponential", description="Backoff strategy")
    base_delay: float = Field(default=1.0, description="Initial delay in seconds")
    max_delay: float = Field(default=10.0, description="Upper bound on any delay")
    backoff_multiplier: float = Field(default=2.0, description="Exponential factor")
    jitter: bool = Field(default=True, description="Randomize delays by ±10%")

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Max attempts must be at least 1")
        return v

    @field_validator("strategy")
    @classmethod
    def validate_strategy(cls, v: str) -> str:
        valid = ("exponential", "linear", "fixed", "immediate")
        if v not in valid:
            raise ValueError(f"Retry strategy must be one of: {valid}")
        return v

    @field_validator("base_delay", "max_delay")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Delays cannot be negative")
        return v


class VoxtapConfig(BaseModel):
    """Main voxtap configuration validation."""

    app: Dict[str, Any] = Field(default_factory=dict)
    audio: AudioRecordingOptions = Field(default_factory=AudioRecordingOptions)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    model_config = {
        "extra": "allow",
        "validate_assignment": True,
    }


def validate_config(config_dict: Dict[str, Any]) -> VoxtapConfig:
    """Validate configuration dictionary using Pydantic schemas.

    Args:
        config_dict: Configuration dictionary to validate

    Returns:
        Validated VoxtapConfig instance

    Raises:
        ConfigurationError: If configuration validation fails
    """
    try:
        return VoxtapConfig(**config_dict)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e
