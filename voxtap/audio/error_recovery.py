"""Error classification and retry helpers for capture callers.

The recorder never retries on its own. Callers wrap start_recording()
(or any other coroutine) with retry_async() or @with_retry, and the
classifier decides which failures are worth another attempt.
"""

import asyncio
import functools
import random
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from voxtap.config.validators import RetryConfig
from voxtap.utils.exceptions import (
    AudioRecorderError,
    BinaryNotFoundError,
    ConfigurationError,
    EmptyRecordingError,
    ProcessExitError,
    RecordingInProgressError,
    SpawnError,
)
from voxtap.utils.logger import setup_logger

logger = setup_logger(__name__)

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Coarse failure categories used for retry and user messaging."""

    MICROPHONE_ACCESS = "microphone_access"
    MICROPHONE_PERMISSION = "microphone_permission"
    MICROPHONE_COMPATIBILITY = "microphone_compatibility"
    NETWORK = "network"
    TRANSCRIPTION = "transcription"
    AUDIO_RECORDING = "audio_recording"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


class RetryStrategy(str, Enum):
    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    FIXED = "fixed"
    IMMEDIATE = "immediate"


RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.MICROPHONE_ACCESS,
        ErrorKind.NETWORK,
        ErrorKind.TRANSCRIPTION,
        ErrorKind.AUDIO_RECORDING,
        ErrorKind.UNKNOWN,
    }
)

USER_MESSAGES = {
    ErrorKind.MICROPHONE_ACCESS: (
        "Cannot access the microphone. It may be in use by another application."
    ),
    ErrorKind.MICROPHONE_PERMISSION: (
        "Microphone permission denied. Allow microphone access for your terminal "
        "or application in the system privacy settings."
    ),
    ErrorKind.MICROPHONE_COMPATIBILITY: (
        "The selected input device does not support the requested audio settings."
    ),
    ErrorKind.NETWORK: "Network error. Check your connection and try again.",
    ErrorKind.TRANSCRIPTION: "Transcription failed. Please try again.",
    ErrorKind.AUDIO_RECORDING: "Audio recording failed. Please try again.",
    ErrorKind.CONFIGURATION: "Configuration problem. Check config.yml and FFmpeg setup.",
    ErrorKind.UNKNOWN: "An unexpected error occurred.",
}

# Checked in order; the first matching keyword group wins
_KEYWORD_RULES = (
    (ErrorKind.MICROPHONE_PERMISSION, ("permission denied", "not authorized", "not permitted")),
    (ErrorKind.MICROPHONE_COMPATIBILITY, ("incompatible", "not supported", "invalid argument", "invalid data found")),
    (ErrorKind.MICROPHONE_ACCESS, ("device or resource busy", "microphone", "no such file or directory", "input/output error", "i/o error")),
    (ErrorKind.NETWORK, ("network", "connection", "timed out", "timeout", "unreachable")),
    (ErrorKind.TRANSCRIPTION, ("transcription", "no speech detected", "empty audio")),
    (ErrorKind.CONFIGURATION, ("ffmpeg not found", "configuration", "not executable")),
    (ErrorKind.AUDIO_RECORDING, ("recording", "audio", "capture")),
)


def classify_error(error: BaseException) -> ErrorKind:
    """Map an exception to an ErrorKind.

    Known exception types are classified first, then the message (and the
    stderr hint for capture failures) is matched against keyword groups.

    Args:
        error: The failure to classify.

    Returns:
        The matching ErrorKind, UNKNOWN if nothing matches.
    """
    if isinstance(error, (BinaryNotFoundError, ConfigurationError)):
        return ErrorKind.CONFIGURATION
    if isinstance(error, (RecordingInProgressError, EmptyRecordingError)):
        return ErrorKind.AUDIO_RECORDING
    if isinstance(error, asyncio.TimeoutError):
        return ErrorKind.NETWORK

    text = str(error)
    if isinstance(error, ProcessExitError):
        text = " ".join(filter(None, (text, error.hint, error.stderr)))
    text = text.lower()

    if "permission" in text and "microphone" in text:
        return ErrorKind.MICROPHONE_PERMISSION

    for kind, keywords in _KEYWORD_RULES:
        if any(keyword in text for keyword in keywords):
            return kind

    if isinstance(error, SpawnError):
        return ErrorKind.AUDIO_RECORDING
    return ErrorKind.UNKNOWN


def is_retryable(kind: ErrorKind) -> bool:
    return kind in RETRYABLE_KINDS


def should_retry(error: BaseException) -> bool:
    """Whether another attempt could succeed after this error."""
    if isinstance(error, RecordingInProgressError):
        return False
    return is_retryable(classify_error(error))


def user_message(error: BaseException) -> str:
    """A short message suitable for showing to the user."""
    return USER_MESSAGES[classify_error(error)]


MICROPHONE_RETRY = RetryConfig(
    max_attempts=2,
    strategy="fixed",
    base_delay=0.5,
    max_delay=1.0,
    backoff_multiplier=1.0,
    jitter=False,
)

API_RETRY = RetryConfig(
    max_attempts=3,
    strategy="exponential",
    base_delay=1.0,
    max_delay=8.0,
    backoff_multiplier=2.0,
    jitter=True,
)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Seconds to wait after a failed attempt.

    Args:
        attempt: Number of the attempt that just failed, starting at 1.
        config: Retry policy.

    Returns:
        Delay in seconds, never negative.
    """
    strategy = RetryStrategy(config.strategy)
    if strategy == RetryStrategy.EXPONENTIAL:
        delay = config.base_delay * config.backoff_multiplier ** (attempt - 1)
    elif strategy == RetryStrategy.LINEAR:
        delay = config.base_delay * attempt
    elif strategy == RetryStrategy.FIXED:
        delay = config.base_delay
    else:
        delay = 0.0

    delay = min(delay, config.max_delay)

    if config.jitter and delay > 0:
        delay += random.uniform(-0.1, 0.1) * delay

    return max(0.0, delay)


class RetryResult(Generic[T]):
    """Outcome of retry_async()."""

    def __init__(
        self,
        success: bool,
        attempts: int,
        total_time: float,
        result: Optional[T] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        self.success = success
        self.attempts = attempts
        self.total_time = total_time
        self.result = result
        self.error = error

    def unwrap(self) -> T:
        """Return the result or raise the last error."""
        if not self.success:
            if self.error is None:
                raise AudioRecorderError(
                    f"Operation failed after {self.attempts} attempts"
                )
            raise self.error
        return self.result

    def __repr__(self) -> str:
        return (
            f"RetryResult(success={self.success}, attempts={self.attempts}, "
            f"total_time={self.total_time:.2f})"
        )


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    operation_name: str = "operation",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> RetryResult[T]:
    """Run a coroutine factory until it succeeds or the policy gives up.

    Non-retryable errors end the loop immediately.

    Args:
        operation: Zero-argument callable returning a fresh awaitable.
        config: Retry policy, defaults to RetryConfig().
        operation_name: Label used in log messages.
        sleep: Awaitable delay function.

    Returns:
        RetryResult with the value or the last error.
    """
    config = config or RetryConfig()
    started = time.monotonic()
    last_error: Optional[BaseException] = None

    for attempt in range(1, config.max_attempts + 1):
        try:
            logger.debug(f"🔄 {operation_name} attempt {attempt}/{config.max_attempts}")
            result = await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            last_error = e
            logger.warning(f"🟡 {operation_name} failed on attempt {attempt}: {e}")

            if attempt == config.max_attempts:
                break
            if not should_retry(e):
                logger.warning(
                    f"🚫 {classify_error(e).value} errors are not retryable, giving up"
                )
                break

            delay = calculate_delay(attempt, config)
            logger.info(f"⏳ Retrying {operation_name} in {delay:.2f}s")
            await sleep(delay)
        else:
            elapsed = time.monotonic() - started
            if attempt > 1:
                logger.info(f"✅ {operation_name} succeeded on attempt {attempt}")
            return RetryResult(True, attempt, elapsed, result=result)

    elapsed = time.monotonic() - started
    logger.error(f"🛑 {operation_name} failed after {attempt} attempt(s)")
    return RetryResult(False, attempt, elapsed, error=last_error)


def with_retry(
    config: Optional[RetryConfig] = None, operation_name: Optional[str] = None
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator applying retry_async() to a coroutine function.

    The decorated function raises the last error when every attempt fails.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        name = operation_name or func.__name__

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            outcome = await retry_async(
                lambda: func(*args, **kwargs), config, operation_name=name
            )
            return outcome.unwrap()

        return wrapper

    return decorator
