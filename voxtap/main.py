"""Command line entry point for voxtap."""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import List, Optional

from voxtap import __version__
from voxtap.audio.binary_locator import BinaryLocator
from voxtap.audio.diagnostics import (
    DiagnosticsAggregator,
    log_diagnostics_report,
    run_test_capture,
    suggest_capture_fixes,
)
from voxtap.audio.error_recovery import MICROPHONE_RETRY, retry_async, user_message
from voxtap.audio.recorder import AudioRecorder
from voxtap.config.config_loader import config
from voxtap.utils.exceptions import ConfigurationError, VoxtapError
from voxtap.utils.logger import setup_logger

logger = setup_logger(__name__)

# Global recorder instance for signal handler
recorder_instance: Optional[AudioRecorder] = None


def signal_handler(sig, frame):
    """Handle termination signals by killing any active capture."""
    logger.info("Received termination signal, shutting down...")
    if recorder_instance:
        recorder_instance.cleanup()
    sys.exit(0)


def request_stop(recorder: AudioRecorder) -> "asyncio.Task":
    """Schedule stop_recording() and log how it ended."""
    task = asyncio.ensure_future(recorder.stop_recording())
    task.add_done_callback(_log_stop_outcome)
    return task


def _log_stop_outcome(task: "asyncio.Task") -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"🛑 Stopping the capture failed: {error}")
    elif task.result() is None:
        logger.debug("🐛 Stop requested with no capture to return")
    else:
        logger.info("⏹️ Capture stopped by interrupt")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="voxtap", description="Supervised FFmpeg audio capture for dictation"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--ffmpeg", dest="ffmpeg_path", help="Path to the FFmpeg binary")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("diagnostics", help="Check FFmpeg and input devices")
    subparsers.add_parser("devices", help="List input devices")

    record = subparsers.add_parser("record", help="Record until Ctrl+C or a stop condition")
    record.add_argument("-o", "--output", type=Path, help="Where to write the capture")
    record.add_argument("-d", "--device", dest="input_device", help="Device id or name")
    record.add_argument("-f", "--format", dest="audio_format", choices=["wav", "mp3", "opus", "webm"])
    record.add_argument("--max-duration", type=float, help="Stop after this many seconds")
    record.add_argument("--silence", dest="silence_detection", action="store_true", default=None, help="Stop after trailing silence")
    record.add_argument("--retry", action="store_true", help="Retry transient microphone failures")

    test = subparsers.add_parser("test-capture", help="Record a short trial capture")
    test.add_argument("--duration", type=float, default=2.0, help="Seconds to record")

    return parser


def _aggregator(ffmpeg_path: Optional[str]) -> DiagnosticsAggregator:
    return DiagnosticsAggregator(BinaryLocator(ffmpeg_path))


async def _diagnostics(args: argparse.Namespace) -> int:
    report = await _aggregator(args.ffmpeg_path).run_diagnostics()
    log_diagnostics_report(report)
    return 0 if report.ok else 1


async def _devices(args: argparse.Namespace) -> int:
    report = await _aggregator(args.ffmpeg_path).run_diagnostics()
    for device in report.input_devices:
        marker = "*" if device.is_default else " "
        print(f"{marker} {device.id}\t{device.name}")
    return 0


async def _test_capture(args: argparse.Namespace) -> int:
    options = config.get_recording_options(ffmpeg_path=args.ffmpeg_path)
    result = await run_test_capture(
        args.duration, _aggregator(options.ffmpeg_path), options=options
    )
    if result.success:
        print(f"OK: {result.file_size} bytes in {result.duration:.1f}s")
        return 0
    print(f"FAILED: {result.error}")
    return 1


async def _record(args: argparse.Namespace) -> int:
    global recorder_instance

    options = config.get_recording_options(
        ffmpeg_path=args.ffmpeg_path,
        input_device=args.input_device,
        audio_format=args.audio_format,
        max_duration=args.max_duration,
        silence_detection=args.silence_detection,
    )
    recorder = AudioRecorder(options)
    recorder_instance = recorder

    loop = asyncio.get_running_loop()
    stop_tasks: List[asyncio.Task] = []
    try:
        loop.add_signal_handler(
            signal.SIGINT, lambda: stop_tasks.append(request_stop(recorder))
        )
    except NotImplementedError:
        # Windows event loops: Ctrl+C arrives as KeyboardInterrupt
        pass

    print("Recording... press Ctrl+C to stop")
    try:
        if args.retry:
            outcome = await retry_async(
                recorder.start_recording, MICROPHONE_RETRY, operation_name="capture"
            )
            result = outcome.unwrap()
        else:
            result = await recorder.start_recording()
    except VoxtapError as e:
        print(f"Error: {user_message(e)}")
        suggest_capture_fixes(e)
        return 1
    finally:
        if stop_tasks:
            await asyncio.wait(stop_tasks)

    output = args.output or Path(f"recording.{options.audio_format}")
    output.write_bytes(result.data)
    print(f"Saved {result.size} bytes ({result.duration:.1f}s) to {output}")
    return 0


COMMANDS = {
    "diagnostics": _diagnostics,
    "devices": _devices,
    "record": _record,
    "test-capture": _test_capture,
}


def main(argv: Optional[List[str]] = None) -> None:
    """Main function to run voxtap."""
    args = build_parser().parse_args(argv)
    logger.debug(f"🐛 Starting voxtap {__version__}: {args.command}")

    signal.signal(signal.SIGTERM, signal_handler)

    try:
        exit_code = asyncio.run(COMMANDS[args.command](args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user (Ctrl+C)")
        if recorder_instance:
            recorder_instance.cleanup()
        exit_code = 130
    except ConfigurationError as e:
        logger.error(f"🛑 {e}")
        exit_code = 2
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
