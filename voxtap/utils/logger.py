"""Logging utilities for voxtap."""

import logging
import sys
from datetime import datetime
from pathlib import Path

from voxtap.config import config_loader

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class EmojiFormatter(logging.Formatter):
    """Custom formatter that adds emoji indicators to log messages."""

    EMOJI_MAP = {
        logging.DEBUG: "🐛",
        logging.INFO: "🟢",
        logging.WARNING: "🟡",
        logging.ERROR: "🛑",
        logging.CRITICAL: "🛑",
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with emoji indicator.

        Args:
            record: Log record to format.

        Returns:
            Formatted log message with emoji.
        """
        emoji = self.EMOJI_MAP.get(record.levelno, "")
        message = super().format(record)
        return f"{emoji} {message}" if emoji else message


def _setting(key: str, default):
    # The config module may still be initializing when it logs its own errors
    loaded = getattr(config_loader, "config", None)
    return loaded.get(key, default) if loaded is not None else default


def setup_logger(name: str) -> logging.Logger:
    """Set up a logger with console and file handlers.

    Args:
        name: Logger name (typically __name__).

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if logger.handlers:
        return logger

    log_level = str(_setting("logging.level", "INFO"))
    log_format = _setting("logging.format", DEFAULT_FORMAT)
    log_dir = _setting("logging.directory", "logs")

    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Console handler with emoji
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(EmojiFormatter(log_format))
    logger.addHandler(console_handler)

    # File handler - one file per day
    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        date_str = datetime.now().strftime("%Y-%m-%d")
        log_file = log_path / f"voxtap-{date_str}.log"

        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(log_format))
        logger.addHandler(file_handler)

    return logger
