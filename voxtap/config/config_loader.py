"""Configuration loader for voxtap."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from voxtap.config.validators import (
    AudioRecordingOptions,
    VoxtapConfig,
    validate_config,
)
from voxtap.utils.exceptions import ConfigurationError

DEFAULT_CONFIG_PATH = "config.yml"
CONFIG_ENV_VAR = "VOXTAP_CONFIG"


class ConfigLoader:
    """Loads and manages application configuration from YAML files."""

    def __init__(self, config_path: Optional[str] = None) -> None:
        """Initialize the configuration loader.

        Args:
            config_path: Path to the configuration file. Falls back to the
                VOXTAP_CONFIG environment variable, then ``config.yml``.
        """
        path = config_path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
        self.config_path = Path(path)
        self.config: Dict[str, Any] = {}
        self.validated_config = None
        self.load()

    def load(self) -> None:
        """Load configuration from the YAML file.

        A missing file is not an error; every setting has a default.

        Raises:
            ConfigurationError: If the file exists but cannot be parsed.
        """
        if self.config_path.exists():
            try:
                with open(self.config_path, "r") as f:
                    loaded = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(
                    f"Failed to read config file {self.config_path}: {e}"
                ) from e
            if not isinstance(loaded, dict):
                raise ConfigurationError(
                    f"Config file {self.config_path} must contain a mapping"
                )
            self.config = loaded
        else:
            self.config = {}

        self._validate_config()

    def reload(self) -> None:
        """Reload configuration from disk."""
        self.load()

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dot-notation key.

        Args:
            key: Configuration key (e.g., "audio.sample_rate").
            default: Default value if key not found.

        Returns:
            Configuration value or default.
        """
        value: Any = self.config

        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value by dot-notation key.

        The value is held in memory only.

        Args:
            key: Configuration key (e.g., "audio.silence_threshold").
            value: Value to set.
        """
        keys = key.split(".")
        config_ref = self.config

        for k in keys[:-1]:
            if not isinstance(config_ref.get(k), dict):
                config_ref[k] = {}
            config_ref = config_ref[k]

        config_ref[keys[-1]] = value
        self._validate_config()

    def get_all(self) -> Dict[str, Any]:
        """Return a shallow copy of the raw configuration."""
        return dict(self.config)

    def get_recording_options(self, **overrides: Any) -> AudioRecordingOptions:
        """Build validated recording options from the ``audio`` section.

        Args:
            **overrides: Field values that take precedence over the file.

        Returns:
            AudioRecordingOptions instance.

        Raises:
            ConfigurationError: If the resulting options are invalid.
        """
        values = dict(self.get("audio", {}) or {})
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return AudioRecordingOptions(**values)
        except ValueError as e:
            raise ConfigurationError(f"Invalid recording options: {e}") from e

    def _validate_config(self) -> None:
        """Validate the loaded configuration, keeping defaults on failure."""
        try:
            self.validated_config = validate_config(self.config)
        except ConfigurationError as e:
            # setup_logger reads this module, so plain logging is used here
            logger = logging.getLogger(__name__)
            logger.error(f"🛑 {e}")
            logger.warning("🟡 Falling back to default configuration")
            self.validated_config = VoxtapConfig()


config = ConfigLoader()
