"""Tests for configuration loading and validation."""

import pytest
from pydantic import ValidationError

from voxtap.config.config_loader import ConfigLoader
from voxtap.config.validators import AudioRecordingOptions, validate_config
from voxtap.utils.exceptions import ConfigurationError


class TestAudioRecordingOptions:
    def test_defaults(self):
        options = AudioRecordingOptions()
        assert options.sample_rate == 16000
        assert options.channel_count == 1
        assert options.audio_format == "wav"
        assert options.codec == "pcm_s16le"
        assert options.input_device == "auto"
        assert options.max_duration == 3600
        assert options.silence_detection is False
        assert options.silence_duration == 3.0
        assert options.mime_type == "audio/wav"

    @pytest.mark.parametrize(
        "audio_format,codec,mime",
        [
            ("mp3", "libmp3lame", "audio/mpeg"),
            ("opus", "libopus", "audio/ogg"),
            ("webm", "libvorbis", "audio/webm"),
        ],
    )
    def test_codec_follows_format(self, audio_format, codec, mime):
        options = AudioRecordingOptions(audio_format=audio_format)
        assert options.codec == codec
        assert options.mime_type == mime

    def test_explicit_codec_is_kept(self):
        assert AudioRecordingOptions(codec="pcm_s24le").codec == "pcm_s24le"

    def test_threshold_is_negated_for_ffmpeg(self):
        assert AudioRecordingOptions(silence_threshold=45).silence_threshold_db == -45

    @pytest.mark.parametrize(
        "field,value",
        [
            ("sample_rate", 12345),
            ("channel_count", 3),
            ("audio_format", "flac"),
            ("max_duration", 0),
            ("silence_duration", -1),
            ("silence_threshold", 10),
            ("silence_threshold", 90),
            ("stop_timeout", 0),
        ],
    )
    def test_rejects_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            AudioRecordingOptions(**{field: value})

    def test_blank_device_means_auto(self):
        assert AudioRecordingOptions(input_device="  ").input_device == "auto"


class TestValidateConfig:
    def test_sections(self):
        validated = validate_config(
            {"audio": {"sample_rate": 48000}, "logging": {"level": "debug"}}
        )
        assert validated.audio.sample_rate == 48000
        assert validated.logging.level == "DEBUG"
        assert validated.retry.max_attempts == 3

    def test_invalid_raises_configuration_error(self):
        with pytest.raises(ConfigurationError):
            validate_config({"retry": {"strategy": "random"}})


class TestConfigLoader:
    def test_missing_file_uses_defaults(self, tmp_path):
        loader = ConfigLoader(str(tmp_path / "absent.yml"))
        assert loader.config == {}
        assert loader.get("audio.sample_rate", 16000) == 16000
        assert loader.get_recording_options().sample_rate == 16000

    def test_reads_yaml(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("audio:\n  input_device: ':2'\n  silence_detection: true\n")
        loader = ConfigLoader(str(path))

        assert loader.get("audio.input_device") == ":2"
        options = loader.get_recording_options()
        assert options.input_device == ":2"
        assert options.silence_detection is True

    def test_env_var_selects_file(self, tmp_path, monkeypatch):
        path = tmp_path / "alt.yml"
        path.write_text("app:\n  name: test\n")
        monkeypatch.setenv("VOXTAP_CONFIG", str(path))
        assert ConfigLoader().get("app.name") == "test"

    def test_overrides_take_precedence(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("audio:\n  audio_format: mp3\n")
        options = ConfigLoader(str(path)).get_recording_options(
            audio_format="opus", input_device=None
        )
        assert options.audio_format == "opus"
        assert options.input_device == "auto"

    def test_set_uses_dot_notation(self, tmp_path):
        loader = ConfigLoader(str(tmp_path / "absent.yml"))
        loader.set("audio.silence_threshold", 50)
        assert loader.get("audio.silence_threshold") == 50
        assert loader.validated_config.audio.silence_threshold == 50

    def test_invalid_values_fall_back_to_defaults(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("audio:\n  sample_rate: 1234\n")
        loader = ConfigLoader(str(path))
        assert loader.validated_config.audio.sample_rate == 16000
        with pytest.raises(ConfigurationError):
            loader.get_recording_options()

    def test_malformed_yaml_raises(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("audio: [unclosed\n")
        with pytest.raises(ConfigurationError):
            ConfigLoader(str(path))

    def test_non_mapping_raises(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError):
            ConfigLoader(str(path))
