"""
Tests for settings, editing presets and error redaction.
"""

import pytest

from app.config import (
    EditingPresetId,
    build_preset_operations,
    get_available_presets,
    get_editing_preset,
    get_settings,
)
from app.services.errors import (
    MAX_ERROR_MESSAGE_LENGTH,
    PresetNotFoundError,
    ValidationError,
    redact_error,
)


class TestPresets:
    """Tests for editing presets."""

    def test_all_presets_resolvable(self):
        for preset in get_available_presets():
            assert get_editing_preset(preset.id).name == preset.name

    def test_unknown_preset(self):
        with pytest.raises(ValueError, match="Valid presets"):
            get_editing_preset("sleepy")

    def test_presets_are_independent_instances(self):
        preset = get_editing_preset(EditingPresetId.FUNNY)
        preset.sound_effects.append("airhorn")
        assert "airhorn" not in get_editing_preset(EditingPresetId.FUNNY).sound_effects

    def test_build_operations_spacing(self):
        preset = get_editing_preset(EditingPresetId.PROFESSIONAL)  # 3 per minute
        operations = build_preset_operations(preset, 75.0)
        assert operations == [
            {"type": "jumpcut", "timestamp": 20.0},
            {"type": "jumpcut", "timestamp": 40.0},
            {"type": "jumpcut", "timestamp": 60.0},
        ]

    def test_build_operations_stops_before_end(self):
        preset = get_editing_preset(EditingPresetId.CHILL)  # every 30s
        assert build_preset_operations(preset, 30.0) == []

    def test_build_operations_zero_frequency(self):
        preset = get_editing_preset(EditingPresetId.ENERGETIC)
        preset.jump_cut_frequency = 0
        assert build_preset_operations(preset, 600.0) == []


class TestSettings:
    """Tests for environment-driven settings."""

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("MAX_WORKERS", "4")
        monkeypatch.setenv("AUDIO_ASSET_FAILURE_POLICY", "abort")
        get_settings.cache_clear()

        settings = get_settings()
        assert settings.max_workers == 4
        assert settings.audio_asset_failure_policy == "abort"

    def test_fixed_pipeline_constants(self, isolated_settings):
        assert isolated_settings.cut_margin_seconds == 0.25
        assert isolated_settings.progress_grace_seconds == 30.0
        assert isolated_settings.progress_stream_max_seconds == 300.0


class TestRedactError:
    """Tests for user-facing error messages."""

    def test_strips_credentials_and_query(self):
        error = RuntimeError(
            "Failed to download https://user:pw@cdn.example.com/a.mp4?X-Amz-Signature=abc HTTP 403"
        )
        assert redact_error(error) == "Failed to download https://cdn.example.com/a.mp4 HTTP 403"

    def test_strips_local_paths(self):
        error = RuntimeError("Cannot open /tmp/vidcraft-editor/job-1/source.mp4 for reading")
        assert redact_error(error) == "Cannot open <path> for reading"

    def test_truncates(self):
        message = redact_error(RuntimeError("x" * 2000))
        assert len(message) == MAX_ERROR_MESSAGE_LENGTH
        assert message.endswith("...")

    def test_empty_message_uses_class_name(self):
        assert redact_error(TimeoutError()) == "TimeoutError"

    def test_preset_error_is_validation_error(self):
        error = PresetNotFoundError("sleepy")
        assert isinstance(error, ValidationError)
        assert str(error) == "Unknown editing preset: sleepy"
