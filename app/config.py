"""
Configuration module using Pydantic Settings for environment variable management.

Only essential environment variables are exposed. Pipeline constants that must
stay consistent across deployments are hardcoded as read-only properties.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings


# ============================================================
# EDITING PRESETS
# ============================================================

class EditingPresetId:
    """
    Available editing preset identifiers.

    A preset supplies default settings and a skeleton operation list for a
    named editing style. Recommendation output is just one of these IDs.
    """
    ENERGETIC = "energetic"
    CHILL = "chill"
    PROFESSIONAL = "professional"
    FUNNY = "funny"
    DRAMATIC = "dramatic"


class EditingPreset:
    """Editing preset configuration (hardcoded)."""

    id: str = EditingPresetId.PROFESSIONAL
    name: str = "Professional"
    description: str = ""
    jump_cut_frequency: int = 3  # Cuts per minute
    music_volume: int = 70  # 0-100
    transition_style: str = "fade"
    sound_effects: list[str] = []


def get_editing_preset(preset_id: str) -> EditingPreset:
    """
    Get an EditingPreset for a given preset ID.

    Args:
        preset_id: One of the EditingPresetId constants

    Returns:
        Configured EditingPreset

    Raises:
        ValueError: If preset_id is not recognized
    """
    presets = {
        EditingPresetId.ENERGETIC: _create_energetic_preset(),
        EditingPresetId.CHILL: _create_chill_preset(),
        EditingPresetId.PROFESSIONAL: _create_professional_preset(),
        EditingPresetId.FUNNY: _create_funny_preset(),
        EditingPresetId.DRAMATIC: _create_dramatic_preset(),
    }

    if preset_id not in presets:
        valid_presets = list(presets.keys())
        raise ValueError(f"Unknown editing preset: {preset_id}. Valid presets: {valid_presets}")

    return presets[preset_id]


def get_available_presets() -> list[EditingPreset]:
    """Get all editing presets in display order."""
    return [
        _create_energetic_preset(),
        _create_chill_preset(),
        _create_professional_preset(),
        _create_funny_preset(),
        _create_dramatic_preset(),
    ]


def build_preset_operations(preset: EditingPreset, duration_seconds: float) -> list[dict]:
    """
    Generate the skeleton operation list for a preset.

    Jump cuts are spaced evenly at 60 / jump_cut_frequency seconds, starting one
    interval in and stopping before the end of the video.

    Args:
        preset: Preset to expand
        duration_seconds: Source video duration

    Returns:
        List of raw operation dicts (same shape as a submission payload)
    """
    if preset.jump_cut_frequency <= 0 or duration_seconds <= 0:
        return []

    interval = 60.0 / preset.jump_cut_frequency
    operations = []
    step = 1
    while step * interval < duration_seconds:
        operations.append({"type": "jumpcut", "timestamp": round(step * interval, 3)})
        step += 1
    return operations


def _create_energetic_preset() -> EditingPreset:
    """Energetic: fast-paced with quick cuts and upbeat vibes."""
    preset = EditingPreset()
    preset.id = EditingPresetId.ENERGETIC
    preset.name = "Energetic"
    preset.description = "Fast-paced with quick cuts and upbeat vibes"
    preset.jump_cut_frequency = 10
    preset.music_volume = 80
    preset.transition_style = "cut"
    preset.sound_effects = ["whoosh", "pop", "swoosh"]
    return preset


def _create_chill_preset() -> EditingPreset:
    """Chill Vibes: relaxed pacing with gentle transitions."""
    preset = EditingPreset()
    preset.id = EditingPresetId.CHILL
    preset.name = "Chill Vibes"
    preset.description = "Relaxed and smooth with gentle transitions"
    preset.jump_cut_frequency = 2
    preset.music_volume = 60
    preset.transition_style = "fade"
    preset.sound_effects = ["ambient", "soft"]
    return preset


def _create_professional_preset() -> EditingPreset:
    """Professional: clean and polished."""
    preset = EditingPreset()
    preset.id = EditingPresetId.PROFESSIONAL
    preset.name = "Professional"
    preset.description = "Clean, polished, and business-focused"
    preset.jump_cut_frequency = 3
    preset.music_volume = 50
    preset.transition_style = "fade"
    preset.sound_effects = []
    return preset


def _create_funny_preset() -> EditingPreset:
    """Funny: comedic timing with playful effects."""
    preset = EditingPreset()
    preset.id = EditingPresetId.FUNNY
    preset.name = "Funny"
    preset.description = "Comedic timing with playful effects"
    preset.jump_cut_frequency = 12
    preset.music_volume = 75
    preset.transition_style = "zoom"
    preset.sound_effects = ["boing", "cartoon", "laugh", "ding"]
    return preset


def _create_dramatic_preset() -> EditingPreset:
    """Dramatic: bold effects and emotional storytelling."""
    preset = EditingPreset()
    preset.id = EditingPresetId.DRAMATIC
    preset.name = "Dramatic"
    preset.description = "Bold effects and emotional storytelling"
    preset.jump_cut_frequency = 4
    preset.music_volume = 70
    preset.transition_style = "slide"
    preset.sound_effects = ["cinematic", "impact", "tension"]
    return preset


class Settings(BaseSettings):
    """
    Application settings.

    Only essential configuration is loaded from environment variables.
    Pipeline constants are hardcoded for consistency.
    """

    # ============================================================
    # ENVIRONMENT VARIABLES (minimal set)
    # ============================================================

    # Application
    app_name: str = "vidcraft-editor"
    debug: bool = False
    log_level: str = "INFO"

    # AWS S3
    aws_region: str = "us-east-1"
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    s3_bucket: str = "vidcraft-media"

    # Where finished edits go: "s3" uploads, "local" copies into output_directory
    storage_backend: Literal["s3", "local"] = "s3"
    output_directory: str = "./output"

    # Working storage and durable job records
    temp_directory: str = "/tmp/vidcraft-editor"
    database_path: str = "./vidcraft_jobs.db"

    # Security - API authentication
    editor_api_key: Optional[str] = None  # API key for authenticating incoming requests

    # Performance tuning
    max_workers: int = 2  # Max concurrently processing jobs
    max_queued_jobs: int = 20  # Submissions beyond this are rejected with 503

    # Per-step deadlines
    download_timeout_seconds: float = 300.0
    ffmpeg_timeout_seconds: float = 600.0
    upload_timeout_seconds: float = 300.0

    # What to do when an overlay asset cannot be fetched or decoded
    audio_asset_failure_policy: Literal["degrade", "abort"] = "degrade"

    # ============================================================
    # HARDCODED SETTINGS (not configurable via env vars)
    # ============================================================

    # Jump cuts
    @property
    def cut_margin_seconds(self) -> float:
        return 0.25  # Removed on each side of a cut timestamp

    @property
    def default_frame_rate(self) -> float:
        return 30.0  # Used when ffprobe reports no usable frame rate

    # Audio mixing
    @property
    def voice_over_gain(self) -> float:
        return 1.0

    @property
    def sound_effect_gain(self) -> float:
        return 0.7

    @property
    def default_music_volume(self) -> int:
        return 70

    @property
    def placeholder_audio_seconds(self) -> float:
        return 1.0  # Silence length for a failed asset without a declared duration

    @property
    def audio_codec(self) -> str:
        return "aac"

    @property
    def audio_bitrate(self) -> str:
        return "192k"

    # Progress reporting
    @property
    def progress_poll_interval_seconds(self) -> float:
        return 0.5

    @property
    def progress_stream_max_seconds(self) -> float:
        return 300.0

    @property
    def progress_grace_seconds(self) -> float:
        return 30.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
