"""
Request schemas for the editing API.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator


class OperationKind:
    """Wire identifiers for edit operation kinds."""

    JUMP_CUT = "jumpcut"
    VOICE_OVER = "voiceover"
    SOUND_EFFECT = "soundfx"
    TRANSITION = "transition"


class VoiceOverData(BaseModel):
    """Payload of a voice-over operation."""

    audio_url: str = Field(..., min_length=1, description="URI of the recorded voice-over")
    volume: int = Field(100, ge=0, le=100, description="Per-track volume (0-100)")


class SoundEffectData(BaseModel):
    """Payload of a sound effect operation."""

    file_url: str = Field(..., min_length=1, description="URI of the sound asset")
    sound_id: Optional[str] = None
    name: Optional[str] = None
    category: Optional[str] = None


class TransitionData(BaseModel):
    """Payload of a transition operation."""

    style: str = "cut"


class _OperationBase(BaseModel):
    timestamp: float = Field(..., ge=0, description="Position in the source video (seconds)")
    duration: Optional[float] = Field(None, ge=0, description="Length of the operation (seconds)")


class JumpCutOperation(_OperationBase):
    """Remove a short window around `timestamp`."""

    type: Literal["jumpcut"] = OperationKind.JUMP_CUT


class VoiceOverOperation(_OperationBase):
    """Overlay a recorded voice-over starting at `timestamp`."""

    type: Literal["voiceover"] = OperationKind.VOICE_OVER
    data: VoiceOverData


class SoundEffectOperation(_OperationBase):
    """Overlay a sound effect starting at `timestamp`."""

    type: Literal["soundfx"] = OperationKind.SOUND_EFFECT
    data: SoundEffectData


class TransitionOperation(_OperationBase):
    """Transition marker. Recorded with the job, not rendered."""

    type: Literal["transition"] = OperationKind.TRANSITION
    data: TransitionData = Field(default_factory=TransitionData)


EditOperation = Annotated[
    Union[JumpCutOperation, VoiceOverOperation, SoundEffectOperation, TransitionOperation],
    Field(discriminator="type"),
]

AudioOperation = Union[VoiceOverOperation, SoundEffectOperation]


class EditSettings(BaseModel):
    """Job-wide editing settings. Unset values fall back to the preset."""

    jump_cut_frequency: Optional[int] = Field(
        None, ge=0, le=60, description="Jump cuts per minute (used to expand presets)"
    )
    music_volume: Optional[int] = Field(
        None, ge=0, le=100, description="Overall volume applied to the mixed audio (0-100)"
    )


class EditJobSubmitRequest(BaseModel):
    """Request to submit a new video edit job.

    Supports sources reachable by URI:
    - S3 URL: s3://bucket/key or https://bucket.s3.region.amazonaws.com/key
    - Direct URL: https://example.com/video.mp4
    - Local file: file:///path/to/video.mp4 or /path/to/video.mp4
    """

    source_url: str = Field(..., min_length=1, description="URI of the source video")
    preset_id: Optional[str] = Field(
        None,
        description="Editing preset ID: 'energetic', 'chill', 'professional', 'funny', 'dramatic'.",
    )
    operations: list[EditOperation] = Field(default_factory=list)
    settings: Optional[EditSettings] = None
    source_duration_seconds: Optional[float] = Field(
        None,
        gt=0,
        description="Known source duration. Enables timestamp bounds checks and preset expansion.",
    )
    owner_user_id: Optional[str] = Field(None, description="User ID for output key scoping")

    @model_validator(mode="after")
    def validate_timestamps_within_source(self) -> "EditJobSubmitRequest":
        """Reject operations placed beyond the end of the source, when known."""
        if self.source_duration_seconds is not None:
            for index, operation in enumerate(self.operations):
                if operation.timestamp > self.source_duration_seconds:
                    raise ValueError(
                        f"Operation {index} ({operation.type}) at {operation.timestamp}s is beyond "
                        f"the source duration ({self.source_duration_seconds}s)"
                    )
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "source_url": "s3://vidcraft-media/uploads/user123/source.mp4",
                "preset_id": None,
                "operations": [
                    {"type": "jumpcut", "timestamp": 5.0},
                    {
                        "type": "soundfx",
                        "timestamp": 12.5,
                        "duration": 1.0,
                        "data": {"file_url": "https://cdn.example.com/sounds/whoosh.mp3"},
                    },
                ],
                "settings": {"jump_cut_frequency": 5, "music_volume": 70},
            }
        }
