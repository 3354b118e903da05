"""
Pydantic schemas for request/response models.
"""

from app.schemas.requests import (
    EditJobSubmitRequest,
    EditOperation,
    EditSettings,
    JumpCutOperation,
    SoundEffectOperation,
    TransitionOperation,
    VoiceOverOperation,
)
from app.schemas.responses import (
    EditingPresetResponse,
    EditJobResponse,
    EditJobSubmitResponse,
    HealthResponse,
    ProgressEvent,
    ReadinessResponse,
)

__all__ = [
    "EditJobSubmitRequest",
    "EditOperation",
    "EditSettings",
    "JumpCutOperation",
    "VoiceOverOperation",
    "SoundEffectOperation",
    "TransitionOperation",
    "EditJobSubmitResponse",
    "EditJobResponse",
    "ProgressEvent",
    "EditingPresetResponse",
    "HealthResponse",
    "ReadinessResponse",
]
