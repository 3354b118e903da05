"""
Response schemas for the editing API.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class EditJobSubmitResponse(BaseModel):
    """Response after submitting an edit job."""

    job_id: str
    status: str = Field("processing", description="Always 'processing' for an accepted job")
    message: str = "Video is being processed. Follow the progress stream for updates."


class EditJobResponse(BaseModel):
    """Persisted state of an edit job."""

    job_id: str
    status: str = Field(..., description="queued, processing, completed or failed")
    progress_percent: int = Field(..., ge=0, le=100)
    source_url: str
    output_url: Optional[str] = None
    error: Optional[str] = None
    preset_id: Optional[str] = None
    operations: list[dict[str, Any]] = []
    settings: dict[str, Any] = {}
    created_at: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    processing_time_seconds: Optional[float] = None


class ProgressEvent(BaseModel):
    """One Server-Sent Event on the progress stream."""

    progress: int = Field(..., ge=0, le=100)
    status: str = Field(..., description="processing, completed or failed")
    message: Optional[str] = None
    estimatedTimeRemaining: Optional[float] = None


class EditingPresetResponse(BaseModel):
    """Response model for an editing preset."""

    id: str
    name: str
    description: str
    jump_cut_frequency: int
    music_volume: int
    transition_style: str
    sound_effects: list[str]


class HealthResponse(BaseModel):
    """Basic health check response."""

    status: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    worker_pool: str
    ffmpeg: str
    ffprobe: str
    active_jobs: int = 0
    queued_jobs: int = 0
