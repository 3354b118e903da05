"""
Editing API Router - Submit edit jobs, follow their progress, browse presets.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from app.auth import require_editor_key
from app.config import get_available_presets, get_editing_preset
from app.schemas.requests import EditJobSubmitRequest
from app.schemas.responses import (
    EditingPresetResponse,
    EditJobResponse,
    EditJobSubmitResponse,
    ProgressEvent,
)
from app.services.errors import (
    InvalidStateTransitionError,
    JobNotFoundError,
    PresetNotFoundError,
    QueueFullError,
    ValidationError,
)
from app.services.job_orchestrator import JobOrchestrator
from app.services.job_store import EditJob, JobStatus, JobStore
from app.services.progress_stream import format_sse, stream_progress
from app.services.progress_tracker import ProgressRecord, ProgressStatus, ProgressTracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/editing", tags=["Editing"])


# ============================================================================
# Dependencies
# ============================================================================


async def get_orchestrator(request: Request) -> JobOrchestrator:
    """Get the job orchestrator from app state (initialized at startup)."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Job orchestrator not initialized",
        )
    return orchestrator


def _job_response(job: EditJob) -> EditJobResponse:
    return EditJobResponse(
        job_id=job.id,
        status=job.status.value,
        progress_percent=int(round(job.progress_percent)),
        source_url=job.source_url,
        output_url=job.output_url,
        error=job.error_message,
        preset_id=job.preset_id,
        operations=job.operations,
        settings=job.settings,
        created_at=job.created_at.isoformat(),
        started_at=job.started_at.isoformat() if job.started_at else None,
        completed_at=job.completed_at.isoformat() if job.completed_at else None,
        processing_time_seconds=job.processing_time_seconds,
    )


def _terminal_record(job_store: JobStore, job_id: str) -> Optional[ProgressRecord]:
    """Progress record rebuilt from the persisted job, for terminal jobs only."""
    job = job_store.find(job_id)
    if job is None or not job.is_terminal:
        return None
    if job.status == JobStatus.COMPLETED:
        return ProgressRecord(
            percent=100.0,
            status=ProgressStatus.COMPLETED,
            message="Video processing completed successfully",
        )
    return ProgressRecord(
        percent=0.0,
        status=ProgressStatus.FAILED,
        message=job.error_message or "Video processing failed",
    )


# ============================================================================
# Jobs
# ============================================================================


@router.post("/jobs", response_model=EditJobSubmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_edit_job(
    request: EditJobSubmitRequest,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
    _: None = Depends(require_editor_key),
) -> EditJobSubmitResponse:
    """
    Submit a new video edit job.

    The job is processed asynchronously. Follow GET /editing/jobs/{job_id}/progress
    for live updates or poll GET /editing/jobs/{job_id}.
    """
    try:
        job = orchestrator.submit(request)
    except PresetNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except QueueFullError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return EditJobSubmitResponse(job_id=job.id)


@router.get("/jobs/{job_id}", response_model=EditJobResponse)
async def get_edit_job(
    job_id: str,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
) -> EditJobResponse:
    """Get the persisted state of an edit job."""
    try:
        job = orchestrator.job_store.get(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return _job_response(job)


@router.get("/jobs", response_model=list[EditJobResponse])
async def list_edit_jobs(
    status_filter: Optional[JobStatus] = None,
    limit: int = 20,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
) -> list[EditJobResponse]:
    """
    List recent edit jobs.

    Args:
        status_filter: Filter by status (queued, processing, completed, failed)
        limit: Maximum number of jobs to return
    """
    limit = max(1, min(limit, 100))
    jobs = orchestrator.job_store.list_jobs(status=status_filter, limit=limit)
    return [_job_response(job) for job in jobs]


@router.delete("/jobs/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_edit_job(
    job_id: str,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
    _: None = Depends(require_editor_key),
) -> None:
    """
    Cancel a queued or processing job.

    The job is marked failed immediately; a running ffmpeg process is killed.
    """
    try:
        orchestrator.cancel(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidStateTransitionError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Job already {e.current_state}",
        )


@router.get(
    "/jobs/{job_id}/progress",
    response_class=StreamingResponse,
    responses={
        200: {
            "content": {"text/event-stream": {}},
            "description": "Server-Sent Events, one ProgressEvent per data frame",
            "model": ProgressEvent,
        }
    },
)
async def stream_edit_progress(
    job_id: str,
    request: Request,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    """
    Stream live progress for a job as Server-Sent Events.

    The stream ends after a completed/failed event or after five minutes.
    Disconnecting does not cancel the job.
    """
    job_store = orchestrator.job_store
    if job_store.find(job_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job not found: {job_id}",
        )

    tracker: ProgressTracker = orchestrator.progress_tracker

    async def event_stream():
        async for event in stream_progress(
            tracker,
            job_id,
            is_disconnected=request.is_disconnected,
            fallback=lambda jid: _terminal_record(job_store, jid),
        ):
            yield format_sse(event)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


# ============================================================================
# Presets
# ============================================================================


def _preset_response(preset) -> EditingPresetResponse:
    return EditingPresetResponse(
        id=preset.id,
        name=preset.name,
        description=preset.description,
        jump_cut_frequency=preset.jump_cut_frequency,
        music_volume=preset.music_volume,
        transition_style=preset.transition_style,
        sound_effects=list(preset.sound_effects),
    )


@router.get("/presets", response_model=list[EditingPresetResponse])
async def list_editing_presets() -> list[EditingPresetResponse]:
    """List all available editing presets."""
    return [_preset_response(preset) for preset in get_available_presets()]


@router.get("/presets/{preset_id}", response_model=EditingPresetResponse)
async def get_editing_preset_detail(preset_id: str) -> EditingPresetResponse:
    """Get one editing preset."""
    try:
        preset = get_editing_preset(preset_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return _preset_response(preset)
