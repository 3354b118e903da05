"""
Health check endpoints for the editing service.
"""

from fastapi import APIRouter, Request

from app.schemas.responses import HealthResponse, ReadinessResponse
from app.services.media_tool import MediaTool

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Basic health check endpoint.

    Returns 200 if the service is running.
    """
    return HealthResponse(
        status="healthy",
        version="1.0.0",
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request):
    """
    Readiness check endpoint.

    Returns whether the service is ready to accept edit jobs.
    Checks that the worker pool is running and ffmpeg/ffprobe are installed.
    """
    orchestrator = getattr(request.app.state, "orchestrator", None)
    pool = orchestrator.worker_pool if orchestrator is not None else None

    pool_ready = pool is not None and pool.is_running
    ffmpeg_ready = MediaTool.is_available("ffmpeg")
    ffprobe_ready = MediaTool.is_available("ffprobe")

    return ReadinessResponse(
        ready=pool_ready and ffmpeg_ready and ffprobe_ready,
        worker_pool="running" if pool_ready else "stopped",
        ffmpeg="available" if ffmpeg_ready else "missing",
        ffprobe="available" if ffprobe_ready else "missing",
        active_jobs=pool.active_count if pool else 0,
        queued_jobs=pool.queued_count if pool else 0,
    )
