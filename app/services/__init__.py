"""
Services for the editing pipeline.

Includes:
- Media services (transfer, ffmpeg/ffprobe runner, segment cutter, audio mixer)
- Job services (scheduler, job store, worker pool, orchestrator)
- Progress services (tracker, stream)
"""

from app.services.audio_mixer import AudioMixer
from app.services.job_orchestrator import JobOrchestrator
from app.services.job_store import EditJob, JobStatus, JobStore
from app.services.media_tool import MediaInfo, MediaTool
from app.services.media_transfer import MediaTransferService
from app.services.operation_scheduler import ScheduledOperations, schedule_operations
from app.services.progress_stream import stream_progress
from app.services.progress_tracker import (
    InMemoryProgressStore,
    ProgressRecord,
    ProgressStore,
    ProgressTracker,
)
from app.services.segment_cutter import CutPlan, SegmentCutter, plan_cuts
from app.services.worker_pool import WorkerPool

__all__ = [
    # Media
    "MediaTransferService",
    "MediaTool",
    "MediaInfo",
    "SegmentCutter",
    "CutPlan",
    "plan_cuts",
    "AudioMixer",
    # Jobs
    "ScheduledOperations",
    "schedule_operations",
    "EditJob",
    "JobStatus",
    "JobStore",
    "WorkerPool",
    "JobOrchestrator",
    # Progress
    "ProgressStore",
    "InMemoryProgressStore",
    "ProgressRecord",
    "ProgressTracker",
    "stream_progress",
]
