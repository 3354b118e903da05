"""
Job Orchestrator - Owns the edit job state machine and runs the pipeline.

Pipeline Flow:
1. Schedule operations (sort + partition)         5%
2. Fetch source video                            20%
3. Apply jump cuts (stream copy + concat)        50%
4. Mix audio overlays and remux                  80%
5. Upload edited video                           95%
6. Commit completed state                       100%

Submission validates synchronously and returns once the job is queued. The
pipeline runs later on the worker pool. Once a job is processing, every
failure is caught here and committed as a terminal FAILED state with a
redacted message.
"""

import asyncio
import logging
import os
import shutil
import time
import uuid
from typing import Any, Optional, Sequence
from urllib.parse import urlparse

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.config import build_preset_operations, get_editing_preset, get_settings
from app.schemas.requests import EditJobSubmitRequest, EditOperation
from app.services.audio_mixer import AudioMixer
from app.services.errors import (
    EditPipelineError,
    InvalidStateTransitionError,
    PresetNotFoundError,
    QueueFullError,
    ResourceError,
    ValidationError,
    redact_error,
)
from app.services.job_store import EditJob, JobStatus, JobStore
from app.services.media_tool import MediaTool
from app.services.media_transfer import MediaTransferService
from app.services.operation_scheduler import schedule_operations
from app.services.progress_tracker import ProgressTracker
from app.services.segment_cutter import SegmentCutter
from app.services.worker_pool import WorkerPool

logger = logging.getLogger(__name__)


CANCELLED_MESSAGE = "Job cancelled"

_operations_adapter = TypeAdapter(list[EditOperation])


def parse_operations(raw_operations: Sequence[dict[str, Any]]) -> list[EditOperation]:
    """
    Parse raw operation dicts into typed operations.

    Raises:
        ValidationError: Unknown kind, negative timestamp or malformed payload
    """
    try:
        return _operations_adapter.validate_python(list(raw_operations))
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid operations: {e.errors()[0].get('msg', str(e))}")


def validate_operations(
    operations: Sequence[EditOperation],
    duration_seconds: Optional[float] = None,
) -> None:
    """
    Check operations against the source, when its duration is known.

    Raises:
        ValidationError: An operation starts beyond the end of the source
    """
    for index, operation in enumerate(operations):
        if operation.timestamp < 0:
            raise ValidationError(f"Operation {index} has a negative timestamp")
        if duration_seconds is not None and operation.timestamp > duration_seconds:
            raise ValidationError(
                f"Operation {index} ({operation.type}) at {operation.timestamp}s is beyond "
                f"the source duration ({duration_seconds:.3f}s)"
            )


class JobOrchestrator:
    """
    Accepts edit jobs and drives them through the pipeline.

    Collaborators are injectable so tests can substitute fakes for anything
    that touches ffmpeg, the network or storage.
    """

    def __init__(
        self,
        job_store: JobStore,
        progress_tracker: ProgressTracker,
        transfer_service: Optional[MediaTransferService] = None,
        media_tool: Optional[MediaTool] = None,
        segment_cutter: Optional[SegmentCutter] = None,
        audio_mixer: Optional[AudioMixer] = None,
        worker_pool: Optional[WorkerPool] = None,
    ):
        self.settings = get_settings()
        self.job_store = job_store
        self.progress_tracker = progress_tracker
        self.transfer_service = transfer_service or MediaTransferService()
        self.media_tool = media_tool or MediaTool()
        self.segment_cutter = segment_cutter or SegmentCutter(media_tool=self.media_tool)
        self.audio_mixer = audio_mixer or AudioMixer(
            transfer_service=self.transfer_service,
            media_tool=self.media_tool,
        )
        self.worker_pool = worker_pool or WorkerPool(
            self.run,
            max_workers=self.settings.max_workers,
            max_queued=self.settings.max_queued_jobs,
        )

    async def start(self) -> None:
        await self.worker_pool.start()

    async def stop(self) -> None:
        await self.worker_pool.stop()

    # ------------------------------------------------------------------
    # Submission side
    # ------------------------------------------------------------------

    def submit(self, request: EditJobSubmitRequest) -> EditJob:
        """
        Validate a submission, persist it as QUEUED and enqueue it.

        Args:
            request: Parsed submission

        Returns:
            The queued EditJob

        Raises:
            PresetNotFoundError: Unknown preset_id
            ValidationError: Operations invalid for the submission
            QueueFullError: The worker pool is saturated (no job is created)
        """
        preset = None
        if request.preset_id:
            try:
                preset = get_editing_preset(request.preset_id)
            except ValueError:
                raise PresetNotFoundError(request.preset_id)

        job_settings = {
            "jump_cut_frequency": preset.jump_cut_frequency if preset else None,
            "music_volume": preset.music_volume if preset else self.settings.default_music_volume,
        }
        if request.settings is not None:
            overrides = request.settings.model_dump(exclude_none=True)
            job_settings.update(overrides)

        operations = list(request.operations)
        if not operations and preset is not None:
            if request.source_duration_seconds is None:
                raise ValidationError(
                    "source_duration_seconds is required to expand preset operations"
                )
            if job_settings["jump_cut_frequency"] is not None:
                preset.jump_cut_frequency = job_settings["jump_cut_frequency"]
            operations = parse_operations(
                build_preset_operations(preset, request.source_duration_seconds)
            )

        validate_operations(operations, request.source_duration_seconds)

        if not self.worker_pool.has_capacity():
            raise QueueFullError("Edit queue is full, try again later")

        job = EditJob(
            id=str(uuid.uuid4()),
            source_url=request.source_url,
            preset_id=request.preset_id,
            operations=[op.model_dump(mode="json") for op in operations],
            settings=job_settings,
            owner_user_id=request.owner_user_id,
        )
        self.job_store.create(job)

        try:
            self.worker_pool.submit(job.id)
        except QueueFullError:
            self.job_store.delete(job.id)
            raise

        logger.info(
            f"[{job.id}] Job queued: {len(operations)} operations, "
            f"preset={request.preset_id}, source={request.source_url[:100]}"
        )
        return job

    def cancel(self, job_id: str) -> EditJob:
        """
        Cancel a queued or processing job.

        The FAILED state is committed immediately. A running pipeline is then
        cancelled at its next suspension point, killing any ffmpeg child.

        Raises:
            JobNotFoundError: Unknown job
            InvalidStateTransitionError: Job already terminal
        """
        job = self.job_store.mark_failed(job_id, CANCELLED_MESSAGE)
        self.progress_tracker.fail(job_id, CANCELLED_MESSAGE)
        self.worker_pool.cancel(job_id)
        logger.info(f"[{job_id}] Job cancelled")
        return job

    def recover(self) -> list[str]:
        """Fail jobs a previous process left unfinished."""
        return self.job_store.recover_interrupted()

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    async def run(self, job_id: str) -> None:
        """
        Run one job to a terminal state. Called by the worker pool.

        Never raises for pipeline failures. CancelledError is re-raised after
        the cancellation has been committed.
        """
        job = self.job_store.find(job_id)
        if job is None or job.status != JobStatus.QUEUED:
            logger.info(f"[{job_id}] Not runnable ({job.status.value if job else 'missing'}), skipping")
            return

        started = time.time()
        work_dir = os.path.join(self.settings.temp_directory, job_id)

        try:
            job = self.job_store.mark_processing(job_id)
            try:
                os.makedirs(work_dir, exist_ok=True)
            except OSError as e:
                raise ResourceError(f"Cannot create working directory: {e}")

            output_url = await self._execute(job, work_dir, started)
            self._commit_success(job_id, output_url, started)

        except asyncio.CancelledError:
            self._commit_failure(job_id, CANCELLED_MESSAGE)
            raise
        except Exception as e:
            logger.exception(f"[{job_id}] Edit job failed: {e}")
            self._commit_failure(job_id, redact_error(e))
        finally:
            self._cleanup(work_dir)

    async def _execute(self, job: EditJob, work_dir: str, started: float) -> str:
        """Run the pipeline steps in order. Returns the published output URL."""
        self._checkpoint(job.id, 0, "Starting video processing...", started)

        # Step 1: Schedule operations
        operations = parse_operations(job.operations)
        scheduled = schedule_operations(operations)
        if scheduled.transitions:
            logger.info(
                f"[{job.id}] {len(scheduled.transitions)} transition markers recorded, not rendered"
            )
        self._checkpoint(
            job.id, 5,
            f"Scheduled {len(scheduled.cut_timestamps)} cuts and "
            f"{len(scheduled.audio_operations)} audio overlays",
            started,
        )

        # Step 2: Fetch source
        source_ext = os.path.splitext(urlparse(job.source_url).path)[1] or ".mp4"
        source_path = os.path.join(work_dir, f"source{source_ext}")
        await self.transfer_service.fetch(
            job.source_url,
            source_path,
            timeout_seconds=self.settings.download_timeout_seconds,
        )
        source_info = await self.media_tool.probe(source_path)
        validate_operations(operations, source_info.duration_seconds)
        self._checkpoint(
            job.id, 20,
            f"Source downloaded ({source_info.duration_seconds:.1f}s)",
            started,
        )

        # Step 3: Jump cuts
        cut_result = await self.segment_cutter.apply_cuts(
            source_path,
            scheduled.cut_timestamps,
            work_dir,
            source_info,
        )
        if cut_result.output_path != source_path:
            cut_info = await self.media_tool.probe(cut_result.output_path)
        else:
            cut_info = source_info
        self._checkpoint(
            job.id, 50,
            f"Applied jump cuts ({cut_result.plan.removed_seconds:.1f}s removed)",
            started,
        )

        # Step 4: Audio overlays
        mix_result = await self.audio_mixer.apply_overlays(
            cut_result.output_path,
            scheduled.audio_operations,
            work_dir,
            cut_info,
            music_volume=job.settings.get("music_volume"),
            timestamp_map=cut_result.plan.map_timestamp,
        )
        if mix_result.degraded_count:
            message = f"Mixed audio ({mix_result.degraded_count} overlays replaced with silence)"
        else:
            message = "Mixed audio"
        self._checkpoint(job.id, 80, message, started)

        # Step 5: Upload
        upload = await self.transfer_service.upload(
            mix_result.output_path,
            job.id,
            user_id=job.owner_user_id,
            timeout_seconds=self.settings.upload_timeout_seconds,
        )
        self._checkpoint(job.id, 95, "Uploaded edited video", started)

        return upload.url

    def _checkpoint(self, job_id: str, percent: float, message: str, started: float) -> None:
        remaining = None
        if 0 < percent < 100:
            elapsed = time.time() - started
            remaining = round(elapsed * (100 - percent) / percent, 1)
        self.progress_tracker.update(job_id, percent, message, remaining)

    def _commit_success(self, job_id: str, output_url: str, started: float) -> None:
        try:
            self.job_store.mark_completed(job_id, output_url)
        except InvalidStateTransitionError as e:
            logger.warning(f"[{job_id}] Finished after it was already closed: {e}")
            return
        self.progress_tracker.complete(job_id)
        logger.info(f"[{job_id}] Job completed in {time.time() - started:.1f}s: {output_url}")

    def _commit_failure(self, job_id: str, message: str) -> None:
        try:
            self.job_store.mark_failed(job_id, message)
        except InvalidStateTransitionError as e:
            # Already closed, e.g. cancelled through the API
            logger.info(f"[{job_id}] Failure not recorded: {e}")
            return
        except EditPipelineError as e:
            # Store unavailable; live readers still get the terminal event
            logger.error(f"[{job_id}] Failed to persist failure: {e}")
        self.progress_tracker.fail(job_id, message)

    @staticmethod
    def _cleanup(work_dir: str) -> None:
        if not os.path.isdir(work_dir):
            return
        try:
            shutil.rmtree(work_dir)
        except OSError as e:
            logger.warning(f"Failed to clean up {work_dir}: {e}")
