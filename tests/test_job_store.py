"""
Tests for SQLite job persistence and the job state machine.
"""

from datetime import datetime, timedelta

import pytest

from app.services.errors import InvalidStateTransitionError, JobNotFoundError
from app.services.job_store import (
    EditJob,
    JobStatus,
    JobStore,
    can_transition_job,
    is_job_terminal,
)


def _job(job_id="job-1", **kwargs):
    return EditJob(
        id=job_id,
        source_url="s3://vidcraft-media/uploads/source.mp4",
        operations=[{"type": "jumpcut", "timestamp": 5.0, "duration": None}],
        settings={"jump_cut_frequency": 3, "music_volume": 50},
        **kwargs,
    )


class TestTransitions:
    """Tests for transition rules."""

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (JobStatus.QUEUED, JobStatus.PROCESSING),
            (JobStatus.QUEUED, JobStatus.FAILED),
            (JobStatus.PROCESSING, JobStatus.COMPLETED),
            (JobStatus.PROCESSING, JobStatus.FAILED),
        ],
    )
    def test_legal(self, from_status, to_status):
        assert can_transition_job(from_status, to_status)

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (JobStatus.QUEUED, JobStatus.COMPLETED),
            (JobStatus.PROCESSING, JobStatus.QUEUED),
            (JobStatus.COMPLETED, JobStatus.FAILED),
            (JobStatus.FAILED, JobStatus.PROCESSING),
            (JobStatus.FAILED, JobStatus.FAILED),
        ],
    )
    def test_illegal(self, from_status, to_status):
        assert not can_transition_job(from_status, to_status)

    def test_terminal_states(self):
        assert is_job_terminal(JobStatus.COMPLETED)
        assert is_job_terminal(JobStatus.FAILED)
        assert not is_job_terminal(JobStatus.QUEUED)


class TestJobStore:
    """Tests for JobStore."""

    def test_create_and_get(self, job_store):
        job_store.create(_job(owner_user_id="user-7", preset_id="chill"))
        job = job_store.get("job-1")

        assert job.status == JobStatus.QUEUED
        assert job.operations[0]["timestamp"] == 5.0
        assert job.settings["music_volume"] == 50
        assert job.owner_user_id == "user-7"
        assert job.preset_id == "chill"
        assert isinstance(job.created_at, datetime)

    def test_get_unknown(self, job_store):
        with pytest.raises(JobNotFoundError):
            job_store.get("missing")
        assert job_store.find("missing") is None

    def test_full_lifecycle(self, job_store):
        job_store.create(_job())
        processing = job_store.mark_processing("job-1")
        assert processing.status == JobStatus.PROCESSING
        assert processing.started_at is not None

        job_store.update_progress("job-1", 50)
        assert job_store.get("job-1").progress_percent == 50

        done = job_store.mark_completed("job-1", "https://bucket.s3.us-east-1.amazonaws.com/out.mp4")
        assert done.status == JobStatus.COMPLETED
        assert done.output_url.endswith("out.mp4")
        assert done.progress_percent == 100
        assert done.completed_at is not None
        assert done.processing_time_seconds is not None

    def test_terminal_is_immutable(self, job_store):
        job_store.create(_job())
        job_store.mark_processing("job-1")
        job_store.mark_failed("job-1", "Segment extraction failed")

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            job_store.mark_completed("job-1", "s3://x/y.mp4")
        assert exc_info.value.current_state == "failed"

        job = job_store.get("job-1")
        assert job.status == JobStatus.FAILED
        assert job.output_url is None
        assert job.error_message == "Segment extraction failed"

    def test_progress_not_written_outside_processing(self, job_store):
        job_store.create(_job())
        job_store.update_progress("job-1", 40)
        assert job_store.get("job-1").progress_percent == 0

    def test_progress_never_lowered(self, job_store):
        job_store.create(_job())
        job_store.mark_processing("job-1")
        job_store.update_progress("job-1", 80)
        job_store.update_progress("job-1", 20)
        assert job_store.get("job-1").progress_percent == 80

    def test_list_jobs(self, job_store):
        base = datetime(2026, 1, 1, 12, 0, 0)
        for index in range(3):
            job_store.create(_job(f"job-{index}", created_at=base + timedelta(minutes=index)))
        job_store.mark_processing("job-1")

        assert [job.id for job in job_store.list_jobs()] == ["job-2", "job-1", "job-0"]
        assert [job.id for job in job_store.list_jobs(limit=1)] == ["job-2"]
        assert [job.id for job in job_store.list_jobs(status=JobStatus.PROCESSING)] == ["job-1"]
        assert len(job_store.list_jobs(status=JobStatus.QUEUED)) == 2

    def test_survives_reopen(self, tmp_path):
        path = str(tmp_path / "persist.db")
        JobStore(path).create(_job())
        assert JobStore(path).get("job-1").source_url.startswith("s3://")

    def test_recover_interrupted(self, job_store):
        job_store.create(_job("queued"))
        job_store.create(_job("running"))
        job_store.create(_job("done"))
        job_store.mark_processing("running")
        job_store.mark_processing("done")
        job_store.mark_completed("done", "s3://x/out.mp4")

        recovered = job_store.recover_interrupted()

        assert sorted(recovered) == ["queued", "running"]
        assert job_store.get("queued").error_message == "Interrupted by service restart"
        assert job_store.get("running").status == JobStatus.FAILED
        assert job_store.get("done").status == JobStatus.COMPLETED

    def test_delete(self, job_store):
        job_store.create(_job())
        job_store.delete("job-1")
        assert job_store.find("job-1") is None
