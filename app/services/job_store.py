"""
Job Store - SQLite persistence for edit jobs.

Every state transition is written immediately so status, output URL and error
message survive a process restart. Live progress granularity does not; only
the last mirrored percent is kept.

Job lifecycle: QUEUED -> PROCESSING -> COMPLETED | FAILED
A queued job may also go straight to FAILED (cancelled, or interrupted by a
restart). Terminal states are immutable.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, FrozenSet, Optional, Set, Tuple

from app.services.errors import InvalidStateTransitionError, JobNotFoundError, ResourceError

logger = logging.getLogger(__name__)


SCHEMA_VERSION = 1


class JobStatus(str, Enum):
    """Durable job status."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_JOB_STATES: FrozenSet[JobStatus] = frozenset({
    JobStatus.COMPLETED,
    JobStatus.FAILED,
})

_JOB_TRANSITIONS: Set[Tuple[JobStatus, JobStatus]] = {
    (JobStatus.QUEUED, JobStatus.PROCESSING),
    (JobStatus.QUEUED, JobStatus.FAILED),
    (JobStatus.PROCESSING, JobStatus.COMPLETED),
    (JobStatus.PROCESSING, JobStatus.FAILED),
}


def is_job_terminal(status: JobStatus) -> bool:
    return status in TERMINAL_JOB_STATES


def can_transition_job(from_status: JobStatus, to_status: JobStatus) -> bool:
    """
    Check if a job state transition is legal.

    Terminal states cannot transition to any other state, including themselves.
    """
    if is_job_terminal(from_status):
        return False
    return (from_status, to_status) in _JOB_TRANSITIONS


@dataclass
class EditJob:
    """Durable record of one edit job."""

    id: str
    source_url: str
    status: JobStatus = JobStatus.QUEUED
    output_url: Optional[str] = None
    preset_id: Optional[str] = None
    operations: list[dict[str, Any]] = field(default_factory=list)
    settings: dict[str, Any] = field(default_factory=dict)
    progress_percent: float = 0.0
    error_message: Optional[str] = None
    owner_user_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    processing_time_seconds: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return is_job_terminal(self.status)


class JobStore:
    """
    Manages SQLite persistence for edit jobs.

    A connection is opened per operation, so the store can be shared between
    the event loop and worker threads.
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize the job store.

        Args:
            db_path: Path to SQLite database file (defaults to ./vidcraft_jobs.db)
        """
        if db_path is None:
            db_path = str(Path.cwd() / "vidcraft_jobs.db")

        self.db_path = db_path
        parent = Path(db_path).parent
        parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @contextmanager
    def _connect(self):
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise ResourceError(f"Job store operation failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self):
        """Create schema if it doesn't exist."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
            """)
            cursor.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1")
            row = cursor.fetchone()
            current_version = row[0] if row else 0

            if current_version < 1:
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS edit_jobs (
                        id TEXT PRIMARY KEY,
                        status TEXT NOT NULL,
                        source_url TEXT NOT NULL,
                        output_url TEXT,
                        preset_id TEXT,
                        operations TEXT NOT NULL,
                        settings TEXT NOT NULL,
                        progress_percent REAL NOT NULL DEFAULT 0,
                        error_message TEXT,
                        owner_user_id TEXT,
                        created_at TEXT NOT NULL,
                        started_at TEXT,
                        completed_at TEXT,
                        processing_time_seconds REAL
                    )
                """)
                cursor.execute("""
                    CREATE INDEX IF NOT EXISTS idx_edit_jobs_status
                    ON edit_jobs (status)
                """)
                cursor.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, datetime.utcnow().isoformat()),
                )

    # Reads

    def find(self, job_id: str) -> Optional[EditJob]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM edit_jobs WHERE id = ?", (job_id,)).fetchone()
        return self._row_to_job(row) if row else None

    def get(self, job_id: str) -> EditJob:
        job = self.find(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(self, status: Optional[JobStatus] = None, limit: int = 20) -> list[EditJob]:
        """Most recent jobs first, optionally filtered by status."""
        query = "SELECT * FROM edit_jobs"
        params: tuple = ()
        if status is not None:
            query += " WHERE status = ?"
            params = (JobStatus(status).value,)
        query += " ORDER BY created_at DESC LIMIT ?"
        params += (limit,)

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_job(row) for row in rows]

    # Writes

    def create(self, job: EditJob) -> EditJob:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO edit_jobs (
                    id, status, source_url, output_url, preset_id, operations, settings,
                    progress_percent, error_message, owner_user_id, created_at,
                    started_at, completed_at, processing_time_seconds
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    job.id,
                    job.status.value,
                    job.source_url,
                    job.output_url,
                    job.preset_id,
                    json.dumps(job.operations),
                    json.dumps(job.settings),
                    job.progress_percent,
                    job.error_message,
                    job.owner_user_id,
                    job.created_at.isoformat(),
                    _isoformat(job.started_at),
                    _isoformat(job.completed_at),
                    job.processing_time_seconds,
                ),
            )
        logger.debug(f"[{job.id}] Job record created ({job.status.value})")
        return job

    def delete(self, job_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM edit_jobs WHERE id = ?", (job_id,))

    def mark_processing(self, job_id: str) -> EditJob:
        return self._transition(
            job_id,
            JobStatus.PROCESSING,
            started_at=datetime.utcnow().isoformat(),
        )

    def mark_completed(self, job_id: str, output_url: str) -> EditJob:
        return self._transition(
            job_id,
            JobStatus.COMPLETED,
            output_url=output_url,
            progress_percent=100.0,
        )

    def mark_failed(self, job_id: str, error_message: str) -> EditJob:
        return self._transition(job_id, JobStatus.FAILED, error_message=error_message)

    def update_progress(self, job_id: str, percent: float) -> None:
        """Mirror a live percent onto a processing job. Never lowers it."""
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE edit_jobs SET progress_percent = ?
                WHERE id = ? AND status = ? AND progress_percent < ?
                """,
                (percent, job_id, JobStatus.PROCESSING.value, percent),
            )

    def recover_interrupted(self, message: str = "Interrupted by service restart") -> list[str]:
        """
        Fail jobs left queued or processing by a previous process.

        Returns:
            IDs of the jobs that were failed
        """
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id FROM edit_jobs WHERE status IN (?, ?)",
                (JobStatus.QUEUED.value, JobStatus.PROCESSING.value),
            ).fetchall()

        recovered = []
        for row in rows:
            try:
                self.mark_failed(row["id"], message)
                recovered.append(row["id"])
            except InvalidStateTransitionError as e:
                logger.warning(f"Skipping recovery of {row['id']}: {e}")

        if recovered:
            logger.warning(f"Marked {len(recovered)} interrupted jobs as failed")
        return recovered

    def _transition(self, job_id: str, target: JobStatus, **fields: Any) -> EditJob:
        """
        Apply a validated state transition.

        The UPDATE is conditioned on the status that was read, so a concurrent
        writer cannot slip a second transition in between.
        """
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM edit_jobs WHERE id = ?", (job_id,)).fetchone()
            if row is None:
                raise JobNotFoundError(job_id)

            current = JobStatus(row["status"])
            if not can_transition_job(current, target):
                raise InvalidStateTransitionError(job_id, current.value, target.value)

            if is_job_terminal(target):
                now = datetime.utcnow()
                fields["completed_at"] = now.isoformat()
                if row["started_at"]:
                    started = datetime.fromisoformat(row["started_at"])
                    fields["processing_time_seconds"] = round(
                        (now - started).total_seconds(), 3
                    )

            fields["status"] = target.value
            assignments = ", ".join(f"{name} = ?" for name in fields)
            cursor = conn.execute(
                f"UPDATE edit_jobs SET {assignments} WHERE id = ? AND status = ?",
                (*fields.values(), job_id, current.value),
            )
            if cursor.rowcount != 1:
                raise InvalidStateTransitionError(job_id, current.value, target.value)

            row = conn.execute("SELECT * FROM edit_jobs WHERE id = ?", (job_id,)).fetchone()

        logger.info(f"[{job_id}] {current.value} -> {target.value}")
        return self._row_to_job(row)

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> EditJob:
        return EditJob(
            id=row["id"],
            status=JobStatus(row["status"]),
            source_url=row["source_url"],
            output_url=row["output_url"],
            preset_id=row["preset_id"],
            operations=json.loads(row["operations"]),
            settings=json.loads(row["settings"]),
            progress_percent=row["progress_percent"],
            error_message=row["error_message"],
            owner_user_id=row["owner_user_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            started_at=_parse_datetime(row["started_at"]),
            completed_at=_parse_datetime(row["completed_at"]),
            processing_time_seconds=row["processing_time_seconds"],
        )


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None
