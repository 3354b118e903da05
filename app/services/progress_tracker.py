"""
Progress Tracker - Low-latency, ephemeral progress records for edit jobs.

Records live in a pluggable ProgressStore. The default store is an in-process
map with per-key expiry; terminal records expire after a grace period so late
stream subscribers can still observe the outcome.

The job store remains authoritative for job status. This tracker only mirrors
checkpoint percentages into it.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from app.config import get_settings
from app.services.errors import EditPipelineError

logger = logging.getLogger(__name__)


class ProgressStatus(str, Enum):
    """Status reported on the progress channel."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_PROGRESS_STATES = frozenset({ProgressStatus.COMPLETED, ProgressStatus.FAILED})


@dataclass(frozen=True)
class ProgressRecord:
    """Snapshot of a job's live progress."""

    percent: float
    status: ProgressStatus
    message: Optional[str] = None
    estimated_remaining_seconds: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PROGRESS_STATES

    def to_event(self) -> dict[str, Any]:
        """Serialize to the wire shape used by the progress stream."""
        event: dict[str, Any] = {
            "progress": int(round(self.percent)),
            "status": self.status.value,
        }
        if self.message is not None:
            event["message"] = self.message
        if self.estimated_remaining_seconds is not None:
            event["estimatedTimeRemaining"] = self.estimated_remaining_seconds
        return event


class ProgressStore(ABC):
    """Key-value store for progress records with optional per-key expiry."""

    @abstractmethod
    def get(self, job_id: str) -> Optional[ProgressRecord]:
        ...

    @abstractmethod
    def set(self, job_id: str, record: ProgressRecord, ttl_seconds: Optional[float] = None) -> None:
        ...

    @abstractmethod
    def delete(self, job_id: str) -> None:
        ...


class InMemoryProgressStore(ProgressStore):
    """
    Single-process progress store.

    Expired entries are purged lazily on access, so no background timer is
    needed. The clock is injectable for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._records: dict[str, tuple[ProgressRecord, Optional[float]]] = {}
        self._lock = threading.Lock()

    def get(self, job_id: str) -> Optional[ProgressRecord]:
        with self._lock:
            entry = self._records.get(job_id)
            if entry is None:
                return None
            record, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._records[job_id]
                return None
            return record

    def set(self, job_id: str, record: ProgressRecord, ttl_seconds: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
        with self._lock:
            self._records[job_id] = (record, expires_at)
            self._purge_expired()

    def delete(self, job_id: str) -> None:
        with self._lock:
            self._records.pop(job_id, None)

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._records)

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [
            job_id
            for job_id, (_, expires_at) in self._records.items()
            if expires_at is not None and now >= expires_at
        ]
        for job_id in expired:
            del self._records[job_id]


class ProgressTracker:
    """
    Writes and reads per-job progress.

    - Percent is clamped to 0-100 and never decreases while processing
    - Writes after a terminal record are ignored
    - Terminal writes always win and expire after the grace period
    """

    def __init__(
        self,
        store: Optional[ProgressStore] = None,
        job_store=None,
        grace_seconds: Optional[float] = None,
    ):
        settings = get_settings()
        self.store = store or InMemoryProgressStore()
        self.job_store = job_store
        self.grace_seconds = (
            grace_seconds if grace_seconds is not None else settings.progress_grace_seconds
        )

    def update(
        self,
        job_id: str,
        percent: float,
        message: Optional[str] = None,
        estimated_remaining_seconds: Optional[float] = None,
    ) -> ProgressRecord:
        """Record a non-terminal checkpoint. Returns the record now stored."""
        percent = min(100.0, max(0.0, float(percent)))
        current = self.store.get(job_id)

        if current is not None:
            if current.is_terminal:
                logger.debug(f"[{job_id}] Ignoring progress update after {current.status.value}")
                return current
            percent = max(percent, current.percent)

        record = ProgressRecord(
            percent=percent,
            status=ProgressStatus.PROCESSING,
            message=message,
            estimated_remaining_seconds=estimated_remaining_seconds,
        )
        self.store.set(job_id, record)
        self._mirror_percent(job_id, percent)
        logger.debug(f"[{job_id}] {percent:.0f}% - {message}")
        return record

    def complete(self, job_id: str, message: Optional[str] = None) -> ProgressRecord:
        record = ProgressRecord(
            percent=100.0,
            status=ProgressStatus.COMPLETED,
            message=message or "Video processing completed successfully",
        )
        self.store.set(job_id, record, ttl_seconds=self.grace_seconds)
        return record

    def fail(self, job_id: str, message: Optional[str] = None) -> ProgressRecord:
        record = ProgressRecord(
            percent=0.0,
            status=ProgressStatus.FAILED,
            message=message or "Video processing failed",
        )
        self.store.set(job_id, record, ttl_seconds=self.grace_seconds)
        return record

    def read(self, job_id: str) -> Optional[ProgressRecord]:
        """Current record, or None when unknown or expired."""
        return self.store.get(job_id)

    def _mirror_percent(self, job_id: str, percent: float) -> None:
        if self.job_store is None:
            return
        try:
            self.job_store.update_progress(job_id, percent)
        except EditPipelineError as e:
            logger.warning(f"[{job_id}] Failed to persist progress: {e}")
