"""
Progress Stream - Polls the progress tracker and yields events for one consumer.

The generator ends when it emits a terminal record, when its lifetime cap is
reached, or when the consumer disconnects. Ending the stream never touches the
job itself.
"""

import asyncio
import dataclasses
import json
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from app.config import get_settings
from app.services.progress_tracker import ProgressRecord, ProgressStatus, ProgressTracker

logger = logging.getLogger(__name__)


INITIAL_MESSAGE = "Starting video processing..."
WAITING_MESSAGE = "Waiting for processing to start..."


async def stream_progress(
    tracker: ProgressTracker,
    job_id: str,
    *,
    poll_interval: Optional[float] = None,
    max_duration: Optional[float] = None,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    fallback: Optional[Callable[[str], Optional[ProgressRecord]]] = None,
    clock: Callable[[], float] = time.monotonic,
) -> AsyncIterator[dict[str, Any]]:
    """
    Yield progress events for a job until it finishes.

    Args:
        tracker: Source of live progress records
        job_id: Job to follow
        poll_interval: Seconds between snapshots (default 0.5)
        max_duration: Stream lifetime cap in seconds (default 300)
        is_disconnected: Async predicate, true once the consumer has gone away
        fallback: Looks up a terminal record from durable storage when the live
            record is absent (expired or lost on restart)
        clock: Monotonic clock, injectable for tests

    Yields:
        Event dicts: {"progress", "status", "message"?, "estimatedTimeRemaining"?}
    """
    settings = get_settings()
    if poll_interval is None:
        poll_interval = settings.progress_poll_interval_seconds
    if max_duration is None:
        max_duration = settings.progress_stream_max_seconds

    deadline = clock() + max_duration
    highest_percent = 0.0
    placeholder_message = INITIAL_MESSAGE

    while True:
        if is_disconnected is not None and await is_disconnected():
            logger.info(f"[{job_id}] Progress consumer disconnected")
            return

        record = tracker.read(job_id)
        if record is None and fallback is not None:
            record = fallback(job_id)
        if record is None:
            record = ProgressRecord(
                percent=0.0,
                status=ProgressStatus.PROCESSING,
                message=placeholder_message,
            )
        placeholder_message = WAITING_MESSAGE

        if not record.is_terminal:
            highest_percent = max(highest_percent, record.percent)
            if record.percent < highest_percent:
                record = dataclasses.replace(record, percent=highest_percent)

        yield record.to_event()

        if record.is_terminal:
            logger.debug(f"[{job_id}] Progress stream finished: {record.status.value}")
            return

        if clock() >= deadline:
            logger.info(f"[{job_id}] Progress stream reached its {max_duration:.0f}s limit")
            return

        await asyncio.sleep(poll_interval)


def format_sse(event: dict[str, Any]) -> str:
    """Encode one event as a Server-Sent Events data frame."""
    return f"data: {json.dumps(event)}\n\n"
