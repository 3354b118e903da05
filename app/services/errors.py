"""
Edit pipeline error types.

All errors inherit from EditPipelineError so the orchestrator can catch the
whole family at its boundary.
"""

import re


class EditPipelineError(Exception):
    """Base exception for all edit pipeline failures."""
    pass


class ValidationError(EditPipelineError):
    """Raised when a submission is malformed. No job is created."""
    pass


class TransferError(EditPipelineError):
    """Raised when fetching a source/asset or uploading the output fails."""
    pass


class ProcessingError(EditPipelineError):
    """Raised when an ffmpeg/ffprobe invocation fails or times out."""
    pass


class ResourceError(EditPipelineError):
    """Raised when working storage cannot be allocated."""
    pass


class JobNotFoundError(EditPipelineError):
    """Raised when a job cannot be found in the job store."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class InvalidStateTransitionError(EditPipelineError):
    """Raised when attempting an illegal job state transition."""

    def __init__(self, job_id: str, current_state: str, target_state: str):
        self.job_id = job_id
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Invalid state transition for job {job_id}: "
            f"{current_state} -> {target_state}"
        )


class PresetNotFoundError(ValidationError):
    """Raised when a submission names an unknown editing preset."""

    def __init__(self, preset_id: str):
        self.preset_id = preset_id
        super().__init__(f"Unknown editing preset: {preset_id}")


class QueueFullError(EditPipelineError):
    """Raised when the worker pool cannot accept more submissions."""
    pass


_URL_SECRET_RE = re.compile(r"(https?://)[^/\s@]+@")
_URL_QUERY_RE = re.compile(r"(https?://[^\s?]+)\?\S*")
_PATH_RE = re.compile(r"(?<![\w:/])(?:/[\w.\-]+){2,}")

MAX_ERROR_MESSAGE_LENGTH = 500


def redact_error(error: BaseException) -> str:
    """
    Build a user-facing message for a failed job.

    Strips URL credentials, presigned query strings and absolute local paths,
    then truncates.
    """
    message = str(error) or error.__class__.__name__
    message = _URL_SECRET_RE.sub(r"\1", message)
    message = _URL_QUERY_RE.sub(r"\1", message)
    message = _PATH_RE.sub("<path>", message)
    if len(message) > MAX_ERROR_MESSAGE_LENGTH:
        message = message[: MAX_ERROR_MESSAGE_LENGTH - 3] + "..."
    return message
