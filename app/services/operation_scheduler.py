"""
Operation Scheduler - Orders and partitions a job's edit operations.
"""

from dataclasses import dataclass, field
from typing import Sequence

from app.schemas.requests import (
    AudioOperation,
    EditOperation,
    JumpCutOperation,
    SoundEffectOperation,
    TransitionOperation,
    VoiceOverOperation,
)


@dataclass
class ScheduledOperations:
    """Operations split by the component that applies them, each in timestamp order."""

    cut_timestamps: list[float] = field(default_factory=list)
    audio_operations: list[AudioOperation] = field(default_factory=list)
    transitions: list[TransitionOperation] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.cut_timestamps) + len(self.audio_operations) + len(self.transitions)


def sort_operations(operations: Sequence[EditOperation]) -> list[EditOperation]:
    """Sort by timestamp ascending. Ties keep submission order (sorted() is stable)."""
    return sorted(operations, key=lambda op: op.timestamp)


def schedule_operations(operations: Sequence[EditOperation]) -> ScheduledOperations:
    """
    Normalize a raw operation list into ordered cut and audio sequences.

    Nothing is dropped or deduplicated. Negative timestamps never reach this
    point; they are rejected when the job is submitted.

    Args:
        operations: Operations in submission order

    Returns:
        ScheduledOperations with cut timestamps, audio operations and transitions
    """
    scheduled = ScheduledOperations()

    for operation in sort_operations(operations):
        if isinstance(operation, JumpCutOperation):
            scheduled.cut_timestamps.append(operation.timestamp)
        elif isinstance(operation, (VoiceOverOperation, SoundEffectOperation)):
            scheduled.audio_operations.append(operation)
        elif isinstance(operation, TransitionOperation):
            scheduled.transitions.append(operation)
        else:
            raise TypeError(f"Unsupported operation: {operation!r}")

    return scheduled
