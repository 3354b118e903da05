"""
Segment Cutter - Removes jump-cut windows and losslessly stitches the rest.

The planning half (windows, merge, keep-segments) is pure and works on plain
floats in seconds. The execution half extracts each keep-segment with stream
copy and joins them with the ffmpeg concat demuxer, so codec data and frame
order are preserved.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional, Sequence

from app.config import get_settings
from app.services.errors import ProcessingError
from app.services.media_tool import MediaInfo, MediaTool

logger = logging.getLogger(__name__)

Interval = tuple[float, float]

# Containers that benefit from moving the moov atom to the front
_FASTSTART_EXTENSIONS = {".mp4", ".mov", ".m4v"}


@dataclass
class CutPlan:
    """Merged cut windows and the keep-segments they leave behind."""

    duration_seconds: float
    windows: list[Interval] = field(default_factory=list)
    keep_segments: list[Interval] = field(default_factory=list)

    @property
    def is_passthrough(self) -> bool:
        return not self.windows

    @property
    def removed_seconds(self) -> float:
        return sum(end - start for start, end in self.windows)

    @property
    def kept_seconds(self) -> float:
        return sum(end - start for start, end in self.keep_segments)

    def map_timestamp(self, timestamp: float) -> float:
        """
        Map a source timestamp onto the cut timeline.

        A timestamp inside a removed window lands where that window was spliced.
        """
        removed_before = 0.0
        for start, end in self.windows:
            if timestamp >= end:
                removed_before += end - start
            elif timestamp > start:
                return max(0.0, start - removed_before)
            else:
                break
        return min(max(0.0, timestamp - removed_before), self.kept_seconds)


@dataclass
class CutResult:
    """Result of applying jump cuts."""

    output_path: str
    plan: CutPlan
    segment_count: int = 0


def compute_cut_windows(
    cut_timestamps: Sequence[float],
    duration_seconds: float,
    margin_seconds: float,
) -> list[Interval]:
    """
    Build [t - margin, t + margin] around every cut, clamped to [0, duration].

    Windows that are empty after clamping (cut at or past the end) are dropped.
    """
    windows = []
    for timestamp in cut_timestamps:
        start = max(0.0, timestamp - margin_seconds)
        end = min(duration_seconds, timestamp + margin_seconds)
        if end > start:
            windows.append((start, end))
    return windows


def merge_windows(windows: Sequence[Interval], min_gap_seconds: float = 0.0) -> list[Interval]:
    """
    Merge overlapping or touching windows into maximal disjoint windows.

    Windows separated by less than `min_gap_seconds` are merged as well, so the
    sliver between them never becomes a keep-segment.
    """
    merged: list[Interval] = []
    for start, end in sorted(windows):
        if merged:
            last_start, last_end = merged[-1]
            if start <= last_end or start - last_end < min_gap_seconds:
                merged[-1] = (last_start, max(last_end, end))
                continue
        merged.append((start, end))
    return merged


def plan_cuts(
    cut_timestamps: Sequence[float],
    duration_seconds: float,
    margin_seconds: float,
    min_segment_seconds: float = 0.0,
) -> CutPlan:
    """
    Plan the keep-segments for a set of cut timestamps.

    Args:
        cut_timestamps: Cut positions in seconds (any order)
        duration_seconds: Source duration D
        margin_seconds: Half-width of each cut window
        min_segment_seconds: Shortest keep-segment worth extracting (one frame)

    Returns:
        CutPlan whose keep-segments are the complement of the merged windows
        within [0, D]. sum(keep) == D - sum(windows).
    """
    if duration_seconds <= 0:
        raise ValueError(f"Duration must be positive, got {duration_seconds}")

    windows = merge_windows(
        compute_cut_windows(cut_timestamps, duration_seconds, margin_seconds),
        min_gap_seconds=min_segment_seconds,
    )

    # Absorb sub-frame slivers at either edge of the video
    if windows:
        first_start, first_end = windows[0]
        if 0.0 < first_start < min_segment_seconds:
            windows[0] = (0.0, first_end)
        last_start, last_end = windows[-1]
        if 0.0 < duration_seconds - last_end < min_segment_seconds:
            windows[-1] = (last_start, duration_seconds)

    keep_segments: list[Interval] = []
    cursor = 0.0
    for start, end in windows:
        if start > cursor:
            keep_segments.append((cursor, start))
        cursor = max(cursor, end)
    if cursor < duration_seconds:
        keep_segments.append((cursor, duration_seconds))

    return CutPlan(
        duration_seconds=duration_seconds,
        windows=windows,
        keep_segments=keep_segments,
    )


class SegmentCutter:
    """
    Service for applying jump cuts with ffmpeg stream copy.

    Features:
    - Interval planning with margin, merge and sub-frame guard
    - Lossless extraction of keep-segments (-c copy)
    - Concat demuxer join preserving codec and frame order
    - Passthrough (no ffmpeg call) when there is nothing to cut
    """

    def __init__(
        self,
        media_tool: Optional[MediaTool] = None,
        margin_seconds: Optional[float] = None,
    ):
        self.settings = get_settings()
        self.media_tool = media_tool or MediaTool()
        self.margin_seconds = (
            margin_seconds if margin_seconds is not None else self.settings.cut_margin_seconds
        )

    def plan(self, cut_timestamps: Sequence[float], media_info: MediaInfo) -> CutPlan:
        """Plan cuts for a probed source, using one frame as the minimum segment."""
        return plan_cuts(
            cut_timestamps,
            duration_seconds=media_info.duration_seconds,
            margin_seconds=self.margin_seconds,
            min_segment_seconds=media_info.frame_duration_seconds,
        )

    async def apply_cuts(
        self,
        input_path: str,
        cut_timestamps: Sequence[float],
        work_dir: str,
        media_info: MediaInfo,
    ) -> CutResult:
        """
        Remove a window around every cut timestamp and join the remainder.

        Args:
            input_path: Source video
            cut_timestamps: Ordered cut positions (seconds)
            work_dir: Job-owned working directory
            media_info: Probe result for input_path

        Returns:
            CutResult. On passthrough, output_path is input_path itself.

        Raises:
            ProcessingError: Cuts would remove the whole video, or ffmpeg failed
        """
        plan = self.plan(cut_timestamps, media_info)

        if plan.is_passthrough:
            logger.info("No cut windows inside the video - passing source through")
            return CutResult(output_path=input_path, plan=plan)

        if not plan.keep_segments:
            raise ProcessingError("Jump cuts remove the entire video")

        logger.info(
            f"Applying {len(cut_timestamps)} cuts: {len(plan.windows)} merged windows, "
            f"{len(plan.keep_segments)} keep-segments, "
            f"{plan.removed_seconds:.2f}s removed of {plan.duration_seconds:.2f}s"
        )

        ext = os.path.splitext(input_path)[1] or ".mp4"
        segments_dir = os.path.join(work_dir, "segments")
        os.makedirs(segments_dir, exist_ok=True)

        segment_paths = []
        for i, (start, end) in enumerate(plan.keep_segments):
            segment_path = os.path.join(segments_dir, f"segment_{i:03d}{ext}")
            await self._extract_segment(input_path, segment_path, start, end - start)
            segment_paths.append(segment_path)

        output_path = os.path.join(work_dir, f"cut{ext}")
        await self._concat_segments(segment_paths, output_path, work_dir)

        if not os.path.isfile(output_path):
            raise ProcessingError("Concatenation finished but output file was not created")

        return CutResult(
            output_path=output_path,
            plan=plan,
            segment_count=len(segment_paths),
        )

    async def _extract_segment(
        self,
        input_path: str,
        output_path: str,
        start_seconds: float,
        duration_seconds: float,
    ) -> None:
        """Extract one keep-segment without re-encoding."""
        if duration_seconds <= 0:
            raise ProcessingError(
                f"Refusing to extract non-positive segment at {start_seconds:.3f}s"
            )

        await self.media_tool.ffmpeg(
            [
                "-ss", f"{start_seconds:.6f}",
                "-i", input_path,
                "-t", f"{duration_seconds:.6f}",
                "-map", "0",
                "-c", "copy",
                "-avoid_negative_ts", "make_zero",
                output_path,
            ],
            f"Segment extraction at {start_seconds:.3f}s",
        )

    async def _concat_segments(
        self,
        segment_paths: list[str],
        output_path: str,
        work_dir: str,
    ) -> None:
        """Join extracted segments in order with the concat demuxer."""
        if not segment_paths:
            raise ProcessingError("No segments to concatenate")

        concat_list_path = os.path.join(work_dir, "concat.txt")
        with open(concat_list_path, "w", encoding="utf-8") as f:
            for path in segment_paths:
                escaped = os.path.abspath(path).replace("'", "'\\''")
                f.write(f"file '{escaped}'\n")

        args = [
            "-f", "concat",
            "-safe", "0",
            "-i", concat_list_path,
            "-c", "copy",
        ]
        if os.path.splitext(output_path)[1].lower() in _FASTSTART_EXTENSIONS:
            args.extend(["-movflags", "+faststart"])
        args.append(output_path)

        await self.media_tool.ffmpeg(args, "Segment concatenation")
