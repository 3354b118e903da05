"""
Audio Mixer - Overlays timestamped voice-overs and sound effects onto a video.

Each overlay is delayed to its start time, scaled by a per-kind gain and summed
with the video's own audio in a single ffmpeg filter graph. The mixed track is
scaled by the job's music volume and remuxed onto the untouched video stream.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence
from urllib.parse import urlparse

from app.config import get_settings
from app.schemas.requests import AudioOperation, OperationKind, VoiceOverOperation
from app.services.errors import ProcessingError, TransferError
from app.services.media_tool import MediaInfo, MediaTool
from app.services.media_transfer import MediaTransferService

logger = logging.getLogger(__name__)


SILENCE_SOURCE = "anullsrc=r=44100:cl=stereo"


class AssetFailurePolicy:
    """What happens when an overlay asset cannot be fetched or decoded."""

    DEGRADE = "degrade"  # Replace with silence of the operation's duration
    ABORT = "abort"  # Fail the job


@dataclass
class MixTrack:
    """One overlay track scheduled into the mix."""

    kind: str
    start_seconds: float
    gain: float
    source_url: str
    path: Optional[str] = None
    placeholder_seconds: float = 0.0
    error: Optional[str] = None

    @property
    def is_placeholder(self) -> bool:
        return self.path is None


@dataclass
class MixResult:
    """Result of mixing overlays."""

    output_path: str
    tracks: list[MixTrack] = field(default_factory=list)

    @property
    def degraded_count(self) -> int:
        return sum(1 for track in self.tracks if track.is_placeholder)


def build_mix_args(
    video_path: str,
    tracks: Sequence[MixTrack],
    music_volume: int,
    output_path: str,
    include_source_audio: bool = True,
    audio_codec: str = "aac",
    audio_bitrate: str = "192k",
) -> list[str]:
    """
    Build the ffmpeg arguments for mixing overlays onto a video.

    Input 0 is the video. Inputs 1..N are the overlay tracks, with failed assets
    replaced by a lavfi silence source of the placeholder length. The mix runs
    for the longest contributing track.

    Args:
        video_path: Video whose stream is copied unchanged
        tracks: Overlay tracks in timestamp order
        music_volume: 0-100 scaling applied to the mixed result
        output_path: Destination file
        include_source_audio: Whether input 0 has an audio stream to keep

    Returns:
        Argument list (without the ffmpeg binary itself)
    """
    if not tracks:
        raise ValueError("At least one track is required to build a mix")

    inputs = ["-i", video_path]
    filter_parts = []
    mix_labels = ["[0:a]"] if include_source_audio else []

    for idx, track in enumerate(tracks, start=1):
        if track.is_placeholder:
            inputs.extend([
                "-f", "lavfi",
                "-t", f"{track.placeholder_seconds:.3f}",
                "-i", SILENCE_SOURCE,
            ])
        else:
            inputs.extend(["-i", track.path])

        delay_ms = int(round(track.start_seconds * 1000))
        filter_parts.append(
            f"[{idx}:a]adelay=delays={delay_ms}:all=1,volume={track.gain:.3f}[a{idx}]"
        )
        mix_labels.append(f"[a{idx}]")

    volume = max(0, min(100, music_volume)) / 100
    if len(mix_labels) == 1:
        filter_parts.append(f"{mix_labels[0]}volume={volume:.3f}[aout]")
    else:
        filter_parts.append(
            f"{''.join(mix_labels)}amix=inputs={len(mix_labels)}:duration=longest"
            f":dropout_transition=0:normalize=0,volume={volume:.3f}[aout]"
        )

    args = [
        *inputs,
        "-filter_complex", ";".join(filter_parts),
        "-map", "0:v",
        "-map", "[aout]",
        "-c:v", "copy",
        "-c:a", audio_codec,
        "-b:a", audio_bitrate,
    ]
    if output_path.lower().endswith((".mp4", ".mov", ".m4v")):
        args.extend(["-movflags", "+faststart"])
    args.append(output_path)
    return args


class AudioMixer:
    """
    Service for overlaying audio assets with ffmpeg.

    Features:
    - Per-kind gain (voice-over full, sound effect attenuated)
    - Start offsets via adelay
    - Single-pass amix with the original audio
    - Explicit degrade-or-abort policy for unusable assets
    """

    def __init__(
        self,
        transfer_service: Optional[MediaTransferService] = None,
        media_tool: Optional[MediaTool] = None,
        failure_policy: Optional[str] = None,
    ):
        self.settings = get_settings()
        self.transfer_service = transfer_service or MediaTransferService()
        self.media_tool = media_tool or MediaTool()
        self.failure_policy = failure_policy or self.settings.audio_asset_failure_policy

    def gain_for(self, operation: AudioOperation) -> float:
        """Gain applied to an overlay before mixing."""
        if isinstance(operation, VoiceOverOperation):
            return self.settings.voice_over_gain * operation.data.volume / 100
        return self.settings.sound_effect_gain

    async def apply_overlays(
        self,
        video_path: str,
        audio_operations: Sequence[AudioOperation],
        work_dir: str,
        media_info: MediaInfo,
        music_volume: Optional[int] = None,
        timestamp_map: Optional[Callable[[float], float]] = None,
    ) -> MixResult:
        """
        Mix audio overlays onto a video.

        Args:
            video_path: Video to mix onto (output of the cutter)
            audio_operations: Ordered voice-over / sound effect operations
            work_dir: Job-owned working directory
            media_info: Probe result for video_path
            music_volume: 0-100, defaults to the configured default
            timestamp_map: Maps source timestamps onto video_path's timeline

        Returns:
            MixResult. With no operations, output_path is video_path itself.

        Raises:
            TransferError: Asset unusable and policy is "abort"
            ProcessingError: The mix itself failed
        """
        if not audio_operations:
            logger.info("No audio operations - keeping original audio")
            return MixResult(output_path=video_path)

        if music_volume is None:
            music_volume = self.settings.default_music_volume

        assets_dir = os.path.join(work_dir, "assets")
        os.makedirs(assets_dir, exist_ok=True)

        tracks = []
        for index, operation in enumerate(audio_operations):
            tracks.append(await self._prepare_track(index, operation, assets_dir, timestamp_map))

        ext = os.path.splitext(video_path)[1] or ".mp4"
        output_path = os.path.join(work_dir, f"mixed{ext}")

        if not media_info.has_audio:
            logger.info("Source has no audio stream - mixing overlays only")

        args = build_mix_args(
            video_path=video_path,
            tracks=tracks,
            music_volume=music_volume,
            output_path=output_path,
            include_source_audio=media_info.has_audio,
            audio_codec=self.settings.audio_codec,
            audio_bitrate=self.settings.audio_bitrate,
        )
        await self.media_tool.ffmpeg(args, "Audio mix")

        if not os.path.isfile(output_path):
            raise ProcessingError("Audio mix finished but output file was not created")

        result = MixResult(output_path=output_path, tracks=tracks)
        logger.info(
            f"Mixed {len(tracks)} overlays at volume {music_volume} "
            f"({result.degraded_count} replaced with silence)"
        )
        return result

    async def _prepare_track(
        self,
        index: int,
        operation: AudioOperation,
        assets_dir: str,
        timestamp_map: Optional[Callable[[float], float]],
    ) -> MixTrack:
        """Fetch and verify one overlay asset, degrading to silence if allowed."""
        if operation.type == OperationKind.VOICE_OVER:
            url = operation.data.audio_url
        else:
            url = operation.data.file_url

        start = timestamp_map(operation.timestamp) if timestamp_map else operation.timestamp
        track = MixTrack(
            kind=operation.type,
            start_seconds=start,
            gain=self.gain_for(operation),
            source_url=url,
        )

        ext = os.path.splitext(urlparse(url).path)[1] or ".audio"
        asset_path = os.path.join(assets_dir, f"asset_{index:02d}{ext}")

        try:
            await self.transfer_service.fetch(url, asset_path)
            asset_info = await self.media_tool.probe(asset_path)
            if not asset_info.has_audio:
                raise ProcessingError("Asset has no audio stream")
        except (TransferError, ProcessingError) as e:
            if self.failure_policy == AssetFailurePolicy.ABORT:
                raise TransferError(f"Audio asset {index} unusable: {e}")

            if operation.duration is not None:
                track.placeholder_seconds = operation.duration
            else:
                track.placeholder_seconds = self.settings.placeholder_audio_seconds
            track.error = str(e)
            logger.warning(
                f"Audio asset {index} ({operation.type} at {operation.timestamp}s) unusable, "
                f"using {track.placeholder_seconds:.2f}s of silence: {e}"
            )
            return track

        track.path = asset_path
        return track
