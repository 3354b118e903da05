"""
Media Tool - Runs ffmpeg/ffprobe subprocesses with deadlines and cancellation.

Every external media invocation in the pipeline goes through MediaTool.run so
that a stuck process is killed when its deadline passes or when the owning job
task is cancelled.
"""

import asyncio
import json
import logging
import os
import shutil
from dataclasses import dataclass
from typing import Optional

from app.config import get_settings
from app.services.errors import ProcessingError

logger = logging.getLogger(__name__)


@dataclass
class MediaInfo:
    """Stream information extracted with ffprobe."""

    duration_seconds: float
    width: int
    height: int
    fps: float
    has_video: bool
    has_audio: bool
    format_name: str

    @property
    def frame_duration_seconds(self) -> float:
        return 1.0 / self.fps if self.fps > 0 else 0.0


class MediaTool:
    """
    Thin async wrapper around the ffmpeg and ffprobe binaries.

    Uses asyncio subprocesses rather than a thread pool so the child process can
    be killed on timeout or cancellation.
    """

    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
    ):
        self.settings = get_settings()
        self.timeout_seconds = timeout_seconds or self.settings.ffmpeg_timeout_seconds
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path

    @staticmethod
    def is_available(binary: str) -> bool:
        """Check whether a binary is on PATH."""
        return shutil.which(binary) is not None

    async def run(self, cmd: list[str], description: str) -> bytes:
        """
        Run a command and return its stdout.

        Args:
            cmd: Full argument vector
            description: Short label used in logs and error messages

        Returns:
            Raw stdout bytes

        Raises:
            ProcessingError: Non-zero exit, missing binary, or deadline exceeded
        """
        logger.debug(f"Running {description}: {' '.join(cmd[:12])}...")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            raise ProcessingError(f"{description} failed: {cmd[0]} not found in PATH")

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            self._kill(proc)
            await proc.wait()
            raise ProcessingError(
                f"{description} timed out after {self.timeout_seconds:.0f}s"
            )
        except asyncio.CancelledError:
            self._kill(proc)
            # Reap the child even if cancelled again while waiting
            await asyncio.shield(proc.wait())
            logger.info(f"{description} cancelled, process killed")
            raise

        if proc.returncode != 0:
            error_msg = stderr.decode(errors="replace")[-1000:] if stderr else "Unknown error"
            logger.error(f"{description} failed (exit {proc.returncode}): {error_msg}")
            raise ProcessingError(f"{description} failed: {error_msg[-200:]}")

        return stdout

    async def ffmpeg(self, args: list[str], description: str) -> None:
        """Run ffmpeg with -y and quiet logging prepended."""
        await self.run(
            [self.ffmpeg_path, "-y", "-hide_banner", "-loglevel", "error", *args],
            description,
        )

    async def probe(self, path: str) -> MediaInfo:
        """
        Read duration and stream layout of a media file.

        Raises:
            ProcessingError: ffprobe failed or the output had no usable duration
        """
        if not os.path.isfile(path):
            raise ProcessingError(f"Cannot probe missing file: {os.path.basename(path)}")

        stdout = await self.run(
            [
                self.ffprobe_path,
                "-v", "quiet",
                "-print_format", "json",
                "-show_format",
                "-show_streams",
                path,
            ],
            "ffprobe",
        )
        return self.parse_probe_output(stdout, default_fps=self.settings.default_frame_rate)

    @staticmethod
    def parse_probe_output(stdout: bytes, default_fps: float = 30.0) -> MediaInfo:
        """Parse ffprobe JSON output into MediaInfo."""
        try:
            info = json.loads(stdout.decode())
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProcessingError(f"Failed to parse ffprobe output: {e}")

        streams = info.get("streams", [])
        video_stream = next((s for s in streams if s.get("codec_type") == "video"), None)
        audio_stream = next((s for s in streams if s.get("codec_type") == "audio"), None)
        format_info = info.get("format", {})

        try:
            duration = float(format_info.get("duration", 0))
        except (TypeError, ValueError):
            duration = 0.0
        if duration <= 0:
            raise ProcessingError("Media has no readable duration")

        # Extract FPS from r_frame_rate (e.g., "30000/1001" -> 29.97)
        fps = default_fps
        if video_stream and "r_frame_rate" in video_stream:
            fps_str = video_stream["r_frame_rate"]
            try:
                if "/" in fps_str:
                    num, den = fps_str.split("/")
                    fps = float(num) / float(den) if float(den) != 0 else default_fps
                else:
                    fps = float(fps_str)
            except ValueError:
                fps = default_fps
            if fps <= 0:
                fps = default_fps

        return MediaInfo(
            duration_seconds=duration,
            width=int(video_stream.get("width", 0)) if video_stream else 0,
            height=int(video_stream.get("height", 0)) if video_stream else 0,
            fps=fps,
            has_video=video_stream is not None,
            has_audio=audio_stream is not None,
            format_name=format_info.get("format_name", "unknown"),
        )

    @staticmethod
    def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
