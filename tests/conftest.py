"""
Pytest configuration and fixtures.
"""

import os
import sys

import pytest

# Add app directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from app.config import get_settings  # noqa: E402
from app.services.job_store import JobStore  # noqa: E402
from app.services.media_tool import MediaInfo  # noqa: E402
from app.services.progress_tracker import InMemoryProgressStore, ProgressTracker  # noqa: E402


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point every path setting at a per-test directory and use local storage."""
    monkeypatch.setenv("TEMP_DIRECTORY", str(tmp_path / "work"))
    monkeypatch.setenv("OUTPUT_DIRECTORY", str(tmp_path / "output"))
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "jobs.db"))
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("S3_BUCKET", "vidcraft-media")
    monkeypatch.setenv("AWS_REGION", "us-east-1")
    monkeypatch.delenv("EDITOR_API_KEY", raising=False)
    monkeypatch.delenv("AUDIO_ASSET_FAILURE_POLICY", raising=False)
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def job_store(tmp_path):
    return JobStore(str(tmp_path / "jobs.db"))


@pytest.fixture
def progress_tracker(job_store):
    return ProgressTracker(store=InMemoryProgressStore(), job_store=job_store)


@pytest.fixture
def make_media_info():
    """Factory for probe results."""

    def _make(duration=30.0, fps=30.0, has_audio=True, has_video=True):
        return MediaInfo(
            duration_seconds=duration,
            width=1920 if has_video else 0,
            height=1080 if has_video else 0,
            fps=fps,
            has_video=has_video,
            has_audio=has_audio,
            format_name="mov,mp4,m4a,3gp,3g2,mj2",
        )

    return _make


@pytest.fixture
def fake_media_tool(mocker, make_media_info):
    """
    MediaTool stand-in.

    ffmpeg() writes a small file at the output path (last argument) so callers
    that check for output see one. probe() returns a 30s video with audio.
    """
    tool = mocker.MagicMock()

    async def _ffmpeg(args, description):
        with open(args[-1], "wb") as f:
            f.write(b"\x00" * 16)

    tool.ffmpeg = mocker.AsyncMock(side_effect=_ffmpeg)
    tool.probe = mocker.AsyncMock(return_value=make_media_info())
    return tool
