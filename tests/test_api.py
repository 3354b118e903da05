"""
HTTP tests for the editing and health routers.
"""

import json

import pytest
from fastapi.testclient import TestClient

from app.config import get_settings
from app.main import app
from app.services.job_orchestrator import JobOrchestrator
from app.services.job_store import EditJob, JobStatus, JobStore


@pytest.fixture
def orchestrator(mocker, job_store, progress_tracker, fake_media_tool):
    orchestrator = JobOrchestrator(
        job_store=job_store,
        progress_tracker=progress_tracker,
        transfer_service=mocker.MagicMock(),
        media_tool=fake_media_tool,
    )
    pool = mocker.MagicMock()
    pool.has_capacity.return_value = True
    pool.is_running = True
    pool.active_count = 1
    pool.queued_count = 3
    orchestrator.worker_pool = pool
    return orchestrator


@pytest.fixture
def client(orchestrator):
    """Client without lifespan; the orchestrator is injected into app state."""
    app.state.orchestrator = orchestrator
    yield TestClient(app)
    app.state.orchestrator = None


def _submit(client, **overrides):
    payload = {
        "source_url": "s3://vidcraft-media/uploads/source.mp4",
        "operations": [
            {"type": "jumpcut", "timestamp": 5.0},
            {"type": "soundfx", "timestamp": 12.5, "data": {"file_url": "https://cdn.example.com/pop.mp3"}},
        ],
        "settings": {"music_volume": 55},
    }
    payload.update(overrides)
    return client.post("/editing/jobs", json=payload)


def _sse_events(text):
    return [
        json.loads(line[len("data: "):])
        for line in text.splitlines()
        if line.startswith("data: ")
    ]


class TestSubmitEndpoint:
    """POST /editing/jobs"""

    def test_accepted(self, client, orchestrator):
        response = _submit(client)

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "processing"
        assert body["job_id"]
        orchestrator.worker_pool.submit.assert_called_once_with(body["job_id"])

    def test_negative_timestamp(self, client, orchestrator):
        response = _submit(client, operations=[{"type": "jumpcut", "timestamp": -1}])
        assert response.status_code == 422
        assert orchestrator.job_store.list_jobs() == []

    def test_unknown_operation_kind(self, client):
        response = _submit(client, operations=[{"type": "zoom", "timestamp": 1}])
        assert response.status_code == 422

    def test_timestamp_beyond_duration(self, client):
        response = _submit(
            client,
            operations=[{"type": "jumpcut", "timestamp": 45}],
            source_duration_seconds=30,
        )
        assert response.status_code == 422

    def test_unknown_preset(self, client):
        response = _submit(client, preset_id="sleepy")
        assert response.status_code == 404

    def test_preset_without_duration(self, client):
        response = _submit(client, preset_id="funny", operations=[])
        assert response.status_code == 422

    def test_queue_full(self, client, orchestrator):
        orchestrator.worker_pool.has_capacity.return_value = False
        response = _submit(client)
        assert response.status_code == 503
        assert orchestrator.job_store.list_jobs() == []

    def test_api_key_required_when_configured(self, client, monkeypatch):
        monkeypatch.setenv("EDITOR_API_KEY", "s3cret")
        get_settings.cache_clear()

        assert _submit(client).status_code == 401
        response = client.post(
            "/editing/jobs",
            json={"source_url": "a.mp4"},
            headers={"X-Editor-API-Key": "wrong"},
        )
        assert response.status_code == 401
        response = client.post(
            "/editing/jobs",
            json={"source_url": "a.mp4"},
            headers={"X-Editor-API-Key": "s3cret"},
        )
        assert response.status_code == 202

    def test_api_key_guards_cancel_but_not_reads(self, client, monkeypatch):
        job_id = _submit(client).json()["job_id"]
        monkeypatch.setenv("EDITOR_API_KEY", "s3cret")
        get_settings.cache_clear()

        response = client.delete(f"/editing/jobs/{job_id}")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "X-Editor-API-Key"
        assert client.get(f"/editing/jobs/{job_id}").json()["status"] == "queued"

        response = client.delete(f"/editing/jobs/{job_id}", headers={"X-Editor-API-Key": "s3cret"})
        assert response.status_code == 204


class TestJobEndpoints:
    """GET/DELETE /editing/jobs"""

    def test_get_job(self, client):
        job_id = _submit(client).json()["job_id"]
        response = client.get(f"/editing/jobs/{job_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "queued"
        assert body["progress_percent"] == 0
        assert body["settings"]["music_volume"] == 55
        assert [op["type"] for op in body["operations"]] == ["jumpcut", "soundfx"]

    def test_get_unknown_job(self, client):
        assert client.get("/editing/jobs/nope").status_code == 404

    def test_list_jobs(self, client, orchestrator):
        first = _submit(client).json()["job_id"]
        _submit(client)
        orchestrator.job_store.mark_failed(first, "Job cancelled")

        assert len(client.get("/editing/jobs").json()) == 2
        failed = client.get("/editing/jobs", params={"status_filter": "failed"}).json()
        assert [job["job_id"] for job in failed] == [first]
        assert client.get("/editing/jobs", params={"status_filter": "bogus"}).status_code == 422

    def test_cancel(self, client, orchestrator):
        job_id = _submit(client).json()["job_id"]

        assert client.delete(f"/editing/jobs/{job_id}").status_code == 204
        body = client.get(f"/editing/jobs/{job_id}").json()
        assert body["status"] == "failed"
        assert body["error"] == "Job cancelled"
        orchestrator.worker_pool.cancel.assert_called_once_with(job_id)

        assert client.delete(f"/editing/jobs/{job_id}").status_code == 409

    def test_cancel_unknown(self, client):
        assert client.delete("/editing/jobs/nope").status_code == 404


class TestProgressEndpoint:
    """GET /editing/jobs/{job_id}/progress"""

    def test_streams_terminal_record(self, client, orchestrator):
        job_id = _submit(client).json()["job_id"]
        orchestrator.progress_tracker.update(job_id, 50, "Applied jump cuts")
        orchestrator.progress_tracker.complete(job_id)

        response = client.get(f"/editing/jobs/{job_id}/progress")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert _sse_events(response.text) == [
            {"progress": 100, "status": "completed", "message": "Video processing completed successfully"}
        ]

    def test_falls_back_to_persisted_failure(self, client, orchestrator):
        job_id = _submit(client).json()["job_id"]
        orchestrator.job_store.mark_failed(job_id, "Interrupted by service restart")

        events = _sse_events(client.get(f"/editing/jobs/{job_id}/progress").text)
        assert events == [
            {"progress": 0, "status": "failed", "message": "Interrupted by service restart"}
        ]

    def test_unknown_job(self, client):
        assert client.get("/editing/jobs/nope/progress").status_code == 404


class TestPresetEndpoints:
    """GET /editing/presets"""

    def test_list(self, client):
        presets = client.get("/editing/presets").json()
        assert [p["id"] for p in presets] == ["energetic", "chill", "professional", "funny", "dramatic"]

    def test_detail(self, client):
        body = client.get("/editing/presets/energetic").json()
        assert body["jump_cut_frequency"] == 10
        assert body["music_volume"] == 80

    def test_unknown(self, client):
        assert client.get("/editing/presets/sleepy").status_code == 404


class TestHealth:
    """Health endpoints."""

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_ready_reports_pool(self, client, mocker):
        mocker.patch("app.routers.health.MediaTool.is_available", return_value=True)
        body = client.get("/health/ready").json()
        assert body == {
            "ready": True,
            "worker_pool": "running",
            "ffmpeg": "available",
            "ffprobe": "available",
            "active_jobs": 1,
            "queued_jobs": 3,
        }

    def test_not_ready_without_orchestrator(self):
        app.state.orchestrator = None
        body = TestClient(app).get("/health/ready").json()
        assert body["ready"] is False
        assert body["worker_pool"] == "stopped"

    def test_submit_without_orchestrator(self):
        app.state.orchestrator = None
        response = TestClient(app).post("/editing/jobs", json={"source_url": "a.mp4"})
        assert response.status_code == 503


class TestLifespan:
    """Startup wiring."""

    def test_startup_recovers_interrupted_jobs(self, isolated_settings):
        store = JobStore(isolated_settings.database_path)
        store.create(EditJob(id="stale", source_url="a.mp4"))
        store.mark_processing("stale")

        with TestClient(app) as client:
            body = client.get("/editing/jobs/stale").json()
            assert body["status"] == "failed"
            assert body["error"] == "Interrupted by service restart"
            assert client.get("/health/ready").json()["worker_pool"] == "running"

        assert JobStore(isolated_settings.database_path).get("stale").status == JobStatus.FAILED
