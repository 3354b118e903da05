"""
FastAPI application entry point for the VidCraft editor.

The editor is VidCraft's video editing engine, providing:
1. Jump cuts (lossless stream-copy extraction + concat)
2. Voice-over and sound effect overlays mixed onto the original audio
3. Live progress over Server-Sent Events
"""

import logging
import os
import shutil
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.routers import editing, health
from app.services.job_orchestrator import JobOrchestrator
from app.services.job_store import JobStore
from app.services.progress_tracker import InMemoryProgressStore, ProgressTracker

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for startup and shutdown events.
    Opens the job store, recovers interrupted jobs and starts the worker pool.
    """
    settings = get_settings()
    logger.info("Starting VidCraft editor...")

    # Create temp directory
    os.makedirs(settings.temp_directory, exist_ok=True)
    logger.info(f"Temp directory: {settings.temp_directory}")

    job_store = JobStore(settings.database_path)
    progress_tracker = ProgressTracker(store=InMemoryProgressStore(), job_store=job_store)
    orchestrator = JobOrchestrator(job_store=job_store, progress_tracker=progress_tracker)

    recovered = orchestrator.recover()
    if recovered:
        logger.warning(f"Failed {len(recovered)} jobs interrupted by the previous shutdown")

    await orchestrator.start()
    logger.info(f"Max concurrent jobs: {settings.max_workers}, queue size: {settings.max_queued_jobs}")

    # Store in app state for dependency injection
    app.state.orchestrator = orchestrator

    _verify_external_tools()

    logger.info("Editor ready to accept requests.")

    yield

    logger.info("Shutting down VidCraft editor...")
    await orchestrator.stop()
    app.state.orchestrator = None

    # Clean up temp directory
    if os.path.isdir(settings.temp_directory):
        try:
            shutil.rmtree(settings.temp_directory)
        except OSError as e:
            logger.warning(f"Failed to clean up temp directory: {e}")

    logger.info("Shutdown complete")


def _verify_external_tools():
    """Verify that required external tools are available."""
    tools = {
        "ffmpeg": "FFmpeg for cutting and mixing",
        "ffprobe": "FFprobe for media analysis",
    }

    for tool, description in tools.items():
        if shutil.which(tool):
            logger.info(f"✓ {description} available")
        else:
            logger.warning(f"✗ {description} NOT FOUND - edit jobs will fail")


# Create FastAPI application
app = FastAPI(
    title="VidCraft Editor",
    description="""
VidCraft Editor - asynchronous video editing jobs.

## Features

### Editing API (`/editing`)
- Jump cuts with lossless stream copy
- Voice-over and sound effect overlays
- Editing presets (energetic, chill, professional, funny, dramatic)
- Live progress via Server-Sent Events
- S3 or local output storage

## Usage

1. Submit a job: `POST /editing/jobs`
2. Follow progress: `GET /editing/jobs/{job_id}/progress`
3. Fetch the result: `GET /editing/jobs/{job_id}`
    """,
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict to specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(editing.router)


@app.get("/")
async def root():
    """Root endpoint with basic info."""
    return {
        "service": settings.app_name,
        "version": "1.0.0",
        "status": "running",
        "features": {
            "editing": "Jump cuts + audio overlays + progress streaming",
        },
        "docs": "/docs",
    }
