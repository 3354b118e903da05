"""
FastAPI routers for the editing service.
"""

from app.routers import editing, health

__all__ = ["health", "editing"]
