"""HTTP and WebSocket surface for Rankboard (FastAPI)."""

from rankboard.api.app import create_app

__all__ = ["create_app"]
