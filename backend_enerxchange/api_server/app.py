"""
FastAPI/ASGI application entrypoint.

Build the app from server.create_app; the read model is created from settings
when the lifespan starts.
Run with: uvicorn backend_enerxchange.api_server.app:app --host 0.0.0.0 --port 8000
"""

from backend_enerxchange.api_server.server import create_app

app = create_app()

__all__ = ["app"]
