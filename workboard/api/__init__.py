"""
Workboard API - FastAPI REST API over the PRD and Skill stores.

To avoid import side effects, the app instance is NOT created at import time:

    # For ASGI servers (recommended):
    uvicorn workboard.api.asgi:app --port 5050

    # For just the factory (no app creation):
    from workboard.api import create_app
    app = create_app()
"""

from .server import create_app

__all__ = ["create_app"]

