"""
ASGI entrypoint for the workboard API.

This module creates the FastAPI app instance for use with ASGI servers:

    uvicorn workboard.api.asgi:app --port 5050

Importing workboard.api.server doesn't trigger app construction; only this
module does.
"""

from .server import create_app

# Create the app instance for ASGI servers
app = create_app()
