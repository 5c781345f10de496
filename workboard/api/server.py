"""
FastAPI REST API server for the workboard store.

Exposes PRD and Skill metadata, the PRD status workflow, tag indexes and skill
import/export for every instance under the configured instances root.

Usage:
    # Run standalone
    python -m workboard.api.server

    # Or via factory
    from workboard.api import create_app
    app = create_app()
    uvicorn.run(app, port=5050)

API Structure:
    /api/instances/                   - Instance listing and creation
    /api/instances/{id}/prds          - PRD list/create/update/sync
    /api/instances/{id}/skills        - Skill CRUD
    /api/instances/{id}/tags          - Tag index
    /api/skills/import, /export       - Skill transfer
    /api/health                       - Health check
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from workboard import __version__
from workboard.config.store_config import StoreSettings, load_settings
from workboard.runtime.errors import StoreError

from .routes import instances_router, prds_router, skills_router, transfer_router
from .routes.models import HealthResponse
from .services.workspace import Workspace

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# =============================================================================
# FastAPI Application Factory
# =============================================================================


def create_app(
    settings: Optional[StoreSettings] = None,
    enable_cors: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Store settings; loaded from workboard.yaml and the
            environment when omitted.
        enable_cors: Whether to enable CORS middleware.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager.

        On startup:
        - Ensure the instances root exists
        - Log the effective lock configuration
        """
        logger.info("Workboard API server starting...")
        try:
            settings.instances_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Could not create instances root %s: %s", settings.instances_root, e)
        logger.info(
            "Instances root=%s lock_timeout=%.1fs stale_after=%.1fs cross_process=%s",
            settings.instances_root,
            settings.lock_timeout,
            settings.lock_stale_seconds,
            settings.cross_process_locks,
        )

        yield

        logger.info("Workboard API server shutting down...")

    app = FastAPI(
        title="Workboard API",
        description="REST API for PRD and Skill metadata, the PRD workflow, and skill transfer.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.workspace = Workspace(settings)

    # Add CORS middleware
    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )

    # -------------------------------------------------------------------------
    # Routers
    # -------------------------------------------------------------------------

    app.include_router(instances_router, prefix="/api")
    app.include_router(prds_router, prefix="/api")
    app.include_router(skills_router, prefix="/api")
    app.include_router(transfer_router, prefix="/api")

    # -------------------------------------------------------------------------
    # Error Mapping
    # -------------------------------------------------------------------------

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        if exc.retryable:
            logger.warning("%s %s failed (%s): %s", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(status_code=exc.http_status, content={"detail": exc.to_dict()})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "detail": {
                    "error": "validation_failed",
                    "message": "Invalid request",
                    "details": {"errors": jsonable_encoder(exc.errors())},
                    "retryable": False,
                }
            },
        )

    # -------------------------------------------------------------------------
    # Request Logging Middleware
    # -------------------------------------------------------------------------

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time
        logger.info(
            "%s %s %s %.3fs",
            request.method,
            request.url.path,
            response.status_code,
            duration,
        )
        return response

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    @app.get("/api/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(
            status="ok",
            timestamp=datetime.now(timezone.utc).isoformat(),
            instances_root=str(settings.instances_root),
            cross_process_locks=settings.cross_process_locks,
        )

    return app


def main():
    """Run the API server."""
    import argparse
    from pathlib import Path

    import uvicorn

    parser = argparse.ArgumentParser(description="Workboard API Server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=5050, help="Port to bind to")
    parser.add_argument("--root", type=Path, default=None, help="Instances root directory")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--no-cors", action="store_true", help="Disable CORS")
    args = parser.parse_args()

    app = create_app(settings=load_settings(args.root), enable_cors=not args.no_cors)

    print(f"Starting Workboard API server at http://{args.host}:{args.port}")
    print("\nEndpoints:")
    print("  GET    /api/instances                       - List instances")
    print("  POST   /api/instances                       - Create instance")
    print("  GET    /api/instances/{id}/prds             - List PRDs (q, tags, includeArchived, board)")
    print("  POST   /api/instances/{id}/prds             - Create PRD")
    print("  PATCH  /api/instances/{id}/prds             - Update PRD")
    print("  POST   /api/instances/{id}/prds/sync        - Discover PRD files, apply queue")
    print("  GET    /api/instances/{id}/skills           - List skills (q, tags)")
    print("  POST   /api/instances/{id}/skills           - Create skill")
    print("  GET    /api/instances/{id}/skills/{file}    - Get skill")
    print("  PUT    /api/instances/{id}/skills/{file}    - Update skill")
    print("  DELETE /api/instances/{id}/skills/{file}    - Delete skill")
    print("  GET    /api/instances/{id}/tags             - Tag index (kind=prd|skill)")
    print("  POST   /api/skills/export                   - Export skills")
    print("  POST   /api/skills/import                   - Import skills")
    print("  GET    /api/health                          - Health check")

    uvicorn.run(app, host=args.host, port=args.port, log_level="debug" if args.debug else "info")


if __name__ == "__main__":
    main()
