"""
Routes package for the workboard API.

This package contains the FastAPI routers for:
- instances: Instance listing/creation and the tag index
- prds: PRD listing, creation, partial update and discovery
- skills: Skill CRUD and search
- transfer: Skill import/export across instances
"""

from .instances import router as instances_router
from .prds import router as prds_router
from .skills import router as skills_router
from .transfer import router as transfer_router

__all__ = [
    "instances_router",
    "prds_router",
    "skills_router",
    "transfer_router",
]
