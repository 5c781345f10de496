"""
PRD endpoints.

Provides REST endpoints for:
- Listing and filtering PRDs with tags and status counts (GET /instances/{id}/prds)
- Registering a PRD (POST /instances/{id}/prds)
- Partial updates, including status transitions (PATCH /instances/{id}/prds)
- Discovering unregistered markdown files (POST /instances/{id}/prds/sync)

Every mutation response carries the tag list and counts from the same locked
snapshot as the change itself.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool

from workboard.runtime.types import prd_to_dict

from ..services.workspace import Workspace, get_workspace
from .models import PRDCreateRequest, PRDUpdateRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/instances/{instance_id}/prds", tags=["prds"])


def split_tags(tags: Optional[str]) -> List[str]:
    """Parse a comma-separated ``tags`` query parameter."""
    if not tags:
        return []
    return [t.strip() for t in tags.split(",") if t.strip()]


@router.get("")
async def list_prds(
    instance_id: str,
    q: Optional[str] = Query(None, description="Substring over title, filename and tags"),
    tags: Optional[str] = Query(None, description="Comma-separated tags, all required"),
    include_archived: bool = Query(False, alias="includeArchived"),
    include_board: bool = Query(False, alias="board", description="Group results by status"),
    workspace: Workspace = Depends(get_workspace),
):
    """List PRDs for an instance.

    ``tags`` and ``stats`` always describe the whole collection, not the
    filtered subset.
    """
    listing = await run_in_threadpool(
        workspace.list_prds,
        instance_id,
        q,
        split_tags(tags),
        include_archived,
        include_board,
    )
    body = {
        "prds": [prd_to_dict(r) for r in listing.prds],
        "tags": listing.tags,
        "stats": listing.stats.to_dict(),
    }
    if listing.board is not None:
        body["board"] = {
            status: [prd_to_dict(r) for r in column] for status, column in listing.board.items()
        }
    return body


@router.post("", status_code=201)
async def create_prd(
    instance_id: str,
    request: PRDCreateRequest,
    workspace: Workspace = Depends(get_workspace),
):
    """Register a PRD. When ``content`` is given it is written to prds/<filename>."""
    record = await run_in_threadpool(workspace.create_prd, instance_id, request.payload())
    return prd_to_dict(record)


@router.patch("")
async def update_prd(
    instance_id: str,
    request: PRDUpdateRequest,
    workspace: Workspace = Depends(get_workspace),
):
    """Apply a partial update to one PRD.

    Returns:
        The updated PRD plus tags and stats recomputed from the post-update
        snapshot.
    """
    result = await run_in_threadpool(
        workspace.update_prd, instance_id, request.filename, request.changes()
    )
    return {
        "prd": prd_to_dict(result.record),
        "tags": result.tags,
        "stats": result.stats.to_dict(),
    }


@router.post("/sync")
async def sync_prds(
    instance_id: str,
    workspace: Workspace = Depends(get_workspace),
):
    """Create metadata for untracked markdown files in prds/, then apply
    statuses from the worker queue (planning/prd-queue.json).
    """
    sync = await run_in_threadpool(workspace.sync_prds, instance_id)
    listing = await run_in_threadpool(workspace.list_prds, instance_id)
    return {
        "discovered": [prd_to_dict(r) for r in sync.discovered],
        "updated": [prd_to_dict(r) for r in sync.updated],
        "stats": listing.stats.to_dict(),
    }
