"""
Skill endpoints.

Provides REST endpoints for:
- Listing and searching skills (GET /instances/{id}/skills)
- Creating a skill (POST /instances/{id}/skills)
- Reading, updating and deleting one skill (GET/PUT/DELETE /instances/{id}/skills/{filename})
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool

from workboard.runtime.types import skill_to_dict

from ..services.workspace import Workspace, get_workspace
from .models import SkillCreateRequest, SkillUpdateRequest
from .prds import split_tags

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/instances/{instance_id}/skills", tags=["skills"])


@router.get("")
async def list_skills(
    instance_id: str,
    q: Optional[str] = Query(None, description="Substring over title, filename and tags"),
    tags: Optional[str] = Query(None, description="Comma-separated tags, all required"),
    workspace: Workspace = Depends(get_workspace),
):
    """List skills for an instance, with every tag in use."""
    skills, all_tags = await run_in_threadpool(
        workspace.list_skills, instance_id, q, split_tags(tags)
    )
    return {"skills": [skill_to_dict(s) for s in skills], "tags": all_tags}


@router.post("", status_code=201)
async def create_skill(
    instance_id: str,
    request: SkillCreateRequest,
    workspace: Workspace = Depends(get_workspace),
):
    """Create a skill.

    The filename is derived from ``name`` ("React Hooks" -> "react_hooks.md")
    unless given explicitly. Title and category fall back to values read
    from the content.
    """
    record = await run_in_threadpool(
        workspace.create_skill,
        instance_id,
        request.content,
        filename=request.filename,
        name=request.name,
        title=request.title,
        category=request.category,
        tags=request.tags,
    )
    return skill_to_dict(record)


@router.get("/{filename}")
async def get_skill(
    instance_id: str,
    filename: str,
    workspace: Workspace = Depends(get_workspace),
):
    record = await run_in_threadpool(workspace.get_skill, instance_id, filename)
    return skill_to_dict(record)


@router.put("/{filename}")
async def update_skill(
    instance_id: str,
    filename: str,
    request: SkillUpdateRequest,
    workspace: Workspace = Depends(get_workspace),
):
    """Partially update a skill. Omitted fields keep their stored values."""
    record = await run_in_threadpool(
        workspace.update_skill, instance_id, filename, request.payload()
    )
    return skill_to_dict(record)


@router.delete("/{filename}")
async def delete_skill(
    instance_id: str,
    filename: str,
    workspace: Workspace = Depends(get_workspace),
):
    record = await run_in_threadpool(workspace.delete_skill, instance_id, filename)
    return {"deleted": record.filename}
