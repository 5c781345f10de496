"""
Skill import/export endpoints.

Provides REST endpoints for:
- Exporting skills from an instance (POST /skills/export)
- Importing skills into an instance, either from an export payload or
  straight from another instance (POST /skills/import)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from workboard.runtime.errors import ValidationFailed

from ..services.workspace import Workspace, get_workspace
from .models import SkillExportRequest, SkillImportRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/skills", tags=["transfer"])


@router.post("/export")
async def export_skills(
    request: SkillExportRequest,
    workspace: Workspace = Depends(get_workspace),
):
    """Export named skills (all when ``skillFiles`` is empty).

    Unknown names are listed in ``missing`` instead of failing the export.
    """
    bundle = await run_in_threadpool(
        workspace.export_skills, request.instance_id, request.skill_files
    )
    return bundle.to_dict()


@router.post("/import")
async def import_skills(
    request: SkillImportRequest,
    workspace: Workspace = Depends(get_workspace),
):
    """Additively import skills.

    Existing filenames are skipped without modification and invalid entries
    are skipped and reported in ``errors``. Safe to retry.
    """
    if request.source_instance_id:
        result = await run_in_threadpool(
            workspace.copy_skills,
            request.source_instance_id,
            request.instance_id,
            request.skill_files,
        )
    elif request.skills is not None:
        result = await run_in_threadpool(workspace.import_skills, request.instance_id, request.skills)
    else:
        raise ValidationFailed(
            "Provide either skills or sourceInstanceId",
            {"instanceId": request.instance_id},
        )
    return result.to_dict()
