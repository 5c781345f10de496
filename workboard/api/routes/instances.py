"""
Instance endpoints.

Provides REST endpoints for:
- Listing instance workspaces (GET /instances)
- Creating an instance workspace (POST /instances)
- Reading the derived tag index of an instance (GET /instances/{id}/tags)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool

from workboard.runtime.instances import Instance

from ..services.workspace import Workspace, get_workspace
from .models import InstanceCreateRequest, InstanceListResponse, InstanceSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/instances", tags=["instances"])


def _summary(instance: Instance) -> InstanceSummary:
    return InstanceSummary(id=instance.id, name=instance.name, path=str(instance.path))


@router.get("", response_model=InstanceListResponse)
async def list_instances(workspace: Workspace = Depends(get_workspace)):
    """List instance workspaces under the configured root."""
    instances = await run_in_threadpool(workspace.list_instances)
    return InstanceListResponse(instances=[_summary(i) for i in instances])


@router.post("", response_model=InstanceSummary, status_code=201)
async def create_instance(
    request: InstanceCreateRequest,
    workspace: Workspace = Depends(get_workspace),
):
    """Create an instance with empty prds/, skills/ and planning/ directories."""
    instance = await run_in_threadpool(workspace.create_instance, request.name)
    return _summary(instance)


@router.get("/{instance_id}/tags")
async def get_tags(
    instance_id: str,
    kind: str = Query("prd", description="Record kind: prd or skill"),
    workspace: Workspace = Depends(get_workspace),
):
    """Tags in use across non-archived records, with per-tag usage counts."""
    return await run_in_threadpool(workspace.tag_index, instance_id, kind)
