"""
Pydantic models for workboard endpoints.

Request bodies are camelCase on the wire. Models only check shape; value rules
(enum members, tag caps, filename safety) are enforced by the runtime parsers
so the HTTP layer and direct callers share one set of checks.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def payload(self) -> Dict[str, Any]:
        """Fields the client actually sent, keyed by their wire names."""
        return self.model_dump(by_alias=True, exclude_unset=True)


# =============================================================================
# Instances
# =============================================================================


class InstanceCreateRequest(BaseModel):
    """Request to create a new instance workspace."""

    name: str = Field(..., description="Directory name under the instances root")


class InstanceSummary(BaseModel):
    id: str
    name: str
    path: str


class InstanceListResponse(BaseModel):
    instances: List[InstanceSummary]


# =============================================================================
# PRDs
# =============================================================================


class PRDFields(_CamelModel):
    """Partial PRD fields shared by create and update."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    title: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    complexity: Optional[str] = None
    tags: Optional[List[str]] = None
    archived: Optional[bool] = None
    estimated_iterations: Optional[int] = Field(None, alias="estimatedIterations")
    actual_iterations: Optional[int] = Field(None, alias="actualIterations")
    dependencies: Optional[List[str]] = None


class PRDCreateRequest(PRDFields):
    """Request to register a PRD, optionally with its markdown body."""

    filename: str = Field(..., description="PRD key, e.g. 'auth-flow.md'")
    content: Optional[str] = Field(None, description="Markdown body written to prds/<filename>")


class PRDUpdateRequest(PRDFields):
    """Partial update of one PRD, addressed by filename."""

    filename: str = Field(..., description="PRD to update")

    def changes(self) -> Dict[str, Any]:
        data = self.payload()
        data.pop("filename", None)
        return data


# =============================================================================
# Skills
# =============================================================================


class SkillCreateRequest(_CamelModel):
    """Request to create a skill. Give ``filename`` or a ``name`` to slug."""

    name: Optional[str] = None
    filename: Optional[str] = None
    content: str
    title: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None


class SkillUpdateRequest(_CamelModel):
    """Partial skill update; unknown fields are rejected."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    content: Optional[str] = None
    title: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None


# =============================================================================
# Import / export
# =============================================================================


class SkillImportRequest(_CamelModel):
    """Import skills given inline, or copied from another instance."""

    instance_id: str = Field(..., alias="instanceId")
    skills: Optional[List[Any]] = Field(None, description="Exported skill objects")
    source_instance_id: Optional[str] = Field(None, alias="sourceInstanceId")
    skill_files: Optional[List[str]] = Field(None, alias="skillFiles")


class SkillExportRequest(_CamelModel):
    """Export the named skills (all skills when ``skillFiles`` is empty)."""

    instance_id: str = Field(..., alias="instanceId")
    skill_files: Optional[List[str]] = Field(None, alias="skillFiles")


# =============================================================================
# Health
# =============================================================================


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    status: str
    timestamp: str
    instances_root: str
    cross_process_locks: bool
