"""
Workspace service.

Holds the per-application state the HTTP layer needs: resolved settings, the
single LockManager shared by every store, and the instance registry. Route
handlers receive it through the ``get_workspace`` dependency and call its
synchronous methods from the worker pool.

Usage:
    from workboard.api.services.workspace import Workspace

    workspace = Workspace(load_settings())
    prds = workspace.list_prds("my-project", tags=["auth"])
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from fastapi import Request

from workboard.config.store_config import StoreSettings
from workboard.runtime.content import (
    extract_skill_category,
    extract_skill_tags,
    extract_skill_title,
)
from workboard.runtime.errors import ValidationFailed
from workboard.runtime.instances import Instance, InstanceRegistry, ensure_within
from workboard.runtime.locking import LockManager
from workboard.runtime.search import filter_records
from workboard.runtime.store import PRDStore, SkillStore
from workboard.runtime.tags import TagIndex, all_tags, normalize_tags
from workboard.runtime.transfer import (
    ImportResult,
    SkillExport,
    copy_skills,
    export_skills,
    import_skills,
)
from workboard.runtime.types import (
    FieldUpdate,
    PRDRecord,
    SkillRecord,
    parse_prd_updates,
    parse_skill_updates,
    skill_filename_from_name,
    validate_skill_content,
)
from workboard.runtime.workflow import (
    WorkflowEngine,
    WorkflowResult,
    WorkflowStats,
    board,
    compute_stats,
    derive_prd_fields,
    sort_records,
)

logger = logging.getLogger(__name__)


@dataclass
class PRDListing:
    prds: List[PRDRecord]
    tags: List[str]
    stats: WorkflowStats
    board: Optional[Dict[str, List[PRDRecord]]] = None


@dataclass
class PRDSync:
    discovered: List[PRDRecord]
    updated: List[PRDRecord]


class Workspace:
    """Instance-scoped store operations for the HTTP layer.

    Args:
        settings: Resolved store settings (root, lock timings, record limits).
    """

    def __init__(self, settings: StoreSettings):
        self.settings = settings
        self.locks = LockManager(
            timeout=settings.lock_timeout,
            stale_after=settings.lock_stale_seconds,
            cross_process=settings.cross_process_locks,
        )
        self.instances = InstanceRegistry(settings.instances_root)

    # -------------------------------------------------------------------------
    # Instance resolution
    # -------------------------------------------------------------------------

    def instance(self, instance_id: str) -> Instance:
        return self.instances.resolve(instance_id)

    def list_instances(self) -> List[Instance]:
        return self.instances.list()

    def create_instance(self, name: str) -> Instance:
        return self.instances.create(name)

    def prd_store(self, instance_id: str) -> PRDStore:
        inst = self.instance(instance_id)
        return PRDStore(ensure_within(inst.path, inst.path / self.settings.prd_store_file), self.locks)

    def skill_store(self, instance_id: str) -> SkillStore:
        inst = self.instance(instance_id)
        return SkillStore(ensure_within(inst.path, inst.path / self.settings.skill_store_file), self.locks)

    def workflow(self, instance_id: str) -> WorkflowEngine:
        inst = self.instance(instance_id)
        prds_dir = ensure_within(inst.path, inst.path / self.settings.prds_dir)
        queue_file = ensure_within(inst.path, inst.path / self.settings.queue_file)
        return WorkflowEngine(self.prd_store(instance_id), prds_dir=prds_dir, queue_file=queue_file)

    def _tags(self, tags: Any) -> List[str]:
        if not isinstance(tags, list):
            raise ValidationFailed("Tags must be an array", {"field": "tags"})
        return normalize_tags(
            tags,
            max_tags=self.settings.max_tags,
            max_length=self.settings.max_tag_length,
        )

    # -------------------------------------------------------------------------
    # PRDs
    # -------------------------------------------------------------------------

    def list_prds(
        self,
        instance_id: str,
        query: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        include_archived: bool = False,
        with_board: bool = False,
    ) -> PRDListing:
        """Filtered PRDs plus tags and stats computed over the whole snapshot."""
        records = self.prd_store(instance_id).list()
        filtered = filter_records(
            records,
            query=query,
            tags=tags,
            include_archived=include_archived,
            max_tag_length=self.settings.max_tag_length,
        )
        return PRDListing(
            prds=sort_records(filtered),
            tags=all_tags(records, self.settings.max_tag_length),
            stats=compute_stats(records),
            board=board(filtered, include_archived=include_archived) if with_board else None,
        )

    def create_prd(self, instance_id: str, payload: Mapping[str, Any]) -> PRDRecord:
        """Create a PRD from a camelCase payload.

        ``content``, when given, is written to ``prds/<filename>`` and fills
        title, complexity and estimatedIterations the payload leaves out.
        """
        data = dict(payload)
        filename = data.pop("filename", None)
        content = data.pop("content", None)
        updates = parse_prd_updates(
            data,
            max_tags=self.settings.max_tags,
            max_tag_length=self.settings.max_tag_length,
        )
        fields: Dict[str, Any] = derive_prd_fields(content) if content else {}
        fields.update({u.field: u.value for u in updates})
        fields.setdefault("title", filename if isinstance(filename, str) else "")

        record = PRDRecord(filename=filename, **fields)
        engine = self.workflow(instance_id)
        return engine.create_prd(record, content=content)

    def update_prd(self, instance_id: str, filename: str, payload: Mapping[str, Any]) -> WorkflowResult:
        updates = parse_prd_updates(
            payload,
            max_tags=self.settings.max_tags,
            max_tag_length=self.settings.max_tag_length,
        )
        if not updates:
            raise ValidationFailed("No fields to update", {"filename": filename})
        return self.workflow(instance_id).apply(filename, updates)

    def sync_prds(self, instance_id: str) -> PRDSync:
        """Register untracked PRD files, then apply worker queue statuses."""
        engine = self.workflow(instance_id)
        discovered = engine.discover()
        return PRDSync(discovered=discovered, updated=engine.sync_queue())

    # -------------------------------------------------------------------------
    # Skills
    # -------------------------------------------------------------------------

    def list_skills(
        self,
        instance_id: str,
        query: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> Tuple[List[SkillRecord], List[str]]:
        """Filtered skills plus every tag in the collection, from one snapshot."""
        records = self.skill_store(instance_id).list()
        return (
            filter_records(records, query=query, tags=tags, max_tag_length=self.settings.max_tag_length),
            all_tags(records, self.settings.max_tag_length),
        )

    def get_skill(self, instance_id: str, filename: str) -> SkillRecord:
        return self.skill_store(instance_id).get(filename)

    def create_skill(
        self,
        instance_id: str,
        content: str,
        filename: Optional[str] = None,
        name: Optional[str] = None,
        title: Optional[str] = None,
        category: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> SkillRecord:
        """Create a skill; the filename is slugged from ``name`` when absent."""
        if not filename:
            if not name or not name.strip():
                raise ValidationFailed("Skill name or filename is required", {"field": "name"})
            if len(name) > self.settings.max_skill_name_length:
                raise ValidationFailed(
                    f"Skill name must be at most {self.settings.max_skill_name_length} characters",
                    {"field": "name"},
                )
            filename = skill_filename_from_name(name)

        content = validate_skill_content(content, self.settings.max_skill_content_length)
        record = SkillRecord(
            filename=filename,
            title=(title or "").strip() or (name or "").strip() or extract_skill_title(content),
            content=content,
            category=(category or "").strip() or extract_skill_category(content, filename),
            tags=self._tags(tags) if tags is not None else extract_skill_tags(content),
        )
        return self.skill_store(instance_id).create(record)

    def update_skill(self, instance_id: str, filename: str, payload: Mapping[str, Any]) -> SkillRecord:
        updates: List[FieldUpdate] = parse_skill_updates(
            payload,
            max_tags=self.settings.max_tags,
            max_tag_length=self.settings.max_tag_length,
            max_content_length=self.settings.max_skill_content_length,
        )
        if not updates:
            raise ValidationFailed("No fields to update", {"filename": filename})
        return self.skill_store(instance_id).update(filename, updates)

    def delete_skill(self, instance_id: str, filename: str) -> SkillRecord:
        return self.skill_store(instance_id).delete(filename)

    # -------------------------------------------------------------------------
    # Tags
    # -------------------------------------------------------------------------

    def tag_index(self, instance_id: str, kind: str) -> Dict[str, Any]:
        if kind == "prd":
            store: Any = self.prd_store(instance_id)
        elif kind == "skill":
            store = self.skill_store(instance_id)
        else:
            raise ValidationFailed("kind must be 'prd' or 'skill'", {"kind": kind})
        return TagIndex(store, self.settings.max_tag_length).to_dict()

    # -------------------------------------------------------------------------
    # Import / export
    # -------------------------------------------------------------------------

    def _limits(self) -> Dict[str, int]:
        return {
            "max_tags": self.settings.max_tags,
            "max_tag_length": self.settings.max_tag_length,
            "max_content_length": self.settings.max_skill_content_length,
        }

    def export_skills(self, instance_id: str, filenames: Optional[Sequence[str]] = None) -> SkillExport:
        return export_skills(self.skill_store(instance_id), filenames, source_instance=instance_id)

    def import_skills(self, instance_id: str, skills: Sequence[Any]) -> ImportResult:
        return import_skills(self.skill_store(instance_id), skills, **self._limits())

    def copy_skills(
        self,
        source_instance_id: str,
        instance_id: str,
        filenames: Optional[Sequence[str]] = None,
    ) -> ImportResult:
        source = self.skill_store(source_instance_id)
        target = self.skill_store(instance_id)
        if source.key == target.key:
            raise ValidationFailed(
                "Source and target instance must differ",
                {"instanceId": instance_id, "sourceInstanceId": source_instance_id},
            )
        return copy_skills(source, target, filenames, **self._limits())


def get_workspace(request: Request) -> Workspace:
    """FastAPI dependency: the Workspace created by ``create_app``."""
    return request.app.state.workspace
