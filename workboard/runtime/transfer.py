"""
transfer.py - Skill export and import across instances.

Export is a pure read. Import is additive and non-destructive:

- a skill whose filename already exists in the target is skipped and the
  existing record is left untouched;
- a skill that fails validation is skipped and reported in ``errors``;
- everything else is created.

Import is deliberately partial-success: one bad record never aborts the
batch. Re-running an import is idempotent (everything is skipped the second
time), which is also what makes it safe to retry after a transient
LockTimeout or IOFailure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .content import extract_skill_category, extract_skill_title
from .errors import DuplicateFilename, ValidationFailed
from .schemas import SKILL_RECORD_VALIDATOR, schema_errors
from .store import SkillStore
from .tags import DEFAULT_MAX_TAG_LENGTH, DEFAULT_MAX_TAGS, normalize_tags
from .types import (
    DEFAULT_MAX_SKILL_CONTENT_LENGTH,
    SkillRecord,
    skill_to_dict,
    utc_now,
    validate_skill_content,
    validate_skill_filename,
)

logger = logging.getLogger(__name__)

EXPORT_VERSION = 1


@dataclass
class SkillExport:
    """A portable bundle of skills read from one instance."""

    skills: List[SkillRecord]
    exported_at: str
    missing: List[str] = field(default_factory=list)
    source_instance: Optional[str] = None

    @property
    def skill_count(self) -> int:
        return len(self.skills)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "version": EXPORT_VERSION,
            "exportedAt": self.exported_at,
            "skillCount": self.skill_count,
            "skills": [skill_to_dict(s) for s in self.skills],
            "missing": list(self.missing),
        }
        if self.source_instance is not None:
            data["sourceInstance"] = self.source_instance
        return data


@dataclass
class ImportIssue:
    filename: str
    reason: str


@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0
    errors: List[ImportIssue] = field(default_factory=list)
    imported_files: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "errors": [{"filename": e.filename, "reason": e.reason} for e in self.errors],
            "importedFiles": list(self.imported_files),
        }


def export_skills(
    store: SkillStore,
    filenames: Optional[Iterable[str]] = None,
    source_instance: Optional[str] = None,
) -> SkillExport:
    """Read the named skills (all skills when ``filenames`` is empty).

    Requested names that do not exist are listed in ``missing`` rather than
    failing the export.
    """
    records = store.list()
    wanted = list(filenames or [])
    if not wanted:
        selected = records
        missing: List[str] = []
    else:
        by_name = {r.filename: r for r in records}
        selected = [by_name[name] for name in dict.fromkeys(wanted) if name in by_name]
        missing = [name for name in dict.fromkeys(wanted) if name not in by_name]

    return SkillExport(
        skills=selected,
        exported_at=utc_now(),
        missing=missing,
        source_instance=source_instance,
    )


def validate_incoming_skill(
    data: Any,
    max_tags: int = DEFAULT_MAX_TAGS,
    max_tag_length: int = DEFAULT_MAX_TAG_LENGTH,
    max_content_length: int = DEFAULT_MAX_SKILL_CONTENT_LENGTH,
) -> SkillRecord:
    """Turn one incoming export entry into a new SkillRecord.

    Raises:
        ValidationFailed: On a malformed entry, unsafe filename, empty or
            oversized content, or too many tags.
    """
    if not isinstance(data, Mapping):
        raise ValidationFailed("Skill entry must be an object")

    errors = schema_errors(SKILL_RECORD_VALIDATOR, data)
    if errors:
        raise ValidationFailed("; ".join(errors), {"errors": errors})

    filename = validate_skill_filename(data["filename"])
    content = validate_skill_content(data["content"], max_content_length)
    tags = normalize_tags(data.get("tags") or [], max_tags=max_tags, max_length=max_tag_length)

    return SkillRecord(
        filename=filename,
        title=(data.get("title") or "").strip() or extract_skill_title(content),
        content=content,
        category=(data.get("category") or "").strip() or extract_skill_category(content, filename),
        tags=tags,
    )


def _entry_name(data: Any) -> str:
    if isinstance(data, Mapping) and isinstance(data.get("filename"), str):
        return data["filename"]
    return "<invalid>"


def import_skills(
    store: SkillStore,
    skills: Iterable[Any],
    max_tags: int = DEFAULT_MAX_TAGS,
    max_tag_length: int = DEFAULT_MAX_TAG_LENGTH,
    max_content_length: int = DEFAULT_MAX_SKILL_CONTENT_LENGTH,
) -> ImportResult:
    """Additively import skills into ``store``.

    Returns:
        ImportResult with imported/skipped counts. ``skipped`` counts both
        duplicates and invalid entries; invalid entries are also listed in
        ``errors``.
    """
    result = ImportResult()
    existing = {r.filename for r in store.list()}

    for entry in skills:
        name = _entry_name(entry)
        if name in existing:
            result.skipped += 1
            continue

        try:
            record = validate_incoming_skill(
                entry,
                max_tags=max_tags,
                max_tag_length=max_tag_length,
                max_content_length=max_content_length,
            )
        except ValidationFailed as e:
            logger.warning("Skipping invalid skill %s: %s", name, e.message)
            result.skipped += 1
            result.errors.append(ImportIssue(name, e.message))
            continue

        try:
            store.create(record)
        except DuplicateFilename:
            # Lost a race with a concurrent create, or repeated in this batch
            result.skipped += 1
            existing.add(record.filename)
            continue

        existing.add(record.filename)
        result.imported += 1
        result.imported_files.append(record.filename)

    logger.info(
        "Imported %d skill(s) into %s, skipped %d (%d invalid)",
        result.imported,
        store.path.parent,
        result.skipped,
        len(result.errors),
    )
    return result


def copy_skills(
    source: SkillStore,
    target: SkillStore,
    filenames: Optional[Iterable[str]] = None,
    **limits: int,
) -> ImportResult:
    """Export from one instance and import into another in one call."""
    bundle = export_skills(source, filenames)
    return import_skills(target, [skill_to_dict(s) for s in bundle.skills], **limits)
