"""
types.py - Record types and partial-update variants for the workboard store.

This module defines the two record kinds held per instance (PRDs and Skills),
their enum-restricted fields, the camelCase wire/disk codecs, and the
FieldUpdate variant used for partial updates.

Partial updates are parsed, never merged blindly: each kind has a fixed table
of updatable fields, and every value is coerced and validated while parsing.
Unknown fields are rejected with ValidationFailed.

Usage:
    from workboard.runtime.types import (
        PRDStatus, PRDPriority, PRDComplexity,
        PRDRecord, SkillRecord, FieldUpdate,
        prd_to_dict, prd_from_dict, skill_to_dict, skill_from_dict,
        parse_prd_updates, parse_skill_updates,
        validate_filename, validate_skill_filename,
    )
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from .errors import ValidationFailed
from .tags import DEFAULT_MAX_TAG_LENGTH, DEFAULT_MAX_TAGS, normalize_tags

# Skill filenames are slug-like markdown names
SKILL_FILENAME_PATTERN = re.compile(r"^[a-z0-9_-]+\.md$")

DEFAULT_MAX_SKILL_CONTENT_LENGTH = 100_000


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class PRDStatus(str, Enum):
    """Kanban column of a PRD."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    BLOCKED = "blocked"
    COMPLETED = "completed"


class PRDPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PRDComplexity(str, Enum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


# =============================================================================
# Records
# =============================================================================


@dataclass
class PRDRecord:
    """Metadata for one PRD work item.

    Attributes:
        filename: Unique key within the instance (e.g. "auth-flow.md").
        title: Display title.
        status: Current kanban column.
        priority: high / medium / low.
        complexity: simple / medium / complex.
        tags: Normalized tag list, replaced wholesale on update.
        archived: Hidden from the board but kept for history.
        created_at: ISO timestamp, stamped on create when empty.
        estimated_iterations: Optional agent iteration estimate.
        dependencies: Filenames of PRDs this one depends on.
        actual_iterations: Iterations the agent actually used.
        completed_at: Stamped the first time status becomes completed.
    """

    filename: str
    title: str
    status: PRDStatus = PRDStatus.PENDING
    priority: PRDPriority = PRDPriority.MEDIUM
    complexity: PRDComplexity = PRDComplexity.MEDIUM
    tags: List[str] = field(default_factory=list)
    archived: bool = False
    created_at: str = ""
    estimated_iterations: Optional[int] = None
    dependencies: List[str] = field(default_factory=list)
    actual_iterations: Optional[int] = None
    completed_at: Optional[str] = None


@dataclass
class SkillRecord:
    """A reusable coding guideline consumed by agents."""

    filename: str
    title: str
    content: str
    category: str = "General"
    tags: List[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    # Skills have no archive flag; exposed so filters treat both kinds alike
    @property
    def archived(self) -> bool:
        return False


@dataclass(frozen=True)
class FieldUpdate:
    """One validated field assignment in a partial update.

    ``field`` is the record attribute name; ``value`` has already been
    coerced to the attribute's type.
    """

    field: str
    value: Any


# =============================================================================
# Filename validation
# =============================================================================


def validate_filename(filename: Any, kind: str = "record") -> str:
    """Validate a record key that will later be joined into a filesystem path.

    Args:
        filename: Candidate filename from a client or import payload.
        kind: Record kind for error messages.

    Returns:
        The filename unchanged.

    Raises:
        ValidationFailed: If the name is empty, hidden, or contains path
            separators or traversal components.
    """
    if not isinstance(filename, str) or not filename.strip():
        raise ValidationFailed(f"{kind} filename is required", {"filename": filename})
    if "/" in filename or "\\" in filename or "\x00" in filename:
        raise ValidationFailed(
            f"{kind} filename must not contain path separators",
            {"filename": filename},
        )
    if filename in (".", "..") or filename.startswith("."):
        raise ValidationFailed(f"Invalid {kind} filename", {"filename": filename})
    return filename


def validate_skill_filename(filename: Any) -> str:
    validate_filename(filename, "skill")
    if not SKILL_FILENAME_PATTERN.match(filename):
        raise ValidationFailed(
            "Invalid skill filename - use lowercase letters, numbers, '-' or '_' and a .md suffix",
            {"filename": filename, "pattern": SKILL_FILENAME_PATTERN.pattern},
        )
    return filename


def skill_filename_from_name(name: str) -> str:
    """Slug a human skill name into a filename ("React Hooks" -> "react_hooks.md")."""
    slug = re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")
    return validate_skill_filename(f"{slug}.md")


# =============================================================================
# Codecs (camelCase on the wire and on disk)
# =============================================================================


def prd_to_dict(record: PRDRecord) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "filename": record.filename,
        "title": record.title,
        "status": record.status.value,
        "priority": record.priority.value,
        "complexity": record.complexity.value,
        "tags": list(record.tags),
        "archived": record.archived,
        "createdAt": record.created_at,
        "dependencies": list(record.dependencies),
    }
    if record.estimated_iterations is not None:
        data["estimatedIterations"] = record.estimated_iterations
    if record.actual_iterations is not None:
        data["actualIterations"] = record.actual_iterations
    if record.completed_at is not None:
        data["completedAt"] = record.completed_at
    return data


def prd_from_dict(data: Mapping[str, Any]) -> PRDRecord:
    """Build a PRDRecord from a stored document entry.

    Raises:
        ValueError: If an enum field holds an unknown value.
    """
    return PRDRecord(
        filename=data["filename"],
        title=data.get("title", data["filename"]),
        status=PRDStatus(data.get("status", PRDStatus.PENDING.value)),
        priority=PRDPriority(data.get("priority", PRDPriority.MEDIUM.value)),
        complexity=PRDComplexity(data.get("complexity", PRDComplexity.MEDIUM.value)),
        tags=list(data.get("tags") or []),
        archived=bool(data.get("archived", False)),
        created_at=data.get("createdAt", ""),
        estimated_iterations=data.get("estimatedIterations"),
        dependencies=list(data.get("dependencies") or []),
        actual_iterations=data.get("actualIterations"),
        completed_at=data.get("completedAt"),
    )


def skill_to_dict(record: SkillRecord) -> Dict[str, Any]:
    return {
        "filename": record.filename,
        "title": record.title,
        "category": record.category,
        "tags": list(record.tags),
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
        "content": record.content,
    }


def skill_from_dict(data: Mapping[str, Any]) -> SkillRecord:
    return SkillRecord(
        filename=data["filename"],
        title=data.get("title", data["filename"]),
        content=data["content"],
        category=data.get("category") or "General",
        tags=list(data.get("tags") or []),
        created_at=data.get("createdAt", ""),
        updated_at=data.get("updatedAt", ""),
    )


# =============================================================================
# Partial-update parsing
# =============================================================================


def _enum_coercer(enum_cls: type, label: str) -> Callable[[Any], Any]:
    def coerce(value: Any) -> Any:
        try:
            return enum_cls(value)
        except ValueError:
            valid = ", ".join(m.value for m in enum_cls)
            raise ValidationFailed(
                f"Invalid {label}. Must be one of: {valid}",
                {"field": label, "value": value},
            )

    return coerce


def _non_empty_str(label: str) -> Callable[[Any], str]:
    def coerce(value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValidationFailed(f"{label} must be a non-empty string", {"field": label})
        return value.strip()

    return coerce


def _optional_count(label: str) -> Callable[[Any], Optional[int]]:
    def coerce(value: Any) -> Optional[int]:
        if value is None:
            return None
        if isinstance(value, bool):
            raise ValidationFailed(f"{label} must be an integer", {"field": label})
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            raise ValidationFailed(f"{label} must be an integer", {"field": label})

    return coerce


def _bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValidationFailed("archived must be a boolean", {"field": "archived"})
    return value


def _dependencies(value: Any) -> List[str]:
    if not isinstance(value, list):
        raise ValidationFailed("dependencies must be an array", {"field": "dependencies"})
    return [validate_filename(v, "dependency") for v in value]


def _tags(max_tags: int, max_tag_length: int) -> Callable[[Any], List[str]]:
    def coerce(value: Any) -> List[str]:
        if not isinstance(value, list):
            raise ValidationFailed("Tags must be an array", {"field": "tags"})
        return normalize_tags(value, max_tags=max_tags, max_length=max_tag_length)

    return coerce


def _skill_content(max_length: int) -> Callable[[Any], str]:
    def coerce(value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValidationFailed("Skill content is required", {"field": "content"})
        if len(value) > max_length:
            raise ValidationFailed(
                f"Skill content must be at most {max_length} characters",
                {"field": "content", "length": len(value)},
            )
        return value

    return coerce


def _parse_updates(
    payload: Mapping[str, Any],
    table: Dict[str, tuple],
    kind: str,
) -> List[FieldUpdate]:
    unknown = sorted(set(payload) - set(table))
    if unknown:
        raise ValidationFailed(
            f"Unknown {kind} update field(s): {', '.join(unknown)}",
            {"fields": unknown, "allowed": sorted(table)},
        )
    updates = []
    for key, value in payload.items():
        attr, coerce = table[key]
        updates.append(FieldUpdate(attr, coerce(value)))
    return updates


def parse_prd_updates(
    payload: Mapping[str, Any],
    max_tags: int = DEFAULT_MAX_TAGS,
    max_tag_length: int = DEFAULT_MAX_TAG_LENGTH,
) -> List[FieldUpdate]:
    """Parse a PRD partial-update payload (without ``filename``).

    Args:
        payload: camelCase field -> new value.
        max_tags: Tag-count cap applied to a ``tags`` update.
        max_tag_length: Per-tag length cap.

    Returns:
        Validated FieldUpdate list in payload order.

    Raises:
        ValidationFailed: On unknown fields or invalid values.
    """
    table = {
        "title": ("title", _non_empty_str("title")),
        "status": ("status", _enum_coercer(PRDStatus, "status")),
        "priority": ("priority", _enum_coercer(PRDPriority, "priority")),
        "complexity": ("complexity", _enum_coercer(PRDComplexity, "complexity")),
        "tags": ("tags", _tags(max_tags, max_tag_length)),
        "archived": ("archived", _bool),
        "estimatedIterations": ("estimated_iterations", _optional_count("estimatedIterations")),
        "actualIterations": ("actual_iterations", _optional_count("actualIterations")),
        "dependencies": ("dependencies", _dependencies),
    }
    return _parse_updates(payload, table, "PRD")


def parse_skill_updates(
    payload: Mapping[str, Any],
    max_tags: int = DEFAULT_MAX_TAGS,
    max_tag_length: int = DEFAULT_MAX_TAG_LENGTH,
    max_content_length: int = DEFAULT_MAX_SKILL_CONTENT_LENGTH,
) -> List[FieldUpdate]:
    """Parse a Skill partial-update payload. See parse_prd_updates."""
    table = {
        "title": ("title", _non_empty_str("title")),
        "category": ("category", _non_empty_str("category")),
        "tags": ("tags", _tags(max_tags, max_tag_length)),
        "content": ("content", _skill_content(max_content_length)),
    }
    return _parse_updates(payload, table, "skill")


def coerce_status(value: Any) -> PRDStatus:
    return _enum_coercer(PRDStatus, "status")(value)


def validate_skill_content(content: Any, max_length: int = DEFAULT_MAX_SKILL_CONTENT_LENGTH) -> str:
    return _skill_content(max_length)(content)
