"""
tags.py - Derived tag index for PRD and Skill collections.

Tags are never stored as an independent source of truth. The index is
recomputed from a record snapshot on every read, so it can never drift from
the records themselves.

Per-record caps (tag count, tag length) are the caller's responsibility and
are applied through normalize_tags() before an update reaches the store.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Protocol

from .errors import ValidationFailed

DEFAULT_MAX_TAGS = 10
DEFAULT_MAX_TAG_LENGTH = 20


class Tagged(Protocol):
    tags: List[str]

    @property
    def archived(self) -> bool: ...


def normalize_tag(tag: Any, max_length: int = DEFAULT_MAX_TAG_LENGTH) -> str:
    """Lower-case, trim and length-cap a single tag. Returns "" for blanks."""
    return str(tag).lower().strip()[:max_length].strip()


def normalize_tags(
    tags: Iterable[Any],
    max_tags: Optional[int] = DEFAULT_MAX_TAGS,
    max_length: int = DEFAULT_MAX_TAG_LENGTH,
) -> List[str]:
    """Normalize a tag list, dropping blanks and duplicates, preserving order.

    Args:
        tags: Raw tags from a client.
        max_tags: Maximum number of distinct tags allowed (None disables).
        max_length: Per-tag length cap.

    Raises:
        ValidationFailed: If more than ``max_tags`` tags remain.
    """
    seen: Dict[str, None] = {}
    for tag in tags:
        normalized = normalize_tag(tag, max_length)
        if normalized:
            seen.setdefault(normalized, None)
    result = list(seen)
    if max_tags is not None and len(result) > max_tags:
        raise ValidationFailed(
            f"At most {max_tags} tags are allowed",
            {"field": "tags", "count": len(result), "max": max_tags},
        )
    return result


def all_tags(
    records: Iterable[Tagged],
    max_length: int = DEFAULT_MAX_TAG_LENGTH,
) -> List[str]:
    """Sorted, de-duplicated tags across all non-archived records."""
    found = set()
    for record in records:
        if record.archived:
            continue
        for tag in record.tags:
            normalized = normalize_tag(tag, max_length)
            if normalized:
                found.add(normalized)
    return sorted(found)


def tag_counts(
    records: Iterable[Tagged],
    max_length: int = DEFAULT_MAX_TAG_LENGTH,
) -> Dict[str, int]:
    """How many non-archived records use each tag, keyed in sorted order."""
    counts: Counter = Counter()
    for record in records:
        if record.archived:
            continue
        counts.update({normalize_tag(t, max_length) for t in record.tags} - {""})
    return {tag: counts[tag] for tag in sorted(counts)}


class TagIndex:
    """Tag view over a store, read from a fresh snapshot on every call."""

    def __init__(self, store, max_length: int = DEFAULT_MAX_TAG_LENGTH):
        self._store = store
        self._max_length = max_length

    def all_tags(self) -> List[str]:
        return all_tags(self._store.list(), self._max_length)

    def counts(self) -> Dict[str, int]:
        return tag_counts(self._store.list(), self._max_length)

    def to_dict(self) -> Dict[str, Any]:
        """Tags and per-tag counts taken from one snapshot."""
        records = self._store.list()
        return {
            "tags": all_tags(records, self._max_length),
            "counts": tag_counts(records, self._max_length),
        }
