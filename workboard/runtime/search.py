"""
search.py - In-memory filtering over a record snapshot.

Pure functions only: no I/O and no locking. Callers load a snapshot with
``store.list()`` and filter it here.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, TypeVar

from .tags import DEFAULT_MAX_TAG_LENGTH, normalize_tag

R = TypeVar("R")


def matches_query(record, query: str) -> bool:
    """Case-insensitive substring match on title, filename, or any tag."""
    needle = query.lower()
    if needle in record.title.lower() or needle in record.filename.lower():
        return True
    return any(needle in tag.lower() for tag in record.tags)


def filter_records(
    records: Iterable[R],
    query: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    include_archived: bool = False,
    max_tag_length: int = DEFAULT_MAX_TAG_LENGTH,
) -> List[R]:
    """Return the ordered subset of ``records`` matching every criterion.

    Args:
        records: Snapshot to filter; input order is preserved.
        query: Substring to look for in title, filename and tags. Blank
            queries match everything.
        tags: Required tags (AND semantics): a record must carry all of them.
        include_archived: Keep archived records (PRDs only; skills are never
            archived).
        max_tag_length: Length cap applied to both requested and stored tags
            before comparing them.
    """
    needle = (query or "").strip()
    required = {normalize_tag(t, max_tag_length) for t in tags or ()} - {""}

    result = []
    for record in records:
        if record.archived and not include_archived:
            continue
        if required and not required.issubset(normalize_tag(t, max_tag_length) for t in record.tags):
            continue
        if needle and not matches_query(record, needle):
            continue
        result.append(record)
    return result
