"""
workflow.py - PRD status workflow (kanban) on top of the PRD store.

Any status may move to any other status; the workflow is user-directed, not a
strict pipeline. What the engine guarantees is that a transition and the
aggregate counts returned with it come from the same locked read-modify-write,
so the counts always describe the post-update snapshot.

Counts are derived, never stored as truth:

    sum(pending, inProgress, blocked, completed) == active == total - archived

``archived`` is orthogonal to status: an archived PRD keeps its status but is
left out of the per-status columns.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence, Union

from .atomic import write_atomic
from .content import detect_complexity, estimate_iterations, extract_prd_title
from .errors import DuplicateFilename, IOFailure, NotFound
from .instances import ensure_within
from .tags import all_tags
from .types import FieldUpdate, PRDRecord, PRDStatus, coerce_status, utc_now

if TYPE_CHECKING:
    from .store import PRDStore

logger = logging.getLogger(__name__)

# Board order: active work first, finished work last
STATUS_ORDER = {
    PRDStatus.IN_PROGRESS: 0,
    PRDStatus.BLOCKED: 1,
    PRDStatus.PENDING: 2,
    PRDStatus.COMPLETED: 3,
}

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


@dataclass
class WorkflowStats:
    """Aggregate counts over a PRD snapshot."""

    total: int = 0
    active: int = 0
    pending: int = 0
    in_progress: int = 0
    blocked: int = 0
    completed: int = 0
    archived: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "active": self.active,
            "pending": self.pending,
            "inProgress": self.in_progress,
            "blocked": self.blocked,
            "completed": self.completed,
            "archived": self.archived,
        }


@dataclass
class WorkflowResult:
    """Outcome of a workflow mutation, taken from one consistent snapshot."""

    record: PRDRecord
    previous_status: PRDStatus
    stats: WorkflowStats
    tags: List[str] = field(default_factory=list)


def compute_stats(records: Iterable[PRDRecord]) -> WorkflowStats:
    stats = WorkflowStats()
    for record in records:
        stats.total += 1
        if record.archived:
            stats.archived += 1
            continue
        stats.active += 1
        if record.status is PRDStatus.PENDING:
            stats.pending += 1
        elif record.status is PRDStatus.IN_PROGRESS:
            stats.in_progress += 1
        elif record.status is PRDStatus.BLOCKED:
            stats.blocked += 1
        elif record.status is PRDStatus.COMPLETED:
            stats.completed += 1
    return stats


def sort_records(records: Iterable[PRDRecord]) -> List[PRDRecord]:
    """Archived last, then by status column order, then by priority."""
    return sorted(
        records,
        key=lambda r: (
            r.archived,
            STATUS_ORDER[r.status],
            PRIORITY_ORDER[r.priority.value],
        ),
    )


def board(
    records: Iterable[PRDRecord],
    include_archived: bool = False,
) -> Dict[str, List[PRDRecord]]:
    """Group PRDs into kanban columns keyed by status value, in board order."""
    columns: Dict[str, List[PRDRecord]] = {
        status.value: [] for status in sorted(STATUS_ORDER, key=STATUS_ORDER.get)
    }
    for record in sort_records(records):
        if record.archived and not include_archived:
            continue
        columns[record.status.value].append(record)
    return columns


def apply_transition_rules(before: PRDRecord, after: PRDRecord) -> PRDRecord:
    """Stamp completedAt the first time a PRD reaches completed."""
    if after.status is PRDStatus.COMPLETED and after.completed_at is None:
        return dataclasses.replace(after, completed_at=utc_now())
    return after


# Worker queue statuses that map onto a PRD status; others are ignored
QUEUE_STATUS_MAP = {
    "pending": PRDStatus.PENDING,
    "in_progress": PRDStatus.IN_PROGRESS,
    "completed": PRDStatus.COMPLETED,
}


def read_queue_statuses(queue_file: Path) -> Dict[str, PRDStatus]:
    """Map PRD filename -> status from a worker queue file.

    The queue is written by background workers as ``{"queue": [{"filename",
    "status", ...}]}``. A missing or unreadable queue yields no statuses.
    """
    try:
        data = json.loads(queue_file.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable PRD queue %s: %s", queue_file, e)
        return {}

    items = data.get("queue") if isinstance(data, dict) else None
    if not isinstance(items, list):
        return {}
    statuses: Dict[str, PRDStatus] = {}
    for item in items:
        if not isinstance(item, dict):
            continue
        filename = item.get("filename")
        raw_status = item.get("status")
        status = QUEUE_STATUS_MAP.get(raw_status) if isinstance(raw_status, str) else None
        if isinstance(filename, str) and status is not None:
            statuses[filename] = status
    return statuses


def derive_prd_fields(content: str) -> Dict[str, Any]:
    """Metadata a PRD body implies when the producer does not supply it."""
    complexity = detect_complexity(content)
    return {
        "title": extract_prd_title(content),
        "complexity": complexity,
        "estimated_iterations": estimate_iterations(content, complexity),
    }


class WorkflowEngine:
    """Applies PRD status transitions and updates atomically with their counts.

    Args:
        store: The instance's PRD store.
        prds_dir: Directory holding PRD markdown bodies (for create/discover).
        queue_file: Worker queue whose statuses sync_queue() applies.
    """

    def __init__(
        self,
        store: "PRDStore",
        prds_dir: Optional[Path] = None,
        queue_file: Optional[Path] = None,
    ):
        self.store = store
        self.prds_dir = prds_dir
        self.queue_file = queue_file

    def stats(self) -> WorkflowStats:
        return compute_stats(self.store.list())

    def board(self, include_archived: bool = False) -> Dict[str, List[PRDRecord]]:
        return board(self.store.list(), include_archived=include_archived)

    def apply(
        self,
        filename: str,
        updates: Union[Sequence[FieldUpdate], Dict[str, Any]],
    ) -> WorkflowResult:
        """Apply a partial update (status included) and recompute counts.

        Raises:
            NotFound: If the PRD does not exist.
            ValidationFailed: If an update field is unknown or invalid.
        """
        parsed = self.store.coerce_updates(updates)

        def mutation(records: List[PRDRecord]) -> WorkflowResult:
            index = self.store.index_of(records, filename)
            if index < 0:
                raise NotFound(self.store.kind, filename)
            before = records[index]
            updated = self.store.apply_updates(records, filename, parsed)
            updated = apply_transition_rules(before, updated)
            records[index] = updated
            return WorkflowResult(updated, before.status, compute_stats(records), all_tags(records))

        result = self.store.mutate(mutation)
        if result.record.status is not result.previous_status:
            logger.info(
                "PRD %s moved %s -> %s",
                filename,
                result.previous_status.value,
                result.record.status.value,
            )
        return result

    def transition(self, filename: str, status: Union[PRDStatus, str]) -> WorkflowResult:
        """Move a PRD to ``status``. Every transition is permitted."""
        return self.apply(filename, [FieldUpdate("status", coerce_status(status))])

    # -------------------------------------------------------------------------
    # PRD bodies
    # -------------------------------------------------------------------------

    def _body_path(self, filename: str) -> Path:
        if self.prds_dir is None:
            raise ValueError("WorkflowEngine has no prds_dir configured")
        return ensure_within(self.prds_dir, self.prds_dir / filename)

    def create_prd(self, record: PRDRecord, content: Optional[str] = None) -> PRDRecord:
        """Create PRD metadata, writing its markdown body first when given.

        The body is written inside the store lock after the duplicate check,
        so an existing PRD's markdown is never overwritten. If the metadata
        write then fails, the body this call wrote is removed again before
        the lock is released.

        Raises:
            DuplicateFilename: If the PRD metadata or its body already exists.
            IOFailure: If the body or the store cannot be written.
        """
        if content is None:
            return self.store.create(record)

        self.store._validate_new(record)
        body_path = self._body_path(record.filename)
        wrote_body = False

        def mutation(records: List[PRDRecord]) -> PRDRecord:
            nonlocal wrote_body
            if any(r.filename == record.filename for r in records) or body_path.exists():
                raise DuplicateFilename(self.store.kind, record.filename)
            try:
                write_atomic(body_path, content)
            except OSError as e:
                logger.error("Failed to write PRD body %s: %s", body_path, e)
                raise IOFailure("Failed to write PRD body", {"path": str(body_path)}) from e
            wrote_body = True
            stored = self.store._on_create(record)
            records.append(stored)
            return stored

        def remove_body() -> None:
            if not wrote_body:
                return
            logger.warning("Removing PRD body %s after failed create", body_path)
            try:
                body_path.unlink()
            except FileNotFoundError:
                pass

        created = self.store.mutate(mutation, on_abort=remove_body)
        logger.info("Created PRD %s with body at %s", record.filename, body_path)
        return created

    def discover(self) -> List[PRDRecord]:
        """Register metadata for markdown files in prds_dir that have none.

        Existing records are never modified. Returns the newly created records.
        """
        if self.prds_dir is None or not self.prds_dir.is_dir():
            return []

        candidates = sorted(
            p for p in self.prds_dir.glob("*.md") if p.is_file() and not p.name.startswith(".")
        )

        def mutation(records: List[PRDRecord]) -> List[PRDRecord]:
            known = {r.filename for r in records}
            added = []
            for path in candidates:
                if path.name in known:
                    continue
                try:
                    content = path.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError) as e:
                    logger.warning("Skipping unreadable PRD %s: %s", path, e)
                    continue
                record = PRDRecord(filename=path.name, created_at=utc_now(), **derive_prd_fields(content))
                records.append(record)
                added.append(record)
            return added

        added = self.store.mutate(mutation)
        if added:
            logger.info("Discovered %d PRD file(s) in %s", len(added), self.prds_dir)
        return added

    def sync_queue(self) -> List[PRDRecord]:
        """Apply worker queue statuses to the PRDs they name.

        Runs under the store lock like any other transition, so completedAt
        is stamped the same way. Queue entries for unknown PRDs are ignored.
        Returns the records whose status changed.
        """
        if self.queue_file is None:
            return []
        statuses = read_queue_statuses(self.queue_file)
        if not statuses:
            return []

        def mutation(records: List[PRDRecord]) -> List[PRDRecord]:
            changed = []
            for index, before in enumerate(records):
                status = statuses.get(before.filename)
                if status is None or status is before.status:
                    continue
                after = self.store._on_update(before, dataclasses.replace(before, status=status))
                after = apply_transition_rules(before, after)
                records[index] = after
                changed.append(after)
            return changed

        changed = self.store.mutate(mutation)
        for record in changed:
            logger.info("PRD %s moved to %s from worker queue", record.filename, record.status.value)
        return changed
