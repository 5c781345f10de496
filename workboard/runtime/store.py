"""
store.py - Lock-guarded, file-backed record collections.

Each instance holds one store file per record kind:

    <instance>/
      planning/
        prd-organizer.json        # PRDStore document
        prd-organizer.json.lock   # cross-process lock (transient)
        skills.json               # SkillStore document

A store document is ``{"version", "records": [...], "tags", "stats"?,
"lastUpdated"}``. Only ``records`` is authoritative. The derived fields are
recomputed on every write for external readers and ignored on read.

Every mutation is a read-modify-write under the store's lock:

    lock(store file) -> read (missing => empty) -> validate -> deserialize
      -> apply in memory -> serialize -> atomic replace -> unlock

Concurrent updates to different records in the same file still serialize
through the one lock. That trades throughput for correctness without a
transaction log.

Usage:
    from workboard.runtime.store import PRDStore, SkillStore

    store = PRDStore(instance.path / "planning" / "prd-organizer.json", locks)
    store.create(PRDRecord(filename="auth.md", title="Auth"))
    store.update("auth.md", [FieldUpdate("priority", PRDPriority.HIGH)])
"""

from __future__ import annotations

import dataclasses
import json
import logging
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
    Union,
)

from jsonschema import Draft7Validator

from .atomic import write_json_atomic
from .errors import DuplicateFilename, IOFailure, LockTimeout, NotFound, ValidationFailed
from .locking import LockManager, lock_file_for
from .schemas import PRD_DOCUMENT_VALIDATOR, SKILL_DOCUMENT_VALIDATOR, schema_errors
from .tags import all_tags
from .types import (
    FieldUpdate,
    PRDRecord,
    SkillRecord,
    parse_prd_updates,
    parse_skill_updates,
    prd_from_dict,
    prd_to_dict,
    skill_from_dict,
    skill_to_dict,
    utc_now,
    validate_filename,
    validate_skill_filename,
)
from .workflow import compute_stats

logger = logging.getLogger(__name__)

R = TypeVar("R")
T = TypeVar("T")

DOCUMENT_VERSION = 1

Updates = Union[Sequence[FieldUpdate], Mapping[str, Any]]


class RecordStore(Generic[R]):
    """Generic CRUD over one JSON store file.

    Subclasses provide the codec (``_to_dict`` / ``_from_dict``), the
    document validator, the set of updatable fields, and create/update hooks.

    Args:
        path: Store file path.
        locks: Shared LockManager (one per process).
    """

    kind = "record"
    validator: Draft7Validator
    updatable_fields: frozenset = frozenset()

    def __init__(self, path: Path, locks: LockManager):
        self.path = Path(path)
        self.key = str(self.path.resolve())
        self.lock_file = lock_file_for(self.path)
        self._locks = locks

    # -------------------------------------------------------------------------
    # Subclass hooks
    # -------------------------------------------------------------------------

    def _to_dict(self, record: R) -> Dict[str, Any]:
        raise NotImplementedError

    def _from_dict(self, data: Mapping[str, Any]) -> R:
        raise NotImplementedError

    def _parse_updates(self, payload: Mapping[str, Any]) -> List[FieldUpdate]:
        raise NotImplementedError

    def _validate_new(self, record: R) -> None:
        validate_filename(record.filename, self.kind)

    def _on_create(self, record: R) -> R:
        return record

    def _on_update(self, before: R, after: R) -> R:
        return after

    def _derived(self, records: List[R]) -> Dict[str, Any]:
        return {"tags": all_tags(records)}

    # -------------------------------------------------------------------------
    # Disk I/O
    # -------------------------------------------------------------------------

    def _read(self) -> List[R]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.error("Failed to read %s store %s: %s", self.kind, self.path, e)
            raise IOFailure(f"Failed to read {self.kind} store", {"path": str(self.path)}) from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Corrupt %s store %s: %s", self.kind, self.path, e)
            raise IOFailure(f"Corrupt {self.kind} store", {"path": str(self.path)}) from e

        errors = schema_errors(self.validator, data)
        if errors:
            logger.error("Invalid %s store %s: %s", self.kind, self.path, "; ".join(errors))
            raise IOFailure(
                f"Invalid {self.kind} store document",
                {"path": str(self.path), "errors": errors},
            )

        try:
            return [self._from_dict(item) for item in data["records"]]
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Undecodable %s record in %s: %s", self.kind, self.path, e)
            raise IOFailure(f"Invalid {self.kind} record", {"path": str(self.path)}) from e

    def _write(self, records: List[R]) -> None:
        document: Dict[str, Any] = {
            "version": DOCUMENT_VERSION,
            "records": [self._to_dict(r) for r in records],
        }
        document.update(self._derived(records))
        document["lastUpdated"] = utc_now()
        try:
            write_json_atomic(self.path, document)
        except OSError as e:
            logger.error("Failed to write %s store %s: %s", self.kind, self.path, e)
            raise IOFailure(f"Failed to write {self.kind} store", {"path": str(self.path)}) from e

    # -------------------------------------------------------------------------
    # Reads (lock-free; atomic replace guarantees a complete document)
    # -------------------------------------------------------------------------

    def list(self) -> List[R]:
        return self._read()

    def snapshot(self) -> List[R]:
        """Point-in-time copy of every record; same as list()."""
        return self._read()

    def find(self, filename: str) -> Optional[R]:
        for record in self._read():
            if record.filename == filename:
                return record
        return None

    def get(self, filename: str) -> R:
        record = self.find(filename)
        if record is None:
            raise NotFound(self.kind, filename)
        return record

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def mutate(
        self,
        fn: Callable[[List[R]], T],
        on_abort: Optional[Callable[[], None]] = None,
    ) -> T:
        """Run ``fn`` on the current record list under the store lock.

        ``fn`` edits the list in place and returns a result. The list is
        written back atomically only if ``fn`` returns normally; any
        exception aborts without touching the file. ``on_abort`` runs, still
        under the lock, when ``fn`` or the write fails, so side effects made
        by ``fn`` outside the store file can be undone.

        Raises:
            LockTimeout: If the store lock is not acquired in time.
            IOFailure: If the store cannot be read or written.
        """
        try:
            with self._locks.locked(self.key, lock_file=self.lock_file):
                records = self._read()
                try:
                    result = fn(records)
                    self._write(records)
                except Exception:
                    if on_abort is not None:
                        on_abort()
                    raise
                return result
        except LockTimeout:
            logger.warning("Lock timeout on %s store %s", self.kind, self.path)
            raise
        except OSError as e:
            logger.error("Lock I/O failed for %s store %s: %s", self.kind, self.path, e)
            raise IOFailure(f"Failed to lock {self.kind} store", {"path": str(self.path)}) from e

    def create(self, record: R) -> R:
        """Insert a new record.

        Raises:
            DuplicateFilename: If a record with the same filename exists.
            ValidationFailed: If the record key or required content is invalid.
        """
        self._validate_new(record)

        def apply(records: List[R]) -> R:
            if any(r.filename == record.filename for r in records):
                raise DuplicateFilename(self.kind, record.filename)
            stored = self._on_create(record)
            records.append(stored)
            return stored

        created = self.mutate(apply)
        logger.info("Created %s %s in %s", self.kind, record.filename, self.path.parent)
        return created

    def coerce_updates(self, updates: Updates) -> List[FieldUpdate]:
        """Accept parsed FieldUpdates or a raw camelCase payload."""
        if isinstance(updates, Mapping):
            return self._parse_updates(updates)
        result = list(updates)
        unknown = sorted({u.field for u in result} - self.updatable_fields)
        if unknown:
            raise ValidationFailed(
                f"Fields not updatable on {self.kind}: {', '.join(unknown)}",
                {"fields": unknown},
            )
        return result

    @staticmethod
    def index_of(records: List[R], filename: str) -> int:
        for i, record in enumerate(records):
            if record.filename == filename:
                return i
        return -1

    def apply_updates(self, records: List[R], filename: str, updates: List[FieldUpdate]) -> R:
        """Merge ``updates`` into the named record within ``records`` in place.

        Must be called from inside ``mutate``. List-valued fields are replaced
        wholesale, never merged element-wise.
        """
        index = self.index_of(records, filename)
        if index < 0:
            raise NotFound(self.kind, filename)
        before = records[index]
        after = dataclasses.replace(before, **{u.field: u.value for u in updates})
        after = self._on_update(before, after)
        records[index] = after
        return after

    def update(self, filename: str, updates: Updates) -> R:
        """Field-level merge of ``updates`` into an existing record.

        Raises:
            NotFound: If no record has this filename.
            ValidationFailed: If an update names a field that is not updatable.
        """
        parsed = self.coerce_updates(updates)
        updated = self.mutate(lambda records: self.apply_updates(records, filename, parsed))
        logger.debug("Updated %s %s fields=%s", self.kind, filename, [u.field for u in parsed])
        return updated


class PRDStore(RecordStore[PRDRecord]):
    """PRD metadata. PRDs are archived, never deleted."""

    kind = "prd"
    validator = PRD_DOCUMENT_VALIDATOR
    updatable_fields = frozenset(
        {
            "title",
            "status",
            "priority",
            "complexity",
            "tags",
            "archived",
            "estimated_iterations",
            "actual_iterations",
            "dependencies",
            "completed_at",
        }
    )

    def _to_dict(self, record: PRDRecord) -> Dict[str, Any]:
        return prd_to_dict(record)

    def _from_dict(self, data: Mapping[str, Any]) -> PRDRecord:
        return prd_from_dict(data)

    def _parse_updates(self, payload: Mapping[str, Any]) -> List[FieldUpdate]:
        return parse_prd_updates(payload)

    def _on_create(self, record: PRDRecord) -> PRDRecord:
        if not record.created_at:
            return dataclasses.replace(record, created_at=utc_now())
        return record

    def _derived(self, records: List[PRDRecord]) -> Dict[str, Any]:
        return {"tags": all_tags(records), "stats": compute_stats(records).to_dict()}


class SkillStore(RecordStore[SkillRecord]):
    """Skill guidelines, stored with their full content. Supports hard delete."""

    kind = "skill"
    validator = SKILL_DOCUMENT_VALIDATOR
    updatable_fields = frozenset({"title", "category", "tags", "content"})

    def _to_dict(self, record: SkillRecord) -> Dict[str, Any]:
        return skill_to_dict(record)

    def _from_dict(self, data: Mapping[str, Any]) -> SkillRecord:
        return skill_from_dict(data)

    def _parse_updates(self, payload: Mapping[str, Any]) -> List[FieldUpdate]:
        return parse_skill_updates(payload)

    def _validate_new(self, record: SkillRecord) -> None:
        validate_skill_filename(record.filename)
        # Non-empty content is a record invariant; length caps belong to callers
        if not isinstance(record.content, str) or not record.content.strip():
            raise ValidationFailed("Skill content is required", {"field": "content"})

    def _on_create(self, record: SkillRecord) -> SkillRecord:
        now = utc_now()
        return dataclasses.replace(
            record,
            created_at=record.created_at or now,
            updated_at=record.updated_at or record.created_at or now,
        )

    def _on_update(self, before: SkillRecord, after: SkillRecord) -> SkillRecord:
        return dataclasses.replace(after, updated_at=utc_now())

    def delete(self, filename: str) -> SkillRecord:
        """Hard-delete a skill.

        Raises:
            NotFound: If no skill has this filename.
        """

        def apply(records: List[SkillRecord]) -> SkillRecord:
            index = self.index_of(records, filename)
            if index < 0:
                raise NotFound(self.kind, filename)
            return records.pop(index)

        removed = self.mutate(apply)
        logger.info("Deleted skill %s from %s", filename, self.path.parent)
        return removed
