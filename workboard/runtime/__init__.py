"""
Runtime core for the workboard store.

Leaves first:
- atomic: crash-safe single-file writes
- locking: per-key FIFO locks, optionally backed by O_EXCL lock files
- store: PRDStore / SkillStore CRUD over one JSON document each
- workflow: PRD status transitions, derived counts, kanban board
- tags: derived tag index
- search: in-memory filtering over snapshots
- transfer: skill export / additive import
"""

from .errors import (
    DuplicateFilename,
    IOFailure,
    LockTimeout,
    NotFound,
    PathNotAllowed,
    StoreError,
    ValidationFailed,
)
from .locking import LockManager
from .store import PRDStore, RecordStore, SkillStore
from .types import FieldUpdate, PRDComplexity, PRDPriority, PRDRecord, PRDStatus, SkillRecord
from .workflow import WorkflowEngine, WorkflowResult, WorkflowStats

__all__ = [
    "StoreError",
    "NotFound",
    "DuplicateFilename",
    "ValidationFailed",
    "PathNotAllowed",
    "LockTimeout",
    "IOFailure",
    "LockManager",
    "RecordStore",
    "PRDStore",
    "SkillStore",
    "FieldUpdate",
    "PRDRecord",
    "PRDStatus",
    "PRDPriority",
    "PRDComplexity",
    "SkillRecord",
    "WorkflowEngine",
    "WorkflowResult",
    "WorkflowStats",
]
