"""
errors.py - Error taxonomy for the record store.

Caller errors (NotFound, DuplicateFilename, ValidationFailed) surface as 4xx
responses with a machine-readable code. Transient errors (LockTimeout,
IOFailure) surface as 5xx responses flagged as retryable.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class StoreError(Exception):
    """Base exception for store and workflow errors."""

    code = "store_error"
    http_status = 500
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


class NotFound(StoreError):
    """Raised when a record or instance does not exist."""

    code = "not_found"
    http_status = 404

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} '{key}' not found", {"kind": kind, "key": key})


class DuplicateFilename(StoreError):
    """Raised when creating a record whose filename already exists."""

    code = "duplicate_filename"
    http_status = 409

    def __init__(self, kind: str, filename: str):
        self.kind = kind
        self.filename = filename
        super().__init__(
            f"{kind} '{filename}' already exists",
            {"kind": kind, "filename": filename},
        )


class ValidationFailed(StoreError):
    """Raised when input fails validation (bad filename, empty content, too many tags)."""

    code = "validation_failed"
    http_status = 400


class PathNotAllowed(ValidationFailed):
    """Raised when a client-supplied path resolves outside its allowed root."""

    code = "path_not_allowed"
    http_status = 403


class LockTimeout(StoreError):
    """Lock acquisition timed out."""

    code = "lock_timeout"
    http_status = 503
    retryable = True

    def __init__(self, key: str, timeout: float):
        self.key = key
        self.timeout = timeout
        super().__init__(
            f"Could not acquire lock for {key} within {timeout}s",
            {"key": key, "timeout": timeout},
        )


class IOFailure(StoreError):
    """Raised when the store file cannot be read, parsed, or written."""

    code = "io_failure"
    http_status = 500
    retryable = True
