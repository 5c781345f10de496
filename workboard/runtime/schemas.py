"""
schemas.py - JSON schemas for store documents and imported skills.

Store documents are validated on every read so a hand-edited or truncated
file is reported as an IOFailure instead of being silently treated as empty
(and then overwritten by the next mutation).
"""

from __future__ import annotations

from typing import Any, Dict, List

from jsonschema import Draft7Validator

PRD_RECORD_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["filename"],
    "properties": {
        "filename": {"type": "string", "minLength": 1},
        "title": {"type": "string"},
        "status": {"enum": ["pending", "in-progress", "blocked", "completed"]},
        "priority": {"enum": ["high", "medium", "low"]},
        "complexity": {"enum": ["simple", "medium", "complex"]},
        "tags": {"type": "array", "items": {"type": "string"}},
        "archived": {"type": "boolean"},
        "createdAt": {"type": "string"},
        "estimatedIterations": {"type": ["integer", "null"]},
        "actualIterations": {"type": ["integer", "null"]},
        "dependencies": {"type": "array", "items": {"type": "string"}},
        "completedAt": {"type": ["string", "null"]},
    },
}

SKILL_RECORD_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["filename", "content"],
    "properties": {
        "filename": {"type": "string", "minLength": 1},
        "title": {"type": "string"},
        "category": {"type": "string"},
        "tags": {"type": "array", "items": {"type": "string"}},
        "content": {"type": "string"},
        "createdAt": {"type": "string"},
        "updatedAt": {"type": "string"},
    },
}


def _document_schema(record_schema: Dict[str, Any]) -> Dict[str, Any]:
    # Derived fields (tags, stats, lastUpdated) are not checked; they are
    # recomputed on write and never trusted on read.
    return {
        "type": "object",
        "required": ["records"],
        "properties": {
            "version": {"type": "integer"},
            "records": {"type": "array", "items": record_schema},
        },
    }


PRD_DOCUMENT_VALIDATOR = Draft7Validator(_document_schema(PRD_RECORD_SCHEMA))
SKILL_DOCUMENT_VALIDATOR = Draft7Validator(_document_schema(SKILL_RECORD_SCHEMA))
SKILL_RECORD_VALIDATOR = Draft7Validator(SKILL_RECORD_SCHEMA)


def schema_errors(validator: Draft7Validator, data: Any) -> List[str]:
    """Human-readable ``[path] message`` strings for every schema violation."""
    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path)):
        path = ".".join(str(p) for p in error.absolute_path) or "root"
        errors.append(f"[{path}] {error.message}")
    return errors
