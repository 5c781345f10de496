"""
atomic.py - Crash-safe single-file writes.

Uses the write-to-temp-then-rename pattern: content goes to a uniquely named
temp file in the target's directory (same filesystem, so the rename is
atomic), is flushed and fsynced, then os.replace() swaps it over the target.
A reader sees either the old file or the new one, never a partial write.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Union

logger = logging.getLogger(__name__)


def write_atomic(path: Path, data: Union[bytes, str]) -> None:
    """Atomically replace ``path`` with ``data``.

    On any failure the temp file is removed and the target is left exactly
    as it was.

    Args:
        path: Target file path. Parent directories are created if missing.
        data: File content; str is encoded as UTF-8.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")

    parent = path.parent
    parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(
        suffix=".tmp",
        prefix=f".{path.name}.",
        dir=parent,
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        os.replace(tmp_path, path)
        logger.debug("Atomic write complete: %s", path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def write_json_atomic(path: Path, obj: Any, indent: int = 2) -> None:
    """Serialize ``obj`` to JSON, then write it atomically.

    Serialization happens before any file is touched, so an unserializable
    object never produces a temp file or disturbs the target.
    """
    content = json.dumps(obj, indent=indent, ensure_ascii=False) + "\n"
    write_atomic(path, content)
