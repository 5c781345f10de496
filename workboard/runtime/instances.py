"""
instances.py - Instance resolution with path containment.

An instance is a workspace directory under a single configured root. Every
instance id coming from a client is resolved against that root and rejected
unless the resolved path stays inside it, so ``../`` or absolute paths
elsewhere on disk can never be joined into a store path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

from .errors import NotFound, PathNotAllowed, ValidationFailed

logger = logging.getLogger(__name__)

INSTANCE_SUBDIRS = ("prds", "skills", "planning")


def ensure_within(root: Path, candidate: Path) -> Path:
    """Resolve ``candidate`` and require it to be ``root`` or inside it.

    Raises:
        PathNotAllowed: If the resolved path escapes ``root``.
    """
    resolved_root = root.resolve()
    resolved = candidate.resolve()
    if resolved != resolved_root and resolved_root not in resolved.parents:
        raise PathNotAllowed(
            "Path resolves outside its allowed directory",
            {"path": str(candidate)},
        )
    return resolved


@dataclass(frozen=True)
class Instance:
    """A resolved workspace directory."""

    id: str
    path: Path

    @property
    def name(self) -> str:
        return self.path.name


class InstanceRegistry:
    """Resolves, lists and creates instances under one root directory."""

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()

    def resolve(self, instance_id: str) -> Instance:
        """Resolve a client-supplied instance id (name, relative or absolute path).

        Raises:
            PathNotAllowed: If the id resolves outside the instances root.
            NotFound: If no such instance directory exists.
        """
        if not instance_id or not instance_id.strip() or "\x00" in instance_id:
            raise ValidationFailed("Instance id is required", {"instanceId": instance_id})

        path = ensure_within(self.root, self.root / instance_id)
        if path == self.root.resolve():
            raise PathNotAllowed("Instance id must name a workspace", {"instanceId": instance_id})
        if not path.is_dir():
            raise NotFound("instance", instance_id)
        return Instance(id=instance_id, path=path)

    def list(self) -> List[Instance]:
        if not self.root.is_dir():
            return []
        return [
            Instance(id=p.name, path=p.resolve())
            for p in sorted(self.root.iterdir())
            if p.is_dir() and not p.name.startswith(".")
        ]

    def create(self, name: str) -> Instance:
        """Create a new instance directory with its standard subdirectories.

        Raises:
            ValidationFailed: If the name is not a single safe path segment
                or the instance already exists.
        """
        if not name or "/" in name or "\\" in name or name.startswith("."):
            raise ValidationFailed("Invalid instance name", {"name": name})

        path = ensure_within(self.root, self.root / name)
        if path.exists():
            raise ValidationFailed("Instance already exists", {"name": name})

        for sub in INSTANCE_SUBDIRS:
            (path / sub).mkdir(parents=True, exist_ok=True)
        logger.info("Created instance %s at %s", name, path)
        return Instance(id=name, path=path)
