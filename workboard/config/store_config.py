"""Workboard store configuration.

Provides centralized configuration for instance layout, locking and record
limits. Environment variables take precedence over YAML config.

Usage:
    from workboard.config.store_config import (
        load_settings,
        get_instances_root,
        get_lock_timeout,
        reload_config,
    )
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

_CONFIG_PATH = Path(__file__).parent / "workboard.yaml"
_cached_config: Optional[Dict[str, Any]] = None


def _default_config() -> Dict[str, Any]:
    """Return default configuration if file doesn't exist."""
    return {
        "version": "1.0",
        "instances": {
            "root": "~/claude-managers",
            "prd_store_file": "planning/prd-organizer.json",
            "skill_store_file": "planning/skills.json",
            "prds_dir": "prds",
            "queue_file": "planning/prd-queue.json",
        },
        "locking": {
            "timeout_seconds": 5.0,
            "stale_seconds": 30.0,
            "cross_process": True,
        },
        "limits": {
            "max_tags": 10,
            "max_tag_length": 20,
            "max_skill_content_length": 100000,
            "max_skill_name_length": 100,
        },
    }


def _load_config() -> Dict[str, Any]:
    """Load workboard.yaml with caching."""
    global _cached_config
    if _cached_config is not None:
        return _cached_config

    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH, encoding="utf-8") as f:
            _cached_config = yaml.safe_load(f) or _default_config()
    else:
        _cached_config = _default_config()

    return _cached_config


def reload_config() -> None:
    """Force reload of configuration (useful for testing)."""
    global _cached_config
    _cached_config = None
    _load_config()


def _section(name: str) -> Dict[str, Any]:
    defaults = _default_config()[name]
    return {**defaults, **(_load_config().get(name) or {})}


def _env_float(name: str) -> Optional[float]:
    env_val = os.environ.get(name)
    if env_val is not None:
        try:
            return float(env_val)
        except ValueError:
            pass
    return None


def get_instances_root() -> Path:
    """Directory under which every instance workspace lives."""
    env_val = os.environ.get("WORKBOARD_INSTANCES_ROOT")
    if env_val:
        return Path(env_val).expanduser()
    return Path(_section("instances")["root"]).expanduser()


def get_lock_timeout() -> float:
    env_val = _env_float("WORKBOARD_LOCK_TIMEOUT")
    if env_val is not None:
        return env_val
    return float(_section("locking")["timeout_seconds"])


def get_lock_stale_seconds() -> float:
    env_val = _env_float("WORKBOARD_LOCK_STALE_SECONDS")
    if env_val is not None:
        return env_val
    return float(_section("locking")["stale_seconds"])


def is_cross_process_locking_enabled() -> bool:
    """Check whether O_EXCL lock files back the in-process locks."""
    env_val = os.environ.get("WORKBOARD_CROSS_PROCESS_LOCKS")
    if env_val is not None:
        return env_val.lower() in ("1", "true", "yes")
    return bool(_section("locking")["cross_process"])


def get_limit(name: str) -> int:
    return int(_section("limits")[name])


@dataclass(frozen=True)
class StoreSettings:
    """Resolved settings injected into the Workspace service."""

    instances_root: Path
    prd_store_file: str = "planning/prd-organizer.json"
    skill_store_file: str = "planning/skills.json"
    prds_dir: str = "prds"
    queue_file: str = "planning/prd-queue.json"
    lock_timeout: float = 5.0
    lock_stale_seconds: float = 30.0
    cross_process_locks: bool = True
    max_tags: int = 10
    max_tag_length: int = 20
    max_skill_content_length: int = 100000
    max_skill_name_length: int = 100


def load_settings(instances_root: Optional[Path] = None) -> StoreSettings:
    """Build StoreSettings from YAML plus environment overrides.

    Args:
        instances_root: Override the configured root (tests, CLI flags).
    """
    instances = _section("instances")
    return StoreSettings(
        instances_root=Path(instances_root).expanduser() if instances_root else get_instances_root(),
        prd_store_file=instances["prd_store_file"],
        skill_store_file=instances["skill_store_file"],
        prds_dir=instances["prds_dir"],
        queue_file=instances["queue_file"],
        lock_timeout=get_lock_timeout(),
        lock_stale_seconds=get_lock_stale_seconds(),
        cross_process_locks=is_cross_process_locking_enabled(),
        max_tags=get_limit("max_tags"),
        max_tag_length=get_limit("max_tag_length"),
        max_skill_content_length=get_limit("max_skill_content_length"),
        max_skill_name_length=get_limit("max_skill_name_length"),
    )
