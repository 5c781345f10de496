"""Shared fixtures for workboard tests."""

import sys
from pathlib import Path

import pytest

# Add repo root to path so workboard imports work without an install
repo_root = Path(__file__).resolve().parents[1]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from workboard.config.store_config import StoreSettings
from workboard.runtime.locking import LockManager
from workboard.runtime.store import PRDStore, SkillStore


@pytest.fixture
def locks():
    """In-process and lock-file locking with a short timeout."""
    return LockManager(timeout=2.0, stale_after=30.0, cross_process=True)


@pytest.fixture
def instance_dir(tmp_path):
    path = tmp_path / "instances" / "demo"
    for sub in ("prds", "skills", "planning"):
        (path / sub).mkdir(parents=True)
    return path


@pytest.fixture
def prd_store(instance_dir, locks):
    return PRDStore(instance_dir / "planning" / "prd-organizer.json", locks)


@pytest.fixture
def skill_store(instance_dir, locks):
    return SkillStore(instance_dir / "planning" / "skills.json", locks)


@pytest.fixture
def settings(tmp_path, instance_dir):
    return StoreSettings(instances_root=tmp_path / "instances", lock_timeout=2.0)


@pytest.fixture
def client(settings):
    """FastAPI test client bound to a temporary instances root."""
    from fastapi.testclient import TestClient

    from workboard.api.server import create_app

    with TestClient(create_app(settings)) as test_client:
        yield test_client
