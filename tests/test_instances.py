"""Tests for instance resolution and path containment."""

import pytest

from workboard.runtime.errors import NotFound, PathNotAllowed, ValidationFailed
from workboard.runtime.instances import InstanceRegistry, ensure_within


@pytest.fixture
def registry(tmp_path, instance_dir):
    return InstanceRegistry(tmp_path / "instances")


class TestResolve:
    def test_resolves_existing_instance(self, registry, instance_dir):
        instance = registry.resolve("demo")
        assert instance.path == instance_dir.resolve()
        assert instance.name == "demo"

    @pytest.mark.parametrize("instance_id", ["../", "../../etc", "demo/../../x", "/etc"])
    def test_traversal_rejected(self, registry, instance_id):
        with pytest.raises(PathNotAllowed) as exc:
            registry.resolve(instance_id)
        assert exc.value.http_status == 403

    def test_root_itself_is_not_an_instance(self, registry):
        with pytest.raises(PathNotAllowed):
            registry.resolve(".")

    def test_missing_instance(self, registry):
        with pytest.raises(NotFound):
            registry.resolve("ghost")

    def test_empty_id(self, registry):
        with pytest.raises(ValidationFailed):
            registry.resolve("  ")

    def test_symlink_escape_rejected(self, registry, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (tmp_path / "instances" / "sneaky").symlink_to(outside, target_is_directory=True)
        with pytest.raises(PathNotAllowed):
            registry.resolve("sneaky")


class TestListAndCreate:
    def test_list(self, registry):
        assert [i.id for i in registry.list()] == ["demo"]

    def test_create_makes_subdirectories(self, registry):
        instance = registry.create("fresh")
        for sub in ("prds", "skills", "planning"):
            assert (instance.path / sub).is_dir()
        assert [i.id for i in registry.list()] == ["demo", "fresh"]

    @pytest.mark.parametrize("name", ["", "a/b", "..", ".hidden"])
    def test_create_rejects_bad_names(self, registry, name):
        with pytest.raises(ValidationFailed):
            registry.create(name)

    def test_create_existing(self, registry):
        with pytest.raises(ValidationFailed):
            registry.create("demo")


class TestEnsureWithin:
    def test_inside(self, tmp_path):
        assert ensure_within(tmp_path, tmp_path / "a" / "b.md") == (tmp_path / "a" / "b.md").resolve()

    def test_outside(self, tmp_path):
        with pytest.raises(PathNotAllowed):
            ensure_within(tmp_path / "a", tmp_path / "a" / ".." / "b.md")
