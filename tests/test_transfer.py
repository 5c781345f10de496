"""Tests for skill export and additive import."""

import pytest

from workboard.runtime.errors import LockTimeout, ValidationFailed
from workboard.runtime.store import SkillStore
from workboard.runtime.transfer import (
    copy_skills,
    export_skills,
    import_skills,
    validate_incoming_skill,
)
from workboard.runtime.types import SkillRecord, skill_to_dict


def _skill(filename, content=None, **kwargs):
    return SkillRecord(
        filename=filename,
        title=kwargs.pop("title", filename),
        content=content or f"# {filename}\nGuideline body.",
        **kwargs,
    )


@pytest.fixture
def target_store(tmp_path, locks):
    path = tmp_path / "instances" / "target" / "planning" / "skills.json"
    return SkillStore(path, locks)


class TestExport:
    def test_export_all_when_no_names(self, skill_store):
        skill_store.create(_skill("a.md"))
        skill_store.create(_skill("b.md"))
        bundle = export_skills(skill_store)
        assert bundle.skill_count == 2
        data = bundle.to_dict()
        assert data["version"] == 1
        assert data["skillCount"] == 2
        assert data["exportedAt"]
        assert data["missing"] == []

    def test_unknown_names_reported_missing(self, skill_store):
        skill_store.create(_skill("a.md"))
        bundle = export_skills(skill_store, ["a.md", "ghost.md", "a.md"], source_instance="demo")
        assert [s.filename for s in bundle.skills] == ["a.md"]
        assert bundle.missing == ["ghost.md"]
        assert bundle.to_dict()["sourceInstance"] == "demo"


class TestImport:
    def test_export_then_import_is_idempotent(self, skill_store, target_store):
        for name in ("a.md", "b.md", "c.md"):
            skill_store.create(_skill(name, tags=["shared"]))
        exported = export_skills(skill_store).to_dict()

        first = import_skills(target_store, exported["skills"])
        assert first.imported == exported["skillCount"]
        assert first.skipped == 0

        second = import_skills(target_store, exported["skills"])
        assert second.imported == 0
        assert second.skipped == exported["skillCount"]
        assert len(target_store.list()) == 3

    def test_existing_skill_is_not_modified(self, skill_store):
        skill_store.create(_skill("a.md", content="# A\noriginal"))
        before = skill_store.get("a.md")

        result = import_skills(
            skill_store,
            [
                {"filename": "a.md", "content": "# A\nreplacement"},
                {"filename": "b.md", "content": "# B\nnew"},
            ],
        )

        assert result.imported == 1
        assert result.skipped == 1
        assert result.imported_files == ["b.md"]
        assert skill_store.get("a.md") == before

    def test_invalid_entries_are_skipped_and_reported(self, skill_store):
        result = import_skills(
            skill_store,
            [
                {"filename": "../evil.md", "content": "x"},
                {"filename": "Bad Name.md", "content": "x"},
                {"filename": "empty.md", "content": "   "},
                {"filename": "no_content.md"},
                "not an object",
                {"filename": "good.md", "content": "# Good"},
            ],
        )
        assert result.imported == 1
        assert result.skipped == 5
        assert len(result.errors) == 5
        assert result.errors[-1].filename == "<invalid>"
        assert [s.filename for s in skill_store.list()] == ["good.md"]

    def test_duplicates_within_one_batch(self, skill_store):
        entry = {"filename": "a.md", "content": "# A"}
        result = import_skills(skill_store, [entry, dict(entry)])
        assert (result.imported, result.skipped) == (1, 1)

    def test_content_length_cap(self, skill_store):
        result = import_skills(
            skill_store, [{"filename": "big.md", "content": "x" * 11}], max_content_length=10
        )
        assert result.imported == 0
        assert result.errors[0].filename == "big.md"

    def test_transient_errors_propagate(self, skill_store, monkeypatch):
        def timeout(*args, **kwargs):
            raise LockTimeout(skill_store.key, 0.1)

        monkeypatch.setattr(skill_store, "create", timeout)
        with pytest.raises(LockTimeout):
            import_skills(skill_store, [{"filename": "a.md", "content": "# A"}])

    def test_to_dict_shape(self, skill_store):
        data = import_skills(skill_store, [{"filename": "a.md", "content": "# A"}]).to_dict()
        assert data == {"imported": 1, "skipped": 0, "errors": [], "importedFiles": ["a.md"]}


class TestValidateIncoming:
    def test_derives_title_and_category(self):
        record = validate_incoming_skill({"filename": "react_hooks.md", "content": "# Hooks Guide\n"})
        assert record.title == "Hooks Guide"
        assert record.category == "React"

    def test_normalizes_tags(self):
        record = validate_incoming_skill({"filename": "a.md", "content": "x", "tags": ["A", "a", "B"]})
        assert record.tags == ["a", "b"]

    def test_schema_errors(self):
        with pytest.raises(ValidationFailed):
            validate_incoming_skill({"filename": "a.md", "content": 5})


class TestCopySkills:
    def test_copies_selected(self, skill_store, target_store):
        skill_store.create(_skill("a.md"))
        skill_store.create(_skill("b.md"))
        result = copy_skills(skill_store, target_store, ["b.md"])
        assert result.imported_files == ["b.md"]
        assert [s.filename for s in target_store.list()] == ["b.md"]

    def test_copies_full_content(self, skill_store, target_store):
        created = skill_store.create(_skill("a.md"))
        copy_skills(skill_store, target_store)
        copied = target_store.get("a.md")
        assert copied.content == created.content
        assert skill_to_dict(copied)["filename"] == "a.md"
