"""
API tests for skill, tag index and import/export endpoints.
"""

import pytest


BASE = "/api/instances/demo/skills"


@pytest.fixture
def hooks_skill(client):
    resp = client.post(
        BASE,
        json={"name": "React Hooks", "content": "# React Hooks\nUse hooks with typescript."},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.fixture
def other_instance(client):
    assert client.post("/api/instances", json={"name": "other"}).status_code == 201
    return "other"


class TestCreateSkill:
    def test_filename_slugged_from_name(self, hooks_skill):
        assert hooks_skill["filename"] == "react_hooks.md"
        assert hooks_skill["title"] == "React Hooks"
        assert hooks_skill["category"] == "React"
        assert hooks_skill["tags"] == ["typescript", "react"]
        assert hooks_skill["createdAt"] == hooks_skill["updatedAt"]

    def test_explicit_fields_win(self, client):
        resp = client.post(
            BASE,
            json={
                "filename": "error_handling.md",
                "content": "# Errors\nbody",
                "title": "Error Handling",
                "category": "Backend",
                "tags": ["Errors"],
            },
        )
        assert resp.status_code == 201
        skill = resp.json()
        assert (skill["title"], skill["category"], skill["tags"]) == ("Error Handling", "Backend", ["errors"])

    def test_duplicate(self, client, hooks_skill):
        resp = client.post(BASE, json={"name": "React Hooks", "content": "# Again"})
        assert resp.status_code == 409

    def test_requires_name_or_filename(self, client):
        resp = client.post(BASE, json={"content": "# Body"})
        assert resp.status_code == 400

    def test_rejects_bad_filename(self, client):
        resp = client.post(BASE, json={"filename": "Bad Name.md", "content": "# Body"})
        assert resp.status_code == 400

    def test_rejects_empty_content(self, client):
        resp = client.post(BASE, json={"name": "Empty", "content": "  "})
        assert resp.status_code == 400

    def test_rejects_oversized_content(self, client):
        resp = client.post(BASE, json={"name": "Huge", "content": "x" * 100001})
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == "validation_failed"

    def test_rejects_long_name(self, client):
        resp = client.post(BASE, json={"name": "n" * 101, "content": "# Body"})
        assert resp.status_code == 400


class TestReadUpdateDelete:
    def test_get(self, client, hooks_skill):
        resp = client.get(f"{BASE}/react_hooks.md")
        assert resp.status_code == 200
        assert resp.json()["content"].startswith("# React Hooks")

    def test_get_missing(self, client):
        assert client.get(f"{BASE}/ghost.md").status_code == 404

    def test_list_and_filter(self, client, hooks_skill):
        client.post(BASE, json={"name": "SQL Safety", "content": "# SQL\nUse prisma", "tags": ["database"]})
        data = client.get(BASE).json()
        assert len(data["skills"]) == 2
        assert data["tags"] == ["database", "react", "typescript"]
        filtered = client.get(BASE, params={"tags": "react,typescript"}).json()
        assert [s["filename"] for s in filtered["skills"]] == ["react_hooks.md"]
        searched = client.get(BASE, params={"q": "sql"}).json()
        assert [s["filename"] for s in searched["skills"]] == ["sql_safety.md"]

    def test_partial_update(self, client, hooks_skill):
        resp = client.put(f"{BASE}/react_hooks.md", json={"category": "Frontend"})
        assert resp.status_code == 200
        skill = resp.json()
        assert skill["category"] == "Frontend"
        assert skill["content"] == hooks_skill["content"]
        assert skill["tags"] == hooks_skill["tags"]

    def test_update_rejects_unknown_fields(self, client, hooks_skill):
        resp = client.put(f"{BASE}/react_hooks.md", json={"filename": "renamed.md"})
        assert resp.status_code == 400

    def test_update_missing(self, client):
        assert client.put(f"{BASE}/ghost.md", json={"title": "x"}).status_code == 404

    def test_delete(self, client, hooks_skill):
        resp = client.delete(f"{BASE}/react_hooks.md")
        assert resp.status_code == 200
        assert resp.json() == {"deleted": "react_hooks.md"}
        assert client.get(f"{BASE}/react_hooks.md").status_code == 404
        assert client.delete(f"{BASE}/react_hooks.md").status_code == 404


class TestTagIndex:
    def test_skill_tags_with_counts(self, client, hooks_skill):
        data = client.get("/api/instances/demo/tags", params={"kind": "skill"}).json()
        assert data == {"tags": ["react", "typescript"], "counts": {"react": 1, "typescript": 1}}

    def test_prd_tags_default(self, client):
        client.post("/api/instances/demo/prds", json={"filename": "a.md", "title": "A", "tags": ["x"]})
        assert client.get("/api/instances/demo/tags").json()["counts"] == {"x": 1}

    def test_unknown_kind(self, client):
        assert client.get("/api/instances/demo/tags", params={"kind": "other"}).status_code == 400


class TestExportImport:
    def test_export_then_import_round(self, client, hooks_skill, other_instance):
        exported = client.post("/api/skills/export", json={"instanceId": "demo", "skillFiles": []}).json()
        assert exported["skillCount"] == 1
        assert exported["version"] == 1
        assert exported["missing"] == []

        body = {"instanceId": other_instance, "skills": exported["skills"]}
        first = client.post("/api/skills/import", json=body).json()
        assert first["imported"] == exported["skillCount"]
        second = client.post("/api/skills/import", json=body).json()
        assert second["imported"] == 0
        assert second["skipped"] == exported["skillCount"]

    def test_export_reports_missing(self, client, hooks_skill):
        data = client.post(
            "/api/skills/export", json={"instanceId": "demo", "skillFiles": ["react_hooks.md", "ghost.md"]}
        ).json()
        assert data["skillCount"] == 1
        assert data["missing"] == ["ghost.md"]

    def test_duplicate_import_leaves_existing(self, client, hooks_skill):
        resp = client.post(
            "/api/skills/import",
            json={
                "instanceId": "demo",
                "skills": [
                    {"filename": "react_hooks.md", "content": "# Replaced"},
                    {"filename": "new_skill.md", "content": "# New"},
                    {"filename": "../bad.md", "content": "# Bad"},
                ],
            },
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["imported"] == 1
        assert data["skipped"] == 2
        assert data["importedFiles"] == ["new_skill.md"]
        assert [e["filename"] for e in data["errors"]] == ["../bad.md"]
        kept = client.get(f"{BASE}/react_hooks.md").json()
        assert kept["content"] == hooks_skill["content"]

    def test_import_from_source_instance(self, client, hooks_skill, other_instance):
        resp = client.post(
            "/api/skills/import",
            json={"instanceId": other_instance, "sourceInstanceId": "demo", "skillFiles": ["react_hooks.md"]},
        )
        assert resp.json()["importedFiles"] == ["react_hooks.md"]
        copied = client.get(f"/api/instances/{other_instance}/skills/react_hooks.md")
        assert copied.status_code == 200

    def test_import_into_same_instance_rejected(self, client, hooks_skill):
        resp = client.post("/api/skills/import", json={"instanceId": "demo", "sourceInstanceId": "demo"})
        assert resp.status_code == 400

    def test_import_requires_a_source(self, client):
        resp = client.post("/api/skills/import", json={"instanceId": "demo"})
        assert resp.status_code == 400

    def test_instance_path_traversal_forbidden(self, client):
        resp = client.post("/api/skills/export", json={"instanceId": "../../etc"})
        assert resp.status_code == 403
        assert resp.json()["detail"]["error"] == "path_not_allowed"

    def test_missing_instance_id(self, client):
        resp = client.post("/api/skills/export", json={})
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == "validation_failed"
