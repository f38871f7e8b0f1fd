"""
Tests: workspace blueprint (HTTP surface).

Covers:
    - GET/PUT /operations
    - POST/PUT/DELETE /operations/<collection>
    - conversation messages + acknowledge
    - GET /workspace, PUT /workspace/brief, PUT /workspace/approvals/<id>
    - error mapping (404 / 422 / actor header)
"""

import pytest


def _url(project_id, suffix=""):
    return f"/api/v1/projects/{project_id}{suffix}"


# ═════════════════════════════════════════════════════════════════════════════
# OPERATIONS
# ═════════════════════════════════════════════════════════════════════════════


class TestOperationsAPI:
    def test_get_operations(self, client, project):
        res = client.get(_url(project.id, "/operations"))
        assert res.status_code == 200
        data = res.get_json()
        assert data["project"]["id"] == project.id
        assert len(data["tasks"]) == 4
        assert "metrics" in data
        assert res.headers.get("X-Request-ID")

    def test_get_operations_unknown_project(self, client):
        res = client.get(_url(99999, "/operations"))
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_update_operations(self, client, project):
        res = client.put(_url(project.id, "/operations"), json={"status": "planning"})
        assert res.status_code == 200
        data = res.get_json()
        assert data["result"]["status"] == "planning"
        assert data["operations"]["workspace"]["status"] == "planning"

    def test_create_task(self, client, project):
        res = client.post(
            _url(project.id, "/operations/tasks"),
            json={"title": "API rollout", "assignments": [{"assignee_name": "Kai"}]},
            headers={"X-Actor-Id": "21"},
        )
        assert res.status_code == 201
        data = res.get_json()
        assert data["result"]["title"] == "API rollout"
        assert data["operations"]["workspace"]["updated_by_id"] == 21
        assert any(t["id"] == data["result"]["id"] for t in data["operations"]["tasks"])

    def test_create_validation_error(self, client, project):
        res = client.post(_url(project.id, "/operations/budgets"), json={"category": ""})
        assert res.status_code == 422
        body = res.get_json()
        assert "category" in body["error"]
        assert body["details"] == {"category": body["error"]}

    def test_unknown_collection(self, client, project):
        res = client.post(_url(project.id, "/operations/widgets"), json={"title": "x"})
        assert res.status_code == 404

    def test_update_and_delete_entry(self, client, project):
        created = client.post(
            _url(project.id, "/operations/targets"), json={"name": "NPS", "target_value": 50},
        ).get_json()["result"]

        res = client.put(
            _url(project.id, f"/operations/targets/{created['id']}"), json={"current_value": 42},
        )
        assert res.status_code == 200
        assert res.get_json()["result"]["current_value"] == 42

        res = client.delete(_url(project.id, f"/operations/targets/{created['id']}"))
        assert res.status_code == 200
        assert res.get_json()["result"] == {"success": True}

        res = client.delete(_url(project.id, f"/operations/targets/{created['id']}"))
        assert res.status_code == 404

    def test_invalid_actor_header(self, client, project):
        res = client.post(
            _url(project.id, "/operations/tasks"),
            json={"title": "X"},
            headers={"X-Actor-Id": "someone"},
        )
        assert res.status_code == 422

    def test_non_object_body(self, client, project):
        res = client.post(_url(project.id, "/operations/tasks"), json=["title"])
        assert res.status_code == 422


# ═════════════════════════════════════════════════════════════════════════════
# CONVERSATIONS
# ═════════════════════════════════════════════════════════════════════════════


class TestConversationsAPI:
    @pytest.fixture()
    def standup(self, client, project):
        data = client.get(_url(project.id, "/operations")).get_json()
        return next(c for c in data["conversations"] if c["topic"] == "Delivery standup")

    def test_post_message(self, client, project, standup):
        res = client.post(
            _url(project.id, f"/conversations/{standup['id']}/messages"),
            json={"body": "Ready for review", "author_name": "Kai Chen"},
        )
        assert res.status_code == 201
        data = res.get_json()
        assert data["result"]["body"] == "Ready for review"
        conversation = next(
            c for c in data["operations"]["conversations"] if c["id"] == standup["id"]
        )
        assert conversation["last_message_preview"] == "Ready for review"

    def test_edit_and_delete_message(self, client, project, standup):
        message = client.post(
            _url(project.id, f"/conversations/{standup['id']}/messages"), json={"body": "Draft"},
        ).get_json()["result"]
        path = _url(project.id, f"/conversations/{standup['id']}/messages/{message['id']}")

        res = client.put(path, json={"body": "Edited"})
        assert res.status_code == 200
        assert res.get_json()["result"]["body"] == "Edited"

        res = client.delete(path)
        assert res.status_code == 200
        assert res.get_json()["result"] == {"success": True}

    def test_acknowledge(self, client, project, standup):
        res = client.post(_url(project.id, f"/conversations/{standup['id']}/acknowledge"))
        assert res.status_code == 200
        assert res.get_json()["result"]["unread_count"] == 0

    def test_unknown_conversation(self, client, project):
        client.get(_url(project.id, "/operations"))
        res = client.post(_url(project.id, "/conversations/424242/messages"), json={"body": "Hi"})
        assert res.status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# WORKSPACE DASHBOARD
# ═════════════════════════════════════════════════════════════════════════════


class TestWorkspaceAPI:
    def test_dashboard(self, client, project):
        res = client.get(_url(project.id, "/workspace"))
        assert res.status_code == 200
        data = res.get_json()
        assert data["metrics"]["pending_approvals"] == 2
        assert len(data["approvals"]) == 3

    def test_update_brief(self, client, project):
        res = client.put(_url(project.id, "/workspace/brief"), json={"summary": "New scope"})
        assert res.status_code == 200
        assert res.get_json()["result"]["summary"] == "New scope"

    def test_update_approval(self, client, project):
        approvals = client.get(_url(project.id, "/workspace")).get_json()["approvals"]
        pending = next(a for a in approvals if a["status"] == "pending")

        res = client.put(
            _url(project.id, f"/workspace/approvals/{pending['id']}"), json={"status": "rejected"},
        )
        assert res.status_code == 200
        assert res.get_json()["result"]["decided_at"] is not None


class TestAppLevel:
    def test_health(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_unknown_route(self, client):
        res = client.get("/api/v1/nowhere")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"
