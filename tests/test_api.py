"""
API 端点测试
"""
import json

import pytest
from fastapi.testclient import TestClient

from automation_engine.api import create_app
from automation_engine.config import Settings


class TestAutomationAPI:
    """在临时 SQLite 数据库上运行完整应用"""

    @pytest.fixture
    def client(self, tmp_path, welcome_workflow, approval_workflow, delay_workflow):
        workflows_dir = tmp_path / "workflows"
        workflows_dir.mkdir()
        for workflow in (welcome_workflow, approval_workflow, delay_workflow):
            (workflows_dir / f"{workflow['id']}.json").write_text(json.dumps(workflow), encoding="utf-8")

        settings = Settings(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
            workflows_dir=str(workflows_dir),
            scheduler_enabled=False,
        )
        with TestClient(create_app(settings)) as client:
            yield client

    def start(self, client, event_type, payload=None, event_id=None):
        body = {"type": event_type, "payload": payload or {}}
        if event_id:
            body["event_id"] = event_id
        response = client.post("/api/v1/events", json=body)
        assert response.status_code == 202
        return response.json()

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["health"] == "/api/v1/monitoring/health"

    def test_event_runs_workflow(self, client):
        data = self.start(client, "client_created", {"clientId": 3, "email": "ana@example.com"}, "evt-1")

        assert data["event_id"] == "evt-1"
        [execution] = data["executions"]
        assert execution["status"] == "completed"
        assert [h["node_id"] for h in execution["history"]] == ["trigger", "email"]
        assert execution["context"]["email"]["to"] == "ana@example.com"

        again = self.start(client, "client_created", {"clientId": 3}, "evt-1")
        assert again["executions"] == []

    def test_unmatched_event(self, client):
        assert self.start(client, "piano_created")["executions"] == []

    def test_get_and_list_executions(self, client):
        execution = self.start(client, "appointment_created", {"phone": "600"})["executions"][0]

        response = client.get(f"/api/v1/executions/{execution['id']}")
        assert response.status_code == 200
        assert response.json()["status"] == "paused_delay"
        assert response.json()["pending_resume_at"] is not None

        listed = client.get("/api/v1/executions", params={"workflow_id": "tuning-reminder"}).json()
        assert [e["id"] for e in listed] == [execution["id"]]
        listed = client.get("/api/v1/executions", params={"status": "paused_delay"}).json()
        assert [e["id"] for e in listed] == [execution["id"]]

    def test_list_executions_needs_filter(self, client):
        response = client.get("/api/v1/executions")

        assert response.status_code == 400

    def test_unknown_execution(self, client):
        response = client.get("/api/v1/executions/missing")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "NotFound"

    def test_manual_execution(self, client):
        response = client.post(
            "/api/v1/executions",
            json={"workflow_id": "welcome-email", "payload": {"email": "b@example.com"}},
        )

        assert response.status_code == 201
        assert response.json()["status"] == "completed"

    def test_manual_execution_unknown_workflow(self, client):
        response = client.post("/api/v1/executions", json={"workflow_id": "nope"})

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "NotFound"

    def test_advance_and_cancel(self, client):
        execution = self.start(client, "appointment_created")["executions"][0]

        advanced = client.post(f"/api/v1/executions/{execution['id']}/advance")
        assert advanced.status_code == 200
        assert advanced.json()["version"] == execution["version"]

        cancelled = client.post(f"/api/v1/executions/{execution['id']}/cancel")
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"

        again = client.post(f"/api/v1/executions/{execution['id']}/cancel")
        assert again.status_code == 409
        assert again.json()["detail"]["error"] == "InvalidStateTransition"

    def test_approval_flow(self, client):
        execution = self.start(client, "service_created")["executions"][0]
        assert execution["status"] == "paused_approval"
        assert execution["pending_approval"]["message"] == "Approve quote?"

        pending = client.get("/api/v1/approvals").json()
        assert [e["id"] for e in pending] == [execution["id"]]
        assert client.get("/api/v1/approvals/stale").json() == []

        response = client.post(
            f"/api/v1/approvals/{execution['id']}/decision",
            json={"decision": "approved", "approver_id": "owner-1"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["history"][-1]["node_id"] == "mark"

        decisions = client.get(f"/api/v1/approvals/{execution['id']}/decisions").json()
        assert [(d["decision"], d["approver_id"], d["node_id"]) for d in decisions] == [
            ("approved", "owner-1", "approve")
        ]

        second = client.post(
            f"/api/v1/approvals/{execution['id']}/decision",
            json={"decision": "rejected", "approver_id": "owner-2"},
        )
        assert second.status_code == 409

    def test_invalid_decision_payload(self, client):
        execution = self.start(client, "service_created")["executions"][0]

        response = client.post(
            f"/api/v1/approvals/{execution['id']}/decision",
            json={"decision": "maybe", "approver_id": "owner-1"},
        )

        assert response.status_code == 422

    def test_health_and_metrics(self, client):
        self.start(client, "client_created", {"email": "c@example.com"})
        self.start(client, "service_created")

        health = client.get("/api/v1/monitoring/health")
        assert health.status_code == 200
        assert health.json()["status"] == "healthy"

        metrics = client.get("/api/v1/monitoring/metrics").json()
        assert metrics["executions_by_status"]["completed"] == 1
        assert metrics["pending_approvals"] == 1
        assert metrics["due_delays"] == 0
        assert "executions_started" in metrics["counters"]
        assert "http_requests" in metrics["counters"]

    def test_request_id_is_echoed(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"
