import json

import pytest
from click.testing import CliRunner

from automation_engine.cli import cli


@pytest.fixture
def workflow_file(tmp_path, welcome_workflow):
    path = tmp_path / "welcome.json"
    path.write_text(json.dumps(welcome_workflow), encoding="utf-8")
    return path


def test_validate_ok(workflow_file):
    result = CliRunner().invoke(cli, ["validate", str(workflow_file)])

    assert result.exit_code == 0
    assert "welcome-email (2 nodes, 1 edges)" in result.output


def test_validate_reports_errors(tmp_path, welcome_workflow):
    welcome_workflow["edges"].append({"from": "email", "to": "ghost"})
    path = tmp_path / "broken.json"
    path.write_text(json.dumps(welcome_workflow), encoding="utf-8")

    result = CliRunner().invoke(cli, ["validate", str(path)])

    assert result.exit_code == 1
    assert "Edge target 'ghost' does not exist" in result.output


def test_dispatch(workflow_file):
    result = CliRunner().invoke(cli, [
        "--log-level", "ERROR",
        "dispatch", str(workflow_file),
        "--event-type", "client_created",
        "--payload", '{"email": "ana@example.com"}',
    ])

    assert result.exit_code == 0
    summary = json.loads(result.output)
    assert summary[0]["status"] == "completed"
    assert summary[0]["history"] == ["trigger:triggered", "email:succeeded"]


def test_dispatch_rejects_bad_payload(workflow_file):
    result = CliRunner().invoke(cli, [
        "--log-level", "ERROR",
        "dispatch", str(workflow_file), "--event-type", "client_created", "--payload", "{oops",
    ])

    assert result.exit_code != 0
