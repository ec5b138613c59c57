from datetime import datetime, timedelta, timezone

import pytest

from automation_engine.models.execution import (
    ApprovalDecision, Decision, Execution, ExecutionStatus, PendingApproval
)


NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def test_status_flags():
    assert ExecutionStatus.COMPLETED.is_terminal
    assert ExecutionStatus.CANCELLED.is_terminal
    assert not ExecutionStatus.PAUSED_DELAY.is_terminal
    assert ExecutionStatus.PAUSED_APPROVAL.is_paused
    assert not ExecutionStatus.RUNNING.is_paused


def test_execution_to_dict_and_back():
    execution = Execution(
        workflow_id="wf",
        current_node_id="approve",
        status=ExecutionStatus.PAUSED_APPROVAL,
        context={"payload": {"amount": 3}},
        pending_approval=PendingApproval("Approve?", None, NOW),
        version=4,
        trigger_event_id="evt-1",
        created_at=NOW,
        updated_at=NOW,
    )
    execution.record("approve", "paused_approval", NOW, detail={"k": "v"})

    restored = Execution.from_dict(execution.to_dict())

    assert restored == execution


def test_copy_is_independent():
    execution = Execution(workflow_id="wf", current_node_id="t", context={"payload": {"a": [1]}})

    clone = execution.copy()
    clone.context["payload"]["a"].append(2)
    clone.record("t", "triggered", NOW)

    assert execution.context == {"payload": {"a": [1]}}
    assert execution.history == []


def test_naive_timestamps_are_read_as_utc():
    data = Execution(workflow_id="wf", current_node_id="t").to_dict()
    data["created_at"] = "2024-03-01T09:00:00"

    assert Execution.from_dict(data).created_at == NOW


@pytest.mark.parametrize("status,resume_at,approval", [
    (ExecutionStatus.PAUSED_DELAY, None, None),
    (ExecutionStatus.RUNNING, NOW, None),
    (ExecutionStatus.PAUSED_APPROVAL, None, None),
    (ExecutionStatus.COMPLETED, None, PendingApproval("x", None, NOW)),
])
def test_pause_fields_must_match_status(status, resume_at, approval):
    execution = Execution(
        workflow_id="wf", current_node_id="n", status=status,
        pending_resume_at=resume_at, pending_approval=approval,
    )

    with pytest.raises(ValueError):
        execution.check_invariants()


def test_consistent_pause_passes():
    Execution(
        workflow_id="wf", current_node_id="n", status=ExecutionStatus.PAUSED_DELAY,
        pending_resume_at=NOW + timedelta(minutes=5),
    ).check_invariants()


def test_approval_decision_round_trip():
    decision = ApprovalDecision("exe", Decision.REJECTED, "owner", node_id="approve", decided_at=NOW)

    data = decision.to_dict()

    assert data["decision"] == "rejected"
    assert ApprovalDecision.from_dict(data) == decision
