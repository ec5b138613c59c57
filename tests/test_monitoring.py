import logging

import pytest

from automation_engine.monitoring import EventLogger, MetricsRecorder, labels_key


def test_labels_key_is_order_independent():
    assert labels_key({"b": "1", "a": "2"}) == labels_key({"a": "2", "b": "1"}) == "a=2,b=1"
    assert labels_key(None) == labels_key({}) == "-"


def test_counters():
    metrics = MetricsRecorder()

    metrics.inc("executions_started", {"workflow_id": "welcome"})
    metrics.inc("executions_started", {"workflow_id": "welcome"})
    metrics.inc("executions_started", {"workflow_id": "reminder"})

    assert metrics.get_counter("executions_started", {"workflow_id": "welcome"}) == 2
    assert metrics.get_counter("executions_started", {"workflow_id": "unknown"}) == 0
    assert metrics.get_counter("never_touched") == 0
    assert metrics.total("executions_started") == 3
    assert metrics.snapshot()["counters"]["executions_started"]["workflow_id=reminder"] == 1


def test_timer_records_even_when_block_raises():
    metrics = MetricsRecorder()

    with metrics.timer("action_seconds", {"action_type": "send_email"}):
        pass
    with pytest.raises(RuntimeError):
        with metrics.timer("action_seconds", {"action_type": "send_email"}):
            raise RuntimeError("smtp down")

    timing = metrics.snapshot()["timings"]["action_seconds"]["action_type=send_email"]
    assert timing["count"] == 2
    assert timing["sum"] >= timing["max"] >= 0


@pytest.mark.asyncio
async def test_engine_times_actions(runtime, install, welcome_workflow):
    await install(welcome_workflow)
    execution = await runtime.engine.create_execution("welcome-email", {"email": "a@example.com"})

    await runtime.engine.advance(execution.id)

    timings = runtime.metrics.snapshot()["timings"]
    assert timings["action_seconds"]["action_type=send_email"]["count"] == 1


def test_event_logger_writes_audit_line(caplog):
    audit = EventLogger()

    with caplog.at_level(logging.INFO, logger="automation.events"):
        audit.log("execution.completed", execution_id="e1", workflow_id="welcome", event_id=None)

    record = caplog.records[-1]
    assert record.getMessage() == "execution.completed execution_id=e1 workflow_id=welcome"
    assert record.audit["workflow_id"] == "welcome"
