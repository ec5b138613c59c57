import json
from pathlib import Path

import pytest

from automation_engine.core import WorkflowParser
from automation_engine.exceptions import DefinitionValidationError
from automation_engine.models.workflow import (
    ActionConfig, ApprovalConfig, ConditionConfig, DelayConfig, DelayUnit,
    NodeType, WorkflowStatus
)


def errors_of(data):
    with pytest.raises(DefinitionValidationError) as exc_info:
        WorkflowParser().parse(data)
    return exc_info.value.errors


def test_parse_workflow_dict(welcome_workflow):
    workflow = WorkflowParser().parse(welcome_workflow)

    assert workflow.id == "welcome-email"
    assert workflow.trigger_type == "client_created"
    assert workflow.status == WorkflowStatus.ACTIVE
    assert [node.type for node in workflow.nodes] == [NodeType.TRIGGER, NodeType.ACTION]
    assert workflow.edges[0].source == "trigger"
    assert workflow.edges[0].target == "email"
    assert workflow.trigger_node().id == "trigger"


def test_camel_case_config_keys(welcome_workflow):
    workflow = WorkflowParser().parse(welcome_workflow)

    config = workflow.get_node("email").config
    assert isinstance(config, ActionConfig)
    assert config.action_type == "send_email"
    assert config.params["to"] == "{{payload.email}}"


def test_typed_configs(invoice_branch_workflow, approval_workflow, delay_workflow):
    parser = WorkflowParser()

    condition = parser.parse(invoice_branch_workflow).get_node("big").config
    approval = parser.parse(approval_workflow).get_node("approve").config
    delay = parser.parse(delay_workflow).get_node("wait").config

    assert isinstance(condition, ConditionConfig)
    assert condition.expression == "payload.amount > 100"
    assert isinstance(approval, ApprovalConfig)
    assert approval.timeout == 24
    assert isinstance(delay, DelayConfig)
    assert delay.unit == DelayUnit.MINUTES
    assert delay.seconds() == 300


def test_status_defaults_to_inactive(welcome_workflow):
    del welcome_workflow["status"]

    workflow = WorkflowParser().parse(welcome_workflow)

    assert workflow.status == WorkflowStatus.INACTIVE
    assert not workflow.is_active


def test_wrapped_document_and_editor_edge_keys(welcome_workflow):
    welcome_workflow["edges"] = [{"fromNodeId": "trigger", "toNodeId": "email"}]

    workflow = WorkflowParser().parse({"workflow": welcome_workflow})

    assert workflow.outgoing("trigger")[0].target == "email"


def test_boolean_edge_labels(invoice_branch_workflow):
    invoice_branch_workflow["edges"][1]["branch"] = True
    invoice_branch_workflow["edges"][2]["branch"] = False

    workflow = WorkflowParser().parse(invoice_branch_workflow)

    assert workflow.edge_for_branch("big", "true").target == "reminder"
    assert workflow.edge_for_branch("big", "false").target == "email"


def test_parse_yaml_string():
    content = """
id: yaml-flow
name: From YAML
triggerType: payment_received
nodes:
  - id: start
    type: trigger
  - id: thank
    type: action
    config:
      actionType: send_email
      params:
        subject: Thank you
edges:
  - from: start
    to: thank
"""
    workflow = WorkflowParser().parse(content)

    assert workflow.id == "yaml-flow"
    assert workflow.get_node("thank").config.params == {"subject": "Thank you"}


def test_parse_file(tmp_path, delay_workflow):
    path = tmp_path / "tuning.json"
    path.write_text(json.dumps(delay_workflow), encoding="utf-8")
    parser = WorkflowParser()

    assert parser.parse(path).id == "tuning-reminder"
    assert parser.parse(str(path)).id == "tuning-reminder"


class TestGraphValidation:

    def test_requires_exactly_one_trigger(self, welcome_workflow):
        welcome_workflow["nodes"].append({"id": "other", "type": "trigger", "config": {}})

        errors = errors_of(welcome_workflow)

        assert any("exactly one trigger" in e for e in errors)

    def test_trigger_has_no_incoming_edges(self, welcome_workflow):
        welcome_workflow["edges"].append({"from": "email", "to": "trigger"})

        errors = errors_of(welcome_workflow)

        assert any("must not have incoming edges" in e for e in errors)

    def test_edges_must_reference_nodes(self, welcome_workflow):
        welcome_workflow["edges"].append({"from": "email", "to": "ghost"})

        errors = errors_of(welcome_workflow)

        assert "Edge target 'ghost' does not exist" in errors

    def test_duplicate_node_ids(self, welcome_workflow):
        welcome_workflow["nodes"].append(dict(welcome_workflow["nodes"][1]))

        errors = errors_of(welcome_workflow)

        assert "Duplicate node id 'email'" in errors

    def test_condition_needs_both_branches(self, invoice_branch_workflow):
        invoice_branch_workflow["edges"].pop()

        errors = errors_of(invoice_branch_workflow)

        assert any("Condition node 'big'" in e for e in errors)

    def test_approval_labels(self, approval_workflow):
        approval_workflow["edges"][2]["branch"] = "denied"

        errors = errors_of(approval_workflow)

        assert any("Approval node 'approve'" in e for e in errors)

    def test_action_cannot_fan_out(self, welcome_workflow):
        welcome_workflow["nodes"].append(
            {"id": "extra", "type": "action", "config": {"action_type": "update_status"}}
        )
        welcome_workflow["edges"].append({"from": "trigger", "to": "extra"})

        errors = errors_of(welcome_workflow)

        assert any("at most one outgoing edge" in e for e in errors)

    def test_unlabelled_node_rejects_labels(self, welcome_workflow):
        welcome_workflow["edges"][0]["branch"] = "true"

        errors = errors_of(welcome_workflow)

        assert any("must not carry branch labels" in e for e in errors)

    def test_missing_trigger_type(self, welcome_workflow):
        del welcome_workflow["triggerType"]

        assert "workflow.trigger_type: is required" in errors_of(welcome_workflow)


class TestConfigValidation:

    def test_unknown_config_field_rejected(self, delay_workflow):
        delay_workflow["nodes"][1]["config"]["jitter"] = 3

        errors = errors_of(delay_workflow)

        assert any(e.startswith("node 'wait'") for e in errors)

    def test_unknown_delay_unit(self, delay_workflow):
        delay_workflow["nodes"][1]["config"]["unit"] = "fortnights"

        assert errors_of(delay_workflow)

    def test_negative_delay(self, delay_workflow):
        delay_workflow["nodes"][1]["config"]["amount"] = -1

        assert errors_of(delay_workflow)

    def test_delay_longer_than_ten_years(self, delay_workflow):
        delay_workflow["nodes"][1]["config"] = {"amount": 3000000, "unit": "days"}

        errors = errors_of(delay_workflow)

        assert any(e.startswith("node 'wait'") for e in errors)

    def test_delay_bound_applies_to_amount_times_unit(self, delay_workflow):
        delay_workflow["nodes"][1]["config"] = {"amount": 4000, "unit": "days"}

        assert any("must not exceed 3650 days" in e for e in errors_of(delay_workflow))

        delay_workflow["nodes"][1]["config"] = {"amount": 3650, "unit": "days"}
        assert WorkflowParser().parse(delay_workflow).get_node("wait").config.seconds() == 3650 * 86400

    def test_action_requires_type(self, welcome_workflow):
        welcome_workflow["nodes"][1]["config"] = {"params": {}}

        assert errors_of(welcome_workflow)

    def test_approval_requires_message(self, approval_workflow):
        approval_workflow["nodes"][1]["config"] = {"timeout": 24}

        assert errors_of(approval_workflow)

    def test_unknown_node_type(self, welcome_workflow):
        welcome_workflow["nodes"][1]["type"] = "webhook"

        assert any(".type: must be one of" in e for e in errors_of(welcome_workflow))

    def test_bad_expression(self, invoice_branch_workflow):
        invoice_branch_workflow["nodes"][1]["config"] = {"expression": "payload.amount >> 5 +"}

        errors = errors_of(invoice_branch_workflow)

        assert any(e.startswith("node 'big'.config") for e in errors)

    def test_expression_and_field_are_exclusive(self, invoice_branch_workflow):
        invoice_branch_workflow["nodes"][1]["config"] = {
            "expression": "payload.amount > 1",
            "field": "payload.amount",
            "operator": "greater_than",
        }

        assert errors_of(invoice_branch_workflow)

    def test_unknown_operator(self, invoice_branch_workflow):
        invoice_branch_workflow["nodes"][1]["config"] = {
            "field": "payload.amount", "operator": "roughly", "value": 5,
        }

        assert errors_of(invoice_branch_workflow)

    def test_errors_are_collected(self, welcome_workflow):
        del welcome_workflow["name"]
        welcome_workflow["nodes"][1]["type"] = "webhook"

        errors = errors_of(welcome_workflow)

        assert len(errors) >= 2


class TestEditing:

    def test_set_node_config(self, parser, delay_workflow):
        workflow = parser.parse(delay_workflow)

        updated = parser.set_node_config(workflow, "wait", {"amount": 2, "unit": "days"})

        assert updated.get_node("wait").config == DelayConfig(amount=2, unit=DelayUnit.DAYS)
        assert workflow.get_node("wait").config.amount == 5

    def test_set_node_config_validates(self, parser, delay_workflow):
        workflow = parser.parse(delay_workflow)

        with pytest.raises(DefinitionValidationError):
            parser.set_node_config(workflow, "wait", {"amount": 2})
        with pytest.raises(DefinitionValidationError):
            parser.set_node_config(workflow, "ghost", {"amount": 2, "unit": "days"})

    def test_activate(self, parser, welcome_workflow):
        del welcome_workflow["status"]
        workflow = parser.parse(welcome_workflow)

        assert parser.activate(workflow).status == WorkflowStatus.ACTIVE

    @pytest.mark.parametrize("fmt", ["json", "yaml"])
    def test_serialize_round_trip(self, parser, approval_workflow, fmt):
        workflow = parser.parse(approval_workflow)

        reparsed = parser.parse(parser.serialize(workflow, fmt))

        assert parser.to_dict(reparsed) == parser.to_dict(workflow)

    def test_serialize_unknown_format(self, parser, welcome_workflow):
        with pytest.raises(ValueError):
            parser.serialize(parser.parse(welcome_workflow), "xml")


EXAMPLE_WORKFLOWS = sorted((Path(__file__).parents[1] / "examples" / "workflows").glob("*.yaml"))


@pytest.mark.parametrize("path", EXAMPLE_WORKFLOWS, ids=lambda p: p.name)
def test_example_workflows_are_valid(path):
    workflow = WorkflowParser().parse(path)

    assert workflow.is_active
