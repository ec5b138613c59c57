import pytest

from automation_engine.core.conditions import (
    Comparison, ConditionEvaluator, compile_condition, compile_expression, parse_literal
)
from automation_engine.exceptions import DefinitionValidationError
from automation_engine.models.workflow import ConditionConfig


CONTEXT = {
    "payload": {
        "amount": 150,
        "client": {"type": "business", "name": "Ana Ruiz", "tags": ["vip", "school"]},
        "notes": "",
        "paid": False,
    },
    "email": {"status": "sent"},
}


@pytest.mark.parametrize("expression,expected", [
    ("payload.amount > 100", True),
    ("payload.amount >= 150", True),
    ("payload.amount < 150", False),
    ("payload.amount <= 150.0", True),
    ("payload.amount == 150", True),
    ("payload.amount != 150", False),
    ('payload.client.type == "business"', True),
    ("payload.client.type == 'private'", False),
    ("payload.client.name contains 'Ruiz'", True),
    ("payload.client.tags contains 'vip'", True),
    ("payload.client.tags not_contains 'vip'", False),
    ("payload.client.name startswith 'Ana'", True),
    ("payload.client.name endswith 'Ana'", False),
    ("payload.paid == false", True),
    ("payload.notes is empty", True),
    ("payload.client is not empty", True),
    ("email.status == 'sent'", True),
])
def test_expressions(expression, expected):
    assert compile_expression(expression).evaluate(CONTEXT) is expected


def test_missing_path_is_false():
    assert compile_expression("payload.missing > 1").evaluate(CONTEXT) is False
    assert compile_expression("payload.missing == null").evaluate(CONTEXT) is False
    assert compile_expression("payload.missing is empty").evaluate(CONTEXT) is True


def test_incomparable_values_are_false():
    assert compile_expression("payload.client.type > 3").evaluate(CONTEXT) is False


def test_structured_condition():
    config = ConditionConfig(field="payload.amount", operator="greater_than", value=100)

    assert compile_condition(config) == Comparison("payload.amount", "greater_than", 100)
    assert ConditionEvaluator().evaluate(config, CONTEXT) is True


def test_evaluator_caches_compiled_conditions():
    evaluator = ConditionEvaluator()
    config = ConditionConfig(expression="payload.amount > 100")

    evaluator.evaluate(config, CONTEXT)
    evaluator.evaluate(config, {"payload": {"amount": 1}})

    assert len(evaluator._cache) == 1


@pytest.mark.parametrize("expression", [
    "",
    "payload.amount",
    "payload.amount > ",
    "payload.amount > 1 and payload.paid == true",
    "len(payload.notes) > 0",
    "payload.amount > unquoted",
])
def test_rejected_expressions(expression):
    with pytest.raises(DefinitionValidationError):
        compile_expression(expression)


def test_parse_literal():
    assert parse_literal("42") == 42
    assert parse_literal("-1.5") == -1.5
    assert parse_literal("'a b'") == "a b"
    assert parse_literal("TRUE") is True
    assert parse_literal("null") is None
