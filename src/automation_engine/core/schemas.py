"""
各节点类型配置的 JSON Schema
"""
import json
from typing import Any, Dict, List

from jsonschema import Draft7Validator

from ..models.workflow import MAX_DELAY_SECONDS, NodeType, DelayUnit


_TEXT = {"type": "string"}
_OPTIONAL_TEXT = {"type": ["string", "null"]}

NODE_CONFIG_SCHEMAS: Dict[NodeType, Dict[str, Any]] = {
    NodeType.TRIGGER: {
        "type": "object",
        "properties": {
            "trigger_type": _OPTIONAL_TEXT,
            "description": _OPTIONAL_TEXT,
        },
        "additionalProperties": False,
    },
    NodeType.CONDITION: {
        "type": "object",
        "properties": {
            "expression": {"type": "string", "minLength": 1},
            "field": {"type": "string", "minLength": 1},
            "operator": {"type": "string", "minLength": 1},
            "value": {},
            "label": _OPTIONAL_TEXT,
            "description": _OPTIONAL_TEXT,
        },
        "oneOf": [
            {"required": ["expression"], "not": {"required": ["field"]}},
            {"required": ["field", "operator"], "not": {"required": ["expression"]}},
        ],
        "additionalProperties": False,
    },
    NodeType.ACTION: {
        "type": "object",
        "properties": {
            "action_type": {"type": "string", "minLength": 1},
            "params": {"type": "object"},
            "description": _OPTIONAL_TEXT,
        },
        "required": ["action_type"],
        "additionalProperties": False,
    },
    NodeType.DELAY: {
        "type": "object",
        "properties": {
            "amount": {"type": "number", "minimum": 0, "maximum": MAX_DELAY_SECONDS},
            "unit": {"enum": [unit.value for unit in DelayUnit]},
        },
        "required": ["amount", "unit"],
        "additionalProperties": False,
    },
    NodeType.APPROVAL: {
        "type": "object",
        "properties": {
            "message": _TEXT,
            "details": _OPTIONAL_TEXT,
            "timeout": {"type": ["number", "null"], "exclusiveMinimum": 0},
        },
        "required": ["message"],
        "additionalProperties": False,
    },
}


class SchemaValidator:
    """带 schema 缓存的 Draft 7 校验器"""

    def __init__(self):
        self.validators_cache: Dict[str, Draft7Validator] = {}

    def validate(self, data: Any, schema: Dict[str, Any]) -> List[str]:
        """
        按 ``schema`` 校验 ``data``

        Returns:
            ``path: message`` 形式的错误列表，校验通过时为空
        """
        schema_str = json.dumps(schema, sort_keys=True)
        if schema_str not in self.validators_cache:
            self.validators_cache[schema_str] = Draft7Validator(schema)
        validator = self.validators_cache[schema_str]

        errors = []
        for error in validator.iter_errors(data):
            path = ".".join(str(p) for p in error.absolute_path) if error.absolute_path else "config"
            errors.append(f"{path}: {error.message}")
        return errors

    def validate_node_config(self, node_type: NodeType, config: Dict[str, Any]) -> List[str]:
        return self.validate(config, NODE_CONFIG_SCHEMAS[node_type])
