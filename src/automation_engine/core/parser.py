"""
工作流定义解析器和校验器
"""
import json
import logging
import re
from dataclasses import asdict, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from ..exceptions import DefinitionValidationError
from ..models.workflow import (
    APPROVAL_BRANCHES, CONDITION_BRANCHES, CONFIG_TYPES, MAX_DELAY_SECONDS,
    ConditionConfig, DelayConfig, DelayUnit,
    Edge, Node, NodeType, WorkflowDefinition, WorkflowStatus, utcnow
)
from .conditions import compile_condition
from .schemas import SchemaValidator


logger = logging.getLogger(__name__)

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")

_EDGE_SOURCE_KEYS = ("from", "source", "fromNodeId", "from_node_id")
_EDGE_TARGET_KEYS = ("to", "target", "toNodeId", "to_node_id")
_EDGE_BRANCH_KEYS = ("branch", "label", "connectionType", "connection_type")


def to_snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def _first(data: Dict[str, Any], keys) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


class WorkflowParser:
    """解析并校验工作流定义"""

    def __init__(self):
        self.schema_validator = SchemaValidator()
        self.parsers = {
            'yaml': self._parse_yaml,
            'yml': self._parse_yaml,
            'json': self._parse_json
        }

    def parse(self, source: Union[str, Path, Dict[str, Any]]) -> WorkflowDefinition:
        """
        解析工作流定义

        Args:
            source: 字典、YAML/JSON 文件路径，或 YAML/JSON 字符串

        Returns:
            WorkflowDefinition: 校验通过的定义

        Raises:
            DefinitionValidationError: 文档或图结构不合法
        """
        if isinstance(source, dict):
            return self._parse_dict(source)

        if isinstance(source, Path):
            return self.parse_file(source)

        if isinstance(source, str):
            if "\n" not in source and len(source) < 4096:
                path = Path(source)
                if path.suffix.lower().lstrip('.') in self.parsers and path.is_file():
                    return self.parse_file(path)
            return self.parse_string(source)

        raise DefinitionValidationError(f"Unsupported source type: {type(source).__name__}")

    def parse_file(self, file_path: Path) -> WorkflowDefinition:
        suffix = file_path.suffix.lower().lstrip('.')
        if suffix not in self.parsers:
            raise DefinitionValidationError(f"Unsupported file format: {suffix}")

        with open(file_path, 'r', encoding='utf-8') as f:
            content = f.read()

        return self._parse_dict(self.parsers[suffix](content))

    def parse_string(self, content: str) -> WorkflowDefinition:
        # JSON 是 YAML 的子集，一次 safe_load 即可
        data = self._parse_yaml(content)
        if not isinstance(data, dict):
            raise DefinitionValidationError("Workflow document must be a mapping")
        return self._parse_dict(data)

    def _parse_yaml(self, content: str) -> Dict[str, Any]:
        try:
            return yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise DefinitionValidationError(f"Failed to parse YAML: {e}")

    def _parse_json(self, content: str) -> Dict[str, Any]:
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise DefinitionValidationError(f"Failed to parse JSON: {e}")

    def _parse_dict(self, data: Dict[str, Any]) -> WorkflowDefinition:
        if 'workflow' in data and isinstance(data['workflow'], dict):
            data = data['workflow']

        errors: List[str] = []
        for key in ('id', 'name'):
            if not data.get(key):
                errors.append(f"workflow.{key}: is required")

        trigger_type = _first(data, ('trigger_type', 'triggerType'))
        if not trigger_type:
            errors.append("workflow.trigger_type: is required")

        try:
            status = WorkflowStatus(data.get('status', WorkflowStatus.INACTIVE.value))
        except ValueError:
            errors.append(f"workflow.status: must be one of {[s.value for s in WorkflowStatus]}")
            status = WorkflowStatus.INACTIVE

        nodes = []
        for index, node_data in enumerate(data.get('nodes') or []):
            try:
                nodes.append(self._parse_node(node_data))
            except DefinitionValidationError as e:
                errors.extend(e.errors or [f"nodes[{index}]: {e.message}"])

        edges = []
        for index, edge_data in enumerate(data.get('edges') or []):
            edge = self._parse_edge(edge_data)
            if not edge.source or not edge.target:
                errors.append(f"edges[{index}]: source and target are required")
                continue
            edges.append(edge)

        if errors:
            raise DefinitionValidationError("Workflow validation failed", errors)

        definition = WorkflowDefinition(
            id=str(data['id']),
            name=data['name'],
            trigger_type=str(trigger_type),
            status=status,
            nodes=nodes,
            edges=edges,
            description=data.get('description'),
            created_at=self._parse_timestamp(_first(data, ('created_at', 'createdAt'))),
            updated_at=self._parse_timestamp(_first(data, ('updated_at', 'updatedAt'))),
        )

        errors = self.validate(definition)
        if errors:
            raise DefinitionValidationError("Workflow validation failed", errors)
        return definition

    def _parse_timestamp(self, value: Any) -> datetime:
        if value is None:
            return utcnow()
        parsed = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def _parse_node(self, data: Dict[str, Any]) -> Node:
        node_id = data.get('id')
        if not node_id:
            raise DefinitionValidationError("Node id is required", ["node.id: is required"])

        try:
            node_type = NodeType(data.get('type'))
        except ValueError:
            raise DefinitionValidationError(
                "Unknown node type",
                [f"node '{node_id}'.type: must be one of {[t.value for t in NodeType]}"],
            )

        # 编辑器把配置存放在 'data' 或 'config' 下
        raw_config = data.get('config', data.get('data')) or {}
        config = self.build_config(node_type, raw_config, node_id=str(node_id))
        return Node(id=str(node_id), type=node_type, config=config, name=data.get('name'))

    def build_config(self, node_type: NodeType, raw: Dict[str, Any], node_id: str = "?"):
        """校验原始配置并转换为对应节点类型的配置对象"""
        if not isinstance(raw, dict):
            raise DefinitionValidationError(
                "Node config must be a mapping", [f"node '{node_id}'.config: must be an object"]
            )
        normalized = {
            to_snake(key): value for key, value in raw.items()
        }
        errors = [
            f"node '{node_id}'.{error}"
            for error in self.schema_validator.validate_node_config(node_type, normalized)
        ]
        if errors:
            raise DefinitionValidationError(f"Invalid config for node '{node_id}'", errors)

        if node_type == NodeType.DELAY:
            normalized['unit'] = DelayUnit(normalized['unit'])
        config = CONFIG_TYPES[node_type](**normalized)

        if node_type == NodeType.DELAY and config.seconds() > MAX_DELAY_SECONDS:
            raise DefinitionValidationError(
                f"Invalid config for node '{node_id}'",
                [f"node '{node_id}'.config: delay must not exceed {MAX_DELAY_SECONDS // 86400} days"],
            )

        if node_type == NodeType.CONDITION:
            try:
                compile_condition(config)
            except DefinitionValidationError as e:
                raise DefinitionValidationError(
                    f"Invalid condition on node '{node_id}'",
                    [f"node '{node_id}'.config: {e.message}"],
                )
        return config

    def _parse_edge(self, data: Dict[str, Any]) -> Edge:
        branch = _first(data, _EDGE_BRANCH_KEYS)
        if isinstance(branch, bool):
            branch = "true" if branch else "false"
        return Edge(
            source=str(_first(data, _EDGE_SOURCE_KEYS) or ''),
            target=str(_first(data, _EDGE_TARGET_KEYS) or ''),
            branch=str(branch) if branch is not None else None,
        )

    def validate(self, definition: WorkflowDefinition) -> List[str]:
        """检查图的不变量，返回问题列表"""
        errors: List[str] = []

        seen = set()
        for node in definition.nodes:
            if node.id in seen:
                errors.append(f"Duplicate node id '{node.id}'")
            seen.add(node.id)
            expected = CONFIG_TYPES[node.type]
            if not isinstance(node.config, expected):
                errors.append(f"Node '{node.id}' config must be {expected.__name__}")

        for edge in definition.edges:
            if edge.source not in seen:
                errors.append(f"Edge source '{edge.source}' does not exist")
            if edge.target not in seen:
                errors.append(f"Edge target '{edge.target}' does not exist")

        triggers = [node for node in definition.nodes if node.type == NodeType.TRIGGER]
        if len(triggers) != 1:
            errors.append(f"Workflow must have exactly one trigger node, found {len(triggers)}")
        for trigger in triggers:
            if definition.incoming(trigger.id):
                errors.append(f"Trigger node '{trigger.id}' must not have incoming edges")

        for node in definition.nodes:
            outgoing = definition.outgoing(node.id)
            labels = sorted(edge.branch for edge in outgoing if edge.branch is not None)

            if node.type == NodeType.CONDITION:
                errors.extend(self._check_branches(node, outgoing, CONDITION_BRANCHES))
            elif node.type == NodeType.APPROVAL:
                errors.extend(self._check_branches(node, outgoing, APPROVAL_BRANCHES))
            else:
                if len(outgoing) > 1:
                    errors.append(
                        f"{node.type.value.capitalize()} node '{node.id}' "
                        f"must have at most one outgoing edge, found {len(outgoing)}"
                    )
                if labels:
                    errors.append(
                        f"{node.type.value.capitalize()} node '{node.id}' "
                        f"must not carry branch labels {labels}"
                    )

        return errors

    def _check_branches(self, node: Node, outgoing: List[Edge], required) -> List[str]:
        labels = sorted(str(edge.branch) for edge in outgoing)
        if labels != sorted(required):
            return [
                f"{node.type.value.capitalize()} node '{node.id}' needs exactly two outgoing "
                f"edges labelled {list(required)}, found {labels}"
            ]
        return []

    def set_node_config(
        self, definition: WorkflowDefinition, node_id: str, raw_config: Dict[str, Any]
    ) -> WorkflowDefinition:
        """返回替换了单个节点配置的定义副本"""
        node = definition.get_node(node_id)
        if node is None:
            raise DefinitionValidationError(
                f"Node '{node_id}' not found", [f"node '{node_id}': does not exist"]
            )
        config = self.build_config(node.type, raw_config, node_id=node_id)
        nodes = [replace(n, config=config) if n.id == node_id else n for n in definition.nodes]
        return replace(definition, nodes=nodes, updated_at=utcnow())

    def activate(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        errors = self.validate(definition)
        if errors:
            raise DefinitionValidationError("Cannot activate an invalid workflow", errors)
        return definition.with_status(WorkflowStatus.ACTIVE)

    def to_dict(self, definition: WorkflowDefinition) -> Dict[str, Any]:
        return {
            "id": definition.id,
            "name": definition.name,
            "trigger_type": definition.trigger_type,
            "status": definition.status.value,
            "description": definition.description,
            "nodes": [
                {
                    "id": node.id,
                    "type": node.type.value,
                    **({"name": node.name} if node.name else {}),
                    "config": self._config_to_dict(node.config),
                }
                for node in definition.nodes
            ],
            "edges": [
                {
                    "from": edge.source,
                    "to": edge.target,
                    **({"branch": edge.branch} if edge.branch is not None else {}),
                }
                for edge in definition.edges
            ],
            "created_at": definition.created_at.isoformat(),
            "updated_at": definition.updated_at.isoformat(),
        }

    def _config_to_dict(self, config) -> Dict[str, Any]:
        data = asdict(config)
        if isinstance(config, DelayConfig):
            data['unit'] = DelayUnit(config.unit).value
        if isinstance(config, ConditionConfig):
            if config.expression is not None:
                data = {k: v for k, v in data.items() if k not in ('field', 'operator', 'value')}
            else:
                data.pop('expression')
        return {key: value for key, value in data.items() if value is not None or key == 'value'}

    def serialize(self, definition: WorkflowDefinition, fmt: str = "json") -> str:
        data = self.to_dict(definition)
        if fmt in ("yaml", "yml"):
            return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
        if fmt == "json":
            return json.dumps(data, indent=2, ensure_ascii=False)
        raise ValueError(f"Unsupported format: {fmt}")
