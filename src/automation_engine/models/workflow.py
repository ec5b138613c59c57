"""
工作流定义数据模型
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NodeType(str, Enum):
    """节点类型"""
    TRIGGER = "trigger"
    CONDITION = "condition"
    ACTION = "action"
    DELAY = "delay"
    APPROVAL = "approval"


class WorkflowStatus(str, Enum):
    """定义激活状态"""
    ACTIVE = "active"
    INACTIVE = "inactive"


class TriggerType(str, Enum):
    """工作流可响应的领域事件"""
    CLIENT_CREATED = "client_created"
    CLIENT_UPDATED = "client_updated"
    APPOINTMENT_CREATED = "appointment_created"
    APPOINTMENT_UPDATED = "appointment_updated"
    APPOINTMENT_COMPLETED = "appointment_completed"
    INVOICE_CREATED = "invoice_created"
    INVOICE_DUE = "invoice_due"
    INVOICE_OVERDUE = "invoice_overdue"
    INVOICE_PAID = "invoice_paid"
    SERVICE_CREATED = "service_created"
    SERVICE_COMPLETED = "service_completed"
    PIANO_CREATED = "piano_created"
    PIANO_UPDATED = "piano_updated"
    MANUAL = "manual"


class DelayUnit(str, Enum):
    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"


# 条件节点和审批节点出边上的分支标签
CONDITION_BRANCHES = ("true", "false")
APPROVAL_BRANCHES = ("approved", "rejected")


@dataclass(frozen=True)
class TriggerConfig:
    trigger_type: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class ConditionConfig:
    """单行表达式，或结构化的 field/operator/value 三元组"""
    expression: Optional[str] = None
    field: Optional[str] = None
    operator: Optional[str] = None
    value: Any = None
    label: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class ActionConfig:
    action_type: str
    params: Dict[str, Any] = field(default_factory=dict)
    description: Optional[str] = None


# 延时上限，约十年
MAX_DELAY_SECONDS = 10 * 365 * 86400


@dataclass(frozen=True)
class DelayConfig:
    amount: float
    unit: DelayUnit = DelayUnit.MINUTES

    def seconds(self) -> float:
        multiplier = {
            DelayUnit.SECONDS: 1,
            DelayUnit.MINUTES: 60,
            DelayUnit.HOURS: 3600,
            DelayUnit.DAYS: 86400,
        }[DelayUnit(self.unit)]
        return float(self.amount) * multiplier


@dataclass(frozen=True)
class ApprovalConfig:
    message: str
    details: Optional[str] = None
    timeout: Optional[float] = None


NodeConfig = Union[TriggerConfig, ConditionConfig, ActionConfig, DelayConfig, ApprovalConfig]

CONFIG_TYPES = {
    NodeType.TRIGGER: TriggerConfig,
    NodeType.CONDITION: ConditionConfig,
    NodeType.ACTION: ActionConfig,
    NodeType.DELAY: DelayConfig,
    NodeType.APPROVAL: ApprovalConfig,
}


@dataclass(frozen=True)
class Node:
    """图节点：带标签的记录，持有对应类型的配置"""
    id: str
    type: NodeType
    config: NodeConfig
    name: Optional[str] = None


@dataclass(frozen=True)
class Edge:
    """两个节点之间的有向边"""
    source: str
    target: str
    branch: Optional[str] = None


@dataclass
class WorkflowDefinition:
    """已校验的工作流图"""
    id: str
    name: str
    trigger_type: str
    nodes: List[Node]
    edges: List[Edge] = field(default_factory=list)
    status: WorkflowStatus = WorkflowStatus.INACTIVE
    description: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self._node_map: Dict[str, Node] = {node.id: node for node in self.nodes}

    @property
    def is_active(self) -> bool:
        return self.status == WorkflowStatus.ACTIVE

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._node_map.get(node_id)

    def trigger_node(self) -> Optional[Node]:
        for node in self.nodes:
            if node.type == NodeType.TRIGGER:
                return node
        return None

    def outgoing(self, node_id: str) -> List[Edge]:
        return [edge for edge in self.edges if edge.source == node_id]

    def incoming(self, node_id: str) -> List[Edge]:
        return [edge for edge in self.edges if edge.target == node_id]

    def edge_for_branch(self, node_id: str, branch: Optional[str] = None) -> Optional[Edge]:
        """返回匹配 ``branch`` 的出边，或唯一的无标签出边"""
        for edge in self.outgoing(node_id):
            if edge.branch == branch:
                return edge
        return None

    def with_status(self, status: WorkflowStatus) -> "WorkflowDefinition":
        return replace(self, status=status, updated_at=utcnow())
