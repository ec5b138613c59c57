"""
数据模型
"""
from .workflow import (
    NodeType, WorkflowStatus, TriggerType, DelayUnit,
    TriggerConfig, ConditionConfig, ActionConfig, DelayConfig, ApprovalConfig,
    Node, Edge, WorkflowDefinition, CONDITION_BRANCHES, APPROVAL_BRANCHES, utcnow
)
from .execution import (
    ExecutionStatus, Decision, HistoryEntry, PendingApproval,
    Execution, ApprovalDecision, DomainEvent
)

__all__ = [
    "NodeType", "WorkflowStatus", "TriggerType", "DelayUnit",
    "TriggerConfig", "ConditionConfig", "ActionConfig", "DelayConfig", "ApprovalConfig",
    "Node", "Edge", "WorkflowDefinition", "CONDITION_BRANCHES", "APPROVAL_BRANCHES", "utcnow",
    "ExecutionStatus", "Decision", "HistoryEntry", "PendingApproval",
    "Execution", "ApprovalDecision", "DomainEvent",
]
