"""
核心自动化组件
"""
from .engine import ExecutionEngine
from .scheduler import DelayScheduler
from .approvals import ApprovalGateway
from .dispatcher import TriggerDispatcher
from .parser import WorkflowParser
from .conditions import ConditionEvaluator

__all__ = [
    "ExecutionEngine",
    "DelayScheduler",
    "ApprovalGateway",
    "TriggerDispatcher",
    "WorkflowParser",
    "ConditionEvaluator",
]
