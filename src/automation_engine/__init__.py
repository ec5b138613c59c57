"""
Piano Service Automation - 钢琴服务工作流自动化引擎
"""

__version__ = "1.0.0"

from .exceptions import (
    AutomationError,
    DefinitionValidationError,
    CycleDetectedError,
    AdapterError,
    InvalidStateTransitionError,
    NotFoundError,
    ConcurrencyConflictError,
)
from .models import DomainEvent, Execution, ExecutionStatus, WorkflowDefinition
from .core import (
    ExecutionEngine,
    DelayScheduler,
    ApprovalGateway,
    TriggerDispatcher,
    WorkflowParser,
)
from .integrations import ActionAdapter, ActionRegistry, LoggingActionAdapter, EventBus

__all__ = [
    "__version__",
    "AutomationError",
    "DefinitionValidationError",
    "CycleDetectedError",
    "AdapterError",
    "InvalidStateTransitionError",
    "NotFoundError",
    "ConcurrencyConflictError",
    "DomainEvent",
    "Execution",
    "ExecutionStatus",
    "WorkflowDefinition",
    "ExecutionEngine",
    "DelayScheduler",
    "ApprovalGateway",
    "TriggerDispatcher",
    "WorkflowParser",
    "ActionAdapter",
    "ActionRegistry",
    "LoggingActionAdapter",
    "EventBus",
]
