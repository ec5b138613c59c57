"""
自动化引擎异常定义
"""
from typing import Any, Dict, Optional


class AutomationError(Exception):
    """自动化引擎基础异常"""

    kind = "AutomationError"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.kind,
            "message": self.message,
            "details": self.details,
        }


class DefinitionValidationError(AutomationError):
    """工作流定义不合法，激活前即被拒绝"""

    kind = "ValidationError"

    def __init__(self, message: str, errors: Optional[list] = None):
        self.errors = list(errors or [])
        super().__init__(message, {"errors": self.errors} if self.errors else None)


class CycleDetectedError(AutomationError):
    """单次推进中超出节点访问上限"""

    kind = "CycleDetected"

    def __init__(self, node_id: str, visits: int):
        self.node_id = node_id
        self.visits = visits
        super().__init__(
            f"Visit bound of {visits} exceeded at node '{node_id}'",
            {"node_id": node_id, "visits": visits},
        )


class AdapterError(AutomationError):
    """动作适配器调用失败"""

    kind = "AdapterError"

    def __init__(self, action_type: str, message: str, cause: Exception = None):
        self.action_type = action_type
        self.cause = cause
        details = {"action_type": action_type}
        if cause is not None:
            details["cause"] = type(cause).__name__
        super().__init__(message, details)


class InvalidStateTransitionError(AutomationError):
    """当前执行状态下不允许该操作"""

    kind = "InvalidStateTransition"

    def __init__(self, current_state: str, operation: str, message: str = None):
        self.current_state = current_state
        self.operation = operation
        msg = f"Cannot {operation} an execution in state '{current_state}'"
        if message:
            msg += f": {message}"
        super().__init__(msg, {"current_state": current_state, "operation": operation})


class NotFoundError(AutomationError):
    """工作流、执行或节点不存在"""

    kind = "NotFound"

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            f"{resource} '{resource_id}' not found",
            {"resource": resource, "id": resource_id},
        )


class ConcurrencyConflictError(AutomationError):
    """带版本的写入或唯一插入竞争失败"""

    kind = "ConcurrencyConflict"


class SchedulingError(AutomationError):
    """延时调度器使用错误"""

    kind = "SchedulingError"
