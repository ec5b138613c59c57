"""
API 请求和响应模型
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum

from ..models.execution import Execution


class DecisionEnum(str, Enum):
    """审批决定（API）"""
    APPROVED = "approved"
    REJECTED = "rejected"


# 请求模型

class EventRequest(BaseModel):
    """待分发的领域事件"""
    type: str = Field(..., description="Trigger type, e.g. client_created")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Event payload")
    event_id: Optional[str] = Field(None, description="Delivery id used for redelivery dedup")


class ExecutionCreateRequest(BaseModel):
    """手动运行单个工作流"""
    workflow_id: str = Field(..., description="Workflow id")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Initial payload")


class DecisionRequest(BaseModel):
    """对暂停审批的人工决定"""
    decision: DecisionEnum
    approver_id: str = Field(..., min_length=1)


# 响应模型

class HistoryEntryResponse(BaseModel):
    node_id: str
    outcome: str
    entered_at: datetime
    error: Optional[Dict[str, Any]] = None
    detail: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)


class PendingApprovalResponse(BaseModel):
    message: str
    details: Optional[str] = None
    paused_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ExecutionResponse(BaseModel):
    """执行状态"""
    id: str
    workflow_id: str
    status: str
    current_node_id: str
    context: Dict[str, Any]
    history: List[HistoryEntryResponse]
    pending_resume_at: Optional[datetime] = None
    pending_approval: Optional[PendingApprovalResponse] = None
    version: int
    trigger_event_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_execution(cls, execution: Execution) -> "ExecutionResponse":
        return cls.model_validate(execution.to_dict())


class DispatchResponse(BaseModel):
    event_id: str
    executions: List[ExecutionResponse]


class ApprovalDecisionResponse(BaseModel):
    execution_id: str
    decision: DecisionEnum
    approver_id: str
    node_id: Optional[str] = None
    decided_at: datetime

    model_config = ConfigDict(from_attributes=True)


class HealthCheckResponse(BaseModel):
    status: str
    version: str
    timestamp: datetime
    checks: Dict[str, Any]


class MetricsResponse(BaseModel):
    counters: Dict[str, Dict[str, float]]
    timings: Dict[str, Dict[str, Dict[str, float]]] = {}
    executions_by_status: Dict[str, int]
    pending_approvals: int
    due_delays: int


class SuccessResponse(BaseModel):
    success: bool = True
    message: str
    data: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None
