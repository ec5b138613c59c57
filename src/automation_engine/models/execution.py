"""
执行状态模型
"""
import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .workflow import utcnow


class ExecutionStatus(str, Enum):
    """执行状态"""
    RUNNING = "running"
    PAUSED_DELAY = "paused_delay"
    PAUSED_APPROVAL = "paused_approval"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED)

    @property
    def is_paused(self) -> bool:
        return self in (ExecutionStatus.PAUSED_DELAY, ExecutionStatus.PAUSED_APPROVAL)


class Decision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


def _dump_dt(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _load_dt(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class HistoryEntry:
    """一次节点访问，或关于执行的审计记录"""
    node_id: str
    outcome: str
    entered_at: datetime = field(default_factory=utcnow)
    error: Optional[Dict[str, Any]] = None
    detail: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "outcome": self.outcome,
            "entered_at": _dump_dt(self.entered_at),
            "error": copy.deepcopy(self.error),
            "detail": copy.deepcopy(self.detail),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            node_id=data["node_id"],
            outcome=data["outcome"],
            entered_at=_load_dt(data["entered_at"]),
            error=copy.deepcopy(data.get("error")),
            detail=copy.deepcopy(data.get("detail")),
        )


@dataclass
class PendingApproval:
    message: str
    details: Optional[str]
    paused_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "details": self.details,
            "paused_at": _dump_dt(self.paused_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingApproval":
        return cls(
            message=data["message"],
            details=data.get("details"),
            paused_at=_load_dt(data["paused_at"]),
        )


@dataclass
class Execution:
    """工作流的一个运行中、暂停或已结束的实例"""
    workflow_id: str
    current_node_id: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: ExecutionStatus = ExecutionStatus.RUNNING
    context: Dict[str, Any] = field(default_factory=dict)
    history: List[HistoryEntry] = field(default_factory=list)
    pending_resume_at: Optional[datetime] = None
    pending_approval: Optional[PendingApproval] = None
    version: int = 0
    trigger_event_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def record(self, node_id: str, outcome: str, at: datetime, **extra) -> HistoryEntry:
        entry = HistoryEntry(node_id=node_id, outcome=outcome, entered_at=at, **extra)
        self.history.append(entry)
        return entry

    def check_invariants(self) -> None:
        """暂停相关字段与状态不一致时抛出 ValueError"""
        if (self.pending_resume_at is not None) != (self.status == ExecutionStatus.PAUSED_DELAY):
            raise ValueError(
                f"Execution {self.id}: pending_resume_at must be set iff status is paused_delay"
            )
        if (self.pending_approval is not None) != (self.status == ExecutionStatus.PAUSED_APPROVAL):
            raise ValueError(
                f"Execution {self.id}: pending_approval must be set iff status is paused_approval"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "status": self.status.value,
            "current_node_id": self.current_node_id,
            "context": copy.deepcopy(self.context),
            "history": [entry.to_dict() for entry in self.history],
            "pending_resume_at": _dump_dt(self.pending_resume_at),
            "pending_approval": self.pending_approval.to_dict() if self.pending_approval else None,
            "version": self.version,
            "trigger_event_id": self.trigger_event_id,
            "created_at": _dump_dt(self.created_at),
            "updated_at": _dump_dt(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Execution":
        pending = data.get("pending_approval")
        return cls(
            id=data["id"],
            workflow_id=data["workflow_id"],
            status=ExecutionStatus(data["status"]),
            current_node_id=data["current_node_id"],
            context=copy.deepcopy(data.get("context") or {}),
            history=[HistoryEntry.from_dict(item) for item in data.get("history") or []],
            pending_resume_at=_load_dt(data.get("pending_resume_at")),
            pending_approval=PendingApproval.from_dict(pending) if pending else None,
            version=int(data.get("version", 0)),
            trigger_event_id=data.get("trigger_event_id"),
            created_at=_load_dt(data["created_at"]),
            updated_at=_load_dt(data["updated_at"]),
        )

    def copy(self) -> "Execution":
        return Execution.from_dict(self.to_dict())


@dataclass
class ApprovalDecision:
    """针对暂停的审批节点记录的人工决定"""
    execution_id: str
    decision: Decision
    approver_id: str
    node_id: Optional[str] = None
    decided_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "decision": Decision(self.decision).value,
            "approver_id": self.approver_id,
            "node_id": self.node_id,
            "decided_at": _dump_dt(self.decided_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovalDecision":
        return cls(
            execution_id=data["execution_id"],
            decision=Decision(data["decision"]),
            approver_id=data["approver_id"],
            node_id=data.get("node_id"),
            decided_at=_load_dt(data["decided_at"]),
        )


@dataclass
class DomainEvent:
    """外部业务事件：``{type, payload, event_id}``"""
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
