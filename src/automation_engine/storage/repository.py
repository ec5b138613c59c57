"""
存储仓储接口及内存实现
"""
import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import ConcurrencyConflictError
from ..models.workflow import WorkflowDefinition, WorkflowStatus
from ..models.execution import ApprovalDecision, Execution, ExecutionStatus


class DefinitionRepository(ABC):
    """工作流定义仓储"""

    @abstractmethod
    async def save(self, definition: WorkflowDefinition) -> str:
        """插入或替换定义"""
        pass

    @abstractmethod
    async def get(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        pass

    @abstractmethod
    async def list(self, status: Optional[WorkflowStatus] = None) -> List[WorkflowDefinition]:
        pass

    @abstractmethod
    async def list_active(self, trigger_type: str) -> List[WorkflowDefinition]:
        """绑定 ``trigger_type`` 的活动定义"""
        pass


class ExecutionRepository(ABC):
    """执行状态仓储；每次更新都是带版本的写入"""

    @abstractmethod
    async def create(self, execution: Execution) -> Execution:
        """
        插入新执行

        Raises:
            ConcurrencyConflictError: id 重复，或相同 ``(workflow_id, trigger_event_id)``
                的执行已存在
        """
        pass

    @abstractmethod
    async def get(self, execution_id: str) -> Optional[Execution]:
        pass

    @abstractmethod
    async def compare_and_swap(self, execution: Execution, expected_version: int) -> bool:
        """
        仅当已存储版本等于 ``expected_version`` 时保存 ``execution``

        成功后存储版本与 ``execution.version`` 均变为 ``expected_version + 1``。
        其他写入方抢先时返回 False。
        """
        pass

    @abstractmethod
    async def list_by_status(
        self,
        status: ExecutionStatus,
        offset: int = 0,
        limit: int = 100
    ) -> List[Execution]:
        pass

    @abstractmethod
    async def list_by_workflow(
        self,
        workflow_id: str,
        status: Optional[ExecutionStatus] = None,
        offset: int = 0,
        limit: int = 100
    ) -> List[Execution]:
        pass

    @abstractmethod
    async def list_due_delays(self, now: datetime, limit: int = 100) -> List[Execution]:
        """恢复时间不晚于 ``now`` 的 paused_delay 执行"""
        pass

    @abstractmethod
    async def find_by_trigger_event(self, workflow_id: str, event_id: str) -> Optional[Execution]:
        pass

    @abstractmethod
    async def save_decision(self, decision: ApprovalDecision) -> None:
        pass

    @abstractmethod
    async def list_decisions(self, execution_id: str) -> List[ApprovalDecision]:
        pass


# 内存实现（测试及单进程部署）
class InMemoryDefinitionRepository(DefinitionRepository):

    def __init__(self):
        self.definitions: Dict[str, WorkflowDefinition] = {}

    async def save(self, definition: WorkflowDefinition) -> str:
        self.definitions[definition.id] = definition
        return definition.id

    async def get(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        return self.definitions.get(workflow_id)

    async def list(self, status: Optional[WorkflowStatus] = None) -> List[WorkflowDefinition]:
        definitions = sorted(self.definitions.values(), key=lambda d: d.id)
        if status is not None:
            definitions = [d for d in definitions if d.status == status]
        return definitions

    async def list_active(self, trigger_type: str) -> List[WorkflowDefinition]:
        return [
            d for d in await self.list(WorkflowStatus.ACTIVE)
            if d.trigger_type == trigger_type
        ]


class InMemoryExecutionRepository(ExecutionRepository):
    """保存序列化快照，调用方与存储之间不共享可变状态"""

    def __init__(self):
        self.executions: Dict[str, Dict[str, Any]] = {}
        self.trigger_index: Dict[Tuple[str, str], str] = {}
        self.decisions: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    async def create(self, execution: Execution) -> Execution:
        execution.check_invariants()
        async with self._lock:
            if execution.id in self.executions:
                raise ConcurrencyConflictError(f"Execution {execution.id} already exists")
            if execution.trigger_event_id is not None:
                key = (execution.workflow_id, execution.trigger_event_id)
                if key in self.trigger_index:
                    raise ConcurrencyConflictError(
                        f"Event {execution.trigger_event_id} already started workflow {execution.workflow_id}",
                        {"execution_id": self.trigger_index[key]},
                    )
                self.trigger_index[key] = execution.id
            self.executions[execution.id] = execution.to_dict()
        return execution.copy()

    async def get(self, execution_id: str) -> Optional[Execution]:
        async with self._lock:
            data = self.executions.get(execution_id)
        return Execution.from_dict(data) if data else None

    async def compare_and_swap(self, execution: Execution, expected_version: int) -> bool:
        execution.check_invariants()
        async with self._lock:
            stored = self.executions.get(execution.id)
            if stored is None or stored["version"] != expected_version:
                return False
            execution.version = expected_version + 1
            self.executions[execution.id] = execution.to_dict()
        return True

    async def _all(self) -> List[Execution]:
        async with self._lock:
            snapshots = list(self.executions.values())
        executions = [Execution.from_dict(data) for data in snapshots]
        executions.sort(key=lambda e: (e.created_at, e.id))
        return executions

    async def list_by_status(
        self,
        status: ExecutionStatus,
        offset: int = 0,
        limit: int = 100
    ) -> List[Execution]:
        matches = [e for e in await self._all() if e.status == status]
        return matches[offset:offset + limit]

    async def list_by_workflow(
        self,
        workflow_id: str,
        status: Optional[ExecutionStatus] = None,
        offset: int = 0,
        limit: int = 100
    ) -> List[Execution]:
        matches = [
            e for e in await self._all()
            if e.workflow_id == workflow_id and (status is None or e.status == status)
        ]
        return matches[offset:offset + limit]

    async def list_due_delays(self, now: datetime, limit: int = 100) -> List[Execution]:
        due = [
            e for e in await self._all()
            if e.status == ExecutionStatus.PAUSED_DELAY
            and e.pending_resume_at is not None
            and e.pending_resume_at <= now
        ]
        due.sort(key=lambda e: (e.pending_resume_at, e.id))
        return due[:limit]

    async def find_by_trigger_event(self, workflow_id: str, event_id: str) -> Optional[Execution]:
        execution_id = self.trigger_index.get((workflow_id, event_id))
        return await self.get(execution_id) if execution_id else None

    async def save_decision(self, decision: ApprovalDecision) -> None:
        async with self._lock:
            self.decisions.setdefault(decision.execution_id, []).append(decision.to_dict())

    async def list_decisions(self, execution_id: str) -> List[ApprovalDecision]:
        async with self._lock:
            records = list(self.decisions.get(execution_id, []))
        return [ApprovalDecision.from_dict(item) for item in records]
