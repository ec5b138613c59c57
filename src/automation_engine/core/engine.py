"""
工作流执行引擎：针对单个执行的状态解释工作流图

每个节点步骤单独提交，并以执行的 ``version`` 做比较并交换（CAS）。
竞争失败的步骤被丢弃，调用方拿到已存储的执行，因此并发的恢复方
（调度器、审批请求、手动推进）不会重复执行同一节点。
"""
import copy
import json
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from ..exceptions import (
    AdapterError, AutomationError, CycleDetectedError,
    InvalidStateTransitionError, NotFoundError, SchedulingError
)
from ..models.execution import Decision, Execution, ExecutionStatus, PendingApproval
from ..models.workflow import Node, NodeType, WorkflowDefinition, utcnow
from ..monitoring import EventLogger, MetricsRecorder
from ..storage.repository import DefinitionRepository, ExecutionRepository
from .conditions import ConditionEvaluator
from .variables import render, resolve_params

if TYPE_CHECKING:
    from ..integrations.actions import ActionAdapter
    from ..integrations.event_bus import EventBus


logger = logging.getLogger(__name__)


class ExecutionEngine:
    """工作流解释器"""

    def __init__(
        self,
        definitions: DefinitionRepository,
        executions: ExecutionRepository,
        action_adapter: "ActionAdapter",
        event_bus: Optional["EventBus"] = None,
        metrics: Optional[MetricsRecorder] = None,
        event_logger: Optional[EventLogger] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.definitions = definitions
        self.executions = executions
        self.action_adapter = action_adapter
        self.event_bus = event_bus
        self.metrics = metrics or MetricsRecorder()
        self.event_logger = event_logger or EventLogger()
        self.clock = clock
        self.conditions = ConditionEvaluator()

    async def create_execution(
        self,
        workflow_id: str,
        payload: Dict[str, Any],
        event_id: Optional[str] = None
    ) -> Execution:
        """
        创建位于工作流触发节点上的运行中执行

        Raises:
            NotFoundError: 工作流不存在
            InvalidStateTransitionError: 工作流未激活
            ConcurrencyConflictError: ``event_id`` 已启动过该工作流
        """
        definition = await self._get_definition(workflow_id)
        if not definition.is_active:
            raise InvalidStateTransitionError(
                definition.status.value, "start", f"workflow '{workflow_id}' is not active"
            )
        trigger = definition.trigger_node()
        if trigger is None:
            raise NotFoundError("Trigger node", workflow_id)

        now = self.clock()
        execution = Execution(
            workflow_id=workflow_id,
            current_node_id=trigger.id,
            context={"payload": copy.deepcopy(payload or {})},
            trigger_event_id=event_id,
            created_at=now,
            updated_at=now,
        )
        stored = await self.executions.create(execution)

        self.metrics.inc("executions_started", {"workflow_id": workflow_id})
        self.event_logger.log(
            "execution.created", execution_id=stored.id, workflow_id=workflow_id, event_id=event_id
        )
        await self._publish("execution.created", stored)
        logger.info(f"Created execution {stored.id} for workflow {workflow_id}")
        return stored

    async def advance(self, execution_id: str) -> Execution:
        """
        运行执行直到暂停或进入终止状态

        暂停中的执行原样返回。

        Raises:
            NotFoundError: 执行、工作流或当前节点不存在
            InvalidStateTransitionError: 执行已处于终止状态
        """
        execution = await self._get_execution(execution_id)
        if execution.is_terminal:
            raise InvalidStateTransitionError(execution.status.value, "advance")
        if execution.status.is_paused:
            return execution

        definition = await self._get_definition(execution.workflow_id)
        bound = max(2 * len(definition.nodes), 1)
        visits = 0

        while execution.status == ExecutionStatus.RUNNING:
            node = definition.get_node(execution.current_node_id)
            if node is None:
                raise NotFoundError("Node", execution.current_node_id)

            visits += 1
            working = execution.copy()
            if visits > bound:
                error = CycleDetectedError(node.id, bound)
                logger.warning(f"Execution {execution_id}: {error.message}")
                self._fail(working, node.id, error)
            else:
                await self._step(definition, node, working)

            if not await self._commit(working, execution):
                logger.info(
                    f"Execution {execution_id} was advanced concurrently, discarding step at {node.id}"
                )
                return await self._get_execution(execution_id)
            execution = working

        return execution

    async def resume_from_delay(self, execution_id: str, now: Optional[datetime] = None) -> Execution:
        """恢复时间已到时离开延时节点并继续推进"""
        now = now or self.clock()
        execution = await self._get_execution(execution_id)
        if execution.status != ExecutionStatus.PAUSED_DELAY:
            raise InvalidStateTransitionError(execution.status.value, "resume from delay")
        if execution.pending_resume_at is not None and execution.pending_resume_at > now:
            return execution

        definition = await self._get_definition(execution.workflow_id)
        working = execution.copy()
        working.status = ExecutionStatus.RUNNING
        working.pending_resume_at = None
        working.record(execution.current_node_id, "resumed", now)
        self._follow(definition, working, execution.current_node_id)

        if not await self._commit(working, execution):
            logger.info(f"Execution {execution_id} was resumed by another worker")
            return await self._get_execution(execution_id)
        return await self.continue_execution(working)

    async def resume_from_approval(
        self,
        execution_id: str,
        decision: Decision,
        approver_id: Optional[str] = None
    ) -> Execution:
        """
        沿 ``decision`` 对应的分支离开审批节点

        只提交恢复这一步；记录决定和继续推进由调用方负责。

        Raises:
            InvalidStateTransitionError: 执行不在等待审批状态，或其他决定已抢先提交
        """
        decision = Decision(decision)
        execution = await self._get_execution(execution_id)
        if execution.status != ExecutionStatus.PAUSED_APPROVAL:
            raise InvalidStateTransitionError(execution.status.value, "decide")

        definition = await self._get_definition(execution.workflow_id)
        now = self.clock()
        working = execution.copy()
        working.status = ExecutionStatus.RUNNING
        working.pending_approval = None
        working.record(
            execution.current_node_id, decision.value, now,
            detail={"approver_id": approver_id} if approver_id else None,
        )
        self._follow(definition, working, execution.current_node_id, decision.value)

        if not await self._commit(working, execution):
            current = await self._get_execution(execution_id)
            raise InvalidStateTransitionError(
                current.status.value, "decide", "execution was updated concurrently"
            )
        return working

    async def cancel(self, execution_id: str) -> None:
        """
        将未终止的执行置为 cancelled

        Raises:
            NotFoundError: 执行不存在
            InvalidStateTransitionError: 执行已处于终止状态
        """
        while True:
            execution = await self._get_execution(execution_id)
            if execution.is_terminal:
                raise InvalidStateTransitionError(execution.status.value, "cancel")

            working = execution.copy()
            working.status = ExecutionStatus.CANCELLED
            working.pending_resume_at = None
            working.pending_approval = None
            working.record(execution.current_node_id, "cancelled", self.clock())

            if await self._commit(working, execution):
                logger.info(f"Cancelled execution {execution_id}")
                return
            # 与并发步骤冲突，重新读取后重试

    async def continue_execution(self, execution: Execution) -> Execution:
        """推进刚恢复的执行，容忍其他方已并发完成或取消"""
        if execution.status != ExecutionStatus.RUNNING:
            return execution
        try:
            return await self.advance(execution.id)
        except InvalidStateTransitionError:
            # 已被其他方完成或取消
            return await self._get_execution(execution.id)

    async def _step(self, definition: WorkflowDefinition, node: Node, execution: Execution):
        now = self.clock()

        if node.type == NodeType.TRIGGER:
            execution.record(node.id, "triggered", now)
            self._follow(definition, execution, node.id)

        elif node.type == NodeType.CONDITION:
            branch = "true" if self.conditions.evaluate(node.config, execution.context) else "false"
            execution.record(node.id, branch, now)
            self._follow(definition, execution, node.id, branch)

        elif node.type == NodeType.ACTION:
            await self._run_action(definition, node, execution, now)

        elif node.type == NodeType.DELAY:
            try:
                resume_at = now + timedelta(seconds=node.config.seconds())
            except OverflowError:
                self._fail(execution, node.id, SchedulingError(
                    f"Delay of {node.config.seconds():.0f}s from {now.isoformat()} is out of range",
                    {"node_id": node.id},
                ))
                return
            execution.status = ExecutionStatus.PAUSED_DELAY
            execution.pending_resume_at = resume_at
            execution.record(node.id, "paused_delay", now, detail={"resume_at": resume_at.isoformat()})

        elif node.type == NodeType.APPROVAL:
            details = node.config.details
            if details is not None:
                details = str(render(details, execution.context))
            execution.status = ExecutionStatus.PAUSED_APPROVAL
            execution.pending_approval = PendingApproval(
                message=str(render(node.config.message, execution.context)),
                details=details,
                paused_at=now,
            )
            execution.record(node.id, "paused_approval", now)

    async def _run_action(
        self,
        definition: WorkflowDefinition,
        node: Node,
        execution: Execution,
        now: datetime
    ):
        action_type = node.config.action_type
        params = resolve_params(node.config.params, execution.context)
        labels = {"action_type": action_type}

        try:
            with self.metrics.timer("action_seconds", labels):
                output = await self.action_adapter.execute(
                    action_type, params, copy.deepcopy(execution.context)
                )
        except AdapterError as e:
            self.metrics.inc("actions_failed", labels)
            self._fail(execution, node.id, e)
            return
        except Exception as e:
            self.metrics.inc("actions_failed", labels)
            self._fail(execution, node.id, AdapterError(action_type, str(e) or type(e).__name__, e))
            return

        # 写入上下文的输出必须可被 JSON 序列化
        try:
            output = json.loads(json.dumps(output)) if output is not None else {}
        except (TypeError, ValueError) as e:
            self.metrics.inc("actions_failed", labels)
            self._fail(execution, node.id, AdapterError(
                action_type, f"Action output is not JSON serializable: {e}", e
            ))
            return

        self.metrics.inc("actions_succeeded", labels)
        execution.context[node.id] = output
        execution.record(node.id, "succeeded", now, detail={"action_type": action_type})
        self._follow(definition, execution, node.id)

    def _follow(
        self,
        definition: WorkflowDefinition,
        execution: Execution,
        node_id: str,
        branch: Optional[str] = None
    ):
        edge = definition.edge_for_branch(node_id, branch)
        if edge is None:
            execution.status = ExecutionStatus.COMPLETED
        else:
            execution.current_node_id = edge.target

    def _fail(self, execution: Execution, node_id: str, error: AutomationError):
        now = self.clock()
        execution.status = ExecutionStatus.FAILED
        execution.pending_resume_at = None
        execution.pending_approval = None
        execution.record(
            node_id, "failed", now,
            error={"kind": error.kind, "message": error.message, "at": now.isoformat()},
        )
        logger.error(f"Execution {execution.id} failed at node {node_id}: {error.message}")

    async def _commit(self, working: Execution, previous: Execution) -> bool:
        working.updated_at = self.clock()
        if not await self.executions.compare_and_swap(working, previous.version):
            self.metrics.inc("cas_conflicts")
            return False

        if working.status != previous.status:
            if working.status.is_terminal:
                self.metrics.inc(f"executions_{working.status.value}", {"workflow_id": working.workflow_id})
            self.event_logger.log(
                f"execution.{working.status.value}",
                execution_id=working.id,
                workflow_id=working.workflow_id,
                node_id=working.current_node_id,
                version=working.version,
            )
            await self._publish(f"execution.{working.status.value}", working)
        return True

    async def _publish(self, topic: str, execution: Execution):
        if self.event_bus is None:
            return
        await self.event_bus.publish(topic, {
            "execution_id": execution.id,
            "workflow_id": execution.workflow_id,
            "status": execution.status.value,
            "current_node_id": execution.current_node_id,
            "version": execution.version,
        })

    async def _get_definition(self, workflow_id: str) -> WorkflowDefinition:
        definition = await self.definitions.get(workflow_id)
        if definition is None:
            raise NotFoundError("Workflow", workflow_id)
        return definition

    async def _get_execution(self, execution_id: str) -> Execution:
        execution = await self.executions.get(execution_id)
        if execution is None:
            raise NotFoundError("Execution", execution_id)
        return execution
