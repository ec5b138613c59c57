"""
审批网关
"""
import logging
from datetime import timedelta
from typing import List

from ..exceptions import DefinitionValidationError
from ..models.execution import ApprovalDecision, Decision, Execution, ExecutionStatus
from ..storage.repository import ExecutionRepository
from .engine import ExecutionEngine


logger = logging.getLogger(__name__)


class ApprovalGateway:
    """列出等待人工处理的执行并应用审批决定"""

    def __init__(self, engine: ExecutionEngine, executions: ExecutionRepository, page_size: int = 500):
        self.engine = engine
        self.executions = executions
        self.page_size = page_size

    async def list_pending_approvals(self) -> List[Execution]:
        pending: List[Execution] = []
        offset = 0
        while True:
            page = await self.executions.list_by_status(
                ExecutionStatus.PAUSED_APPROVAL, offset=offset, limit=self.page_size
            )
            pending.extend(page)
            if len(page) < self.page_size:
                return pending
            offset += self.page_size

    async def decide(self, execution_id: str, decision: str, approver_id: str) -> Execution:
        """
        对暂停中的审批应用决定并继续执行

        Args:
            execution_id: 暂停中的执行
            decision: ``approved`` 或 ``rejected``
            approver_id: 审批人

        Returns:
            Execution: 运行到下一次暂停或终止状态后的执行

        Raises:
            NotFoundError: 执行不存在
            InvalidStateTransitionError: 执行不在等待审批状态
            DefinitionValidationError: ``decision`` 不是已知的决定
        """
        try:
            decision = Decision(decision)
        except ValueError:
            raise DefinitionValidationError(
                f"Invalid decision '{decision}'",
                [f"decision: must be one of {[d.value for d in Decision]}"],
            )

        resumed = await self.engine.resume_from_approval(execution_id, decision, approver_id)
        # resume_from_approval 之后执行已位于后继节点
        approval_node_id = resumed.history[-1].node_id
        record = ApprovalDecision(
            execution_id=execution_id,
            decision=decision,
            approver_id=approver_id,
            node_id=approval_node_id,
            decided_at=resumed.history[-1].entered_at,
        )
        # 决定已提交并写入历史，决定日志写入失败不影响继续执行
        try:
            await self.executions.save_decision(record)
        except Exception as e:
            self.engine.metrics.inc("decision_log_failures")
            logger.error(
                f"Failed to record {decision.value} decision for execution {execution_id}: {e}",
                exc_info=True
            )
        logger.info(f"Execution {execution_id} {decision.value} by {approver_id}")

        return await self.engine.continue_execution(resumed)

    async def list_decisions(self, execution_id: str) -> List[ApprovalDecision]:
        return await self.executions.list_decisions(execution_id)

    async def list_stale_approvals(self, older_than: timedelta = timedelta(hours=24)) -> List[Execution]:
        """暂停超过 ``older_than`` 的审批；仅供提醒，从不自动决定"""
        cutoff = self.engine.clock() - older_than
        stale = [
            execution for execution in await self.list_pending_approvals()
            if execution.pending_approval is not None
            and execution.pending_approval.paused_at <= cutoff
        ]
        if stale:
            logger.warning(f"{len(stale)} approvals pending for more than {older_than}")
        return stale
