"""
审批 API 路由
"""
from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from datetime import timedelta
import logging

from ..models import ApprovalDecisionResponse, DecisionRequest, ExecutionResponse
from ..dependencies import get_runtime, to_http_exception
from ...exceptions import AutomationError
from ...runtime import Runtime


logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=List[ExecutionResponse])
async def list_pending_approvals(
    runtime: Runtime = Depends(get_runtime)
) -> List[ExecutionResponse]:
    """等待人工决定的执行"""
    pending = await runtime.gateway.list_pending_approvals()
    return [ExecutionResponse.from_execution(e) for e in pending]


@router.get("/stale", response_model=List[ExecutionResponse])
async def list_stale_approvals(
    hours: Optional[float] = Query(None, gt=0, description="Override the configured age"),
    runtime: Runtime = Depends(get_runtime)
) -> List[ExecutionResponse]:
    older_than = timedelta(hours=hours) if hours else runtime.settings.stale_approval_age
    stale = await runtime.gateway.list_stale_approvals(older_than)
    return [ExecutionResponse.from_execution(e) for e in stale]


@router.post("/{execution_id}/decision", response_model=ExecutionResponse)
async def decide(
    execution_id: str,
    request: DecisionRequest,
    runtime: Runtime = Depends(get_runtime)
) -> ExecutionResponse:
    try:
        execution = await runtime.gateway.decide(
            execution_id, request.decision.value, request.approver_id
        )
    except AutomationError as e:
        raise to_http_exception(e)
    return ExecutionResponse.from_execution(execution)


@router.get("/{execution_id}/decisions", response_model=List[ApprovalDecisionResponse])
async def list_decisions(
    execution_id: str,
    runtime: Runtime = Depends(get_runtime)
) -> List[ApprovalDecisionResponse]:
    decisions = await runtime.gateway.list_decisions(execution_id)
    return [ApprovalDecisionResponse.model_validate(d.to_dict()) for d in decisions]
