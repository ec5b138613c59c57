"""
工作流执行 API 路由
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import List, Optional
import logging

from ..models import ExecutionCreateRequest, ExecutionResponse
from ..dependencies import get_runtime, to_http_exception
from ...exceptions import AutomationError
from ...models.execution import ExecutionStatus
from ...runtime import Runtime


logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=ExecutionResponse, status_code=status.HTTP_201_CREATED)
async def create_execution(
    request: ExecutionCreateRequest,
    runtime: Runtime = Depends(get_runtime)
) -> ExecutionResponse:
    """直接启动单个工作流并推进"""
    try:
        execution = await runtime.engine.create_execution(request.workflow_id, request.payload)
        execution = await runtime.engine.advance(execution.id)
    except AutomationError as e:
        raise to_http_exception(e)
    return ExecutionResponse.from_execution(execution)


@router.get("", response_model=List[ExecutionResponse])
async def list_executions(
    workflow_id: Optional[str] = Query(None),
    status_filter: Optional[ExecutionStatus] = Query(None, alias="status"),
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    runtime: Runtime = Depends(get_runtime)
) -> List[ExecutionResponse]:
    if workflow_id:
        executions = await runtime.executions.list_by_workflow(
            workflow_id, status=status_filter, offset=offset, limit=limit
        )
    elif status_filter:
        executions = await runtime.executions.list_by_status(status_filter, offset=offset, limit=limit)
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "bad_request",
                "message": "Filter by workflow_id or status"
            }
        )
    return [ExecutionResponse.from_execution(e) for e in executions]


@router.get("/{execution_id}", response_model=ExecutionResponse)
async def get_execution(
    execution_id: str,
    runtime: Runtime = Depends(get_runtime)
) -> ExecutionResponse:
    execution = await runtime.executions.get(execution_id)
    if execution is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "NotFound",
                "message": f"Execution '{execution_id}' not found"
            }
        )
    return ExecutionResponse.from_execution(execution)


@router.post("/{execution_id}/advance", response_model=ExecutionResponse)
async def advance_execution(
    execution_id: str,
    runtime: Runtime = Depends(get_runtime)
) -> ExecutionResponse:
    try:
        execution = await runtime.engine.advance(execution_id)
    except AutomationError as e:
        raise to_http_exception(e)
    return ExecutionResponse.from_execution(execution)


@router.post("/{execution_id}/cancel", response_model=ExecutionResponse)
async def cancel_execution(
    execution_id: str,
    runtime: Runtime = Depends(get_runtime)
) -> ExecutionResponse:
    try:
        await runtime.engine.cancel(execution_id)
    except AutomationError as e:
        raise to_http_exception(e)
    logger.info(f"Execution {execution_id} cancelled via API")
    return ExecutionResponse.from_execution(await runtime.executions.get(execution_id))
