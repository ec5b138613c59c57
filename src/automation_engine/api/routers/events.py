"""
领域事件接收
"""
from fastapi import APIRouter, Depends, status
import logging

from ..models import EventRequest, DispatchResponse, ExecutionResponse
from ..dependencies import get_runtime
from ...models.execution import DomainEvent
from ...runtime import Runtime


logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=DispatchResponse, status_code=status.HTTP_202_ACCEPTED)
async def dispatch_event(
    request: EventRequest,
    runtime: Runtime = Depends(get_runtime)
) -> DispatchResponse:
    """启动所有绑定该事件类型的活动工作流"""
    event_kwargs = {"event_id": request.event_id} if request.event_id else {}
    event = DomainEvent(type=request.type, payload=request.payload, **event_kwargs)

    executions = await runtime.dispatcher.dispatch(event)

    return DispatchResponse(
        event_id=event.event_id,
        executions=[ExecutionResponse.from_execution(e) for e in executions],
    )
