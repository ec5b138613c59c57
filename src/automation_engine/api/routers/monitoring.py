"""
监控 API 路由
"""
from fastapi import APIRouter, Depends
import logging

from ..models import HealthCheckResponse, MetricsResponse
from ..dependencies import get_runtime
from ... import __version__
from ...models.execution import ExecutionStatus
from ...models.workflow import utcnow
from ...runtime import Runtime


logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    runtime: Runtime = Depends(get_runtime)
) -> HealthCheckResponse:
    checks = {}

    try:
        await runtime.definitions.list()
        checks["database"] = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = False

    checks["scheduler"] = runtime.scheduler.running or not runtime.settings.scheduler_enabled

    return HealthCheckResponse(
        status="healthy" if all(checks.values()) else "unhealthy",
        version=__version__,
        timestamp=utcnow(),
        checks=checks
    )


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics(
    runtime: Runtime = Depends(get_runtime)
) -> MetricsResponse:
    by_status = {}
    for execution_status in ExecutionStatus:
        executions = await runtime.executions.list_by_status(execution_status, limit=10000)
        by_status[execution_status.value] = len(executions)

    snapshot = runtime.metrics.snapshot()
    due = await runtime.executions.list_due_delays(runtime.engine.clock(), limit=10000)

    return MetricsResponse(
        counters=snapshot["counters"],
        timings=snapshot["timings"],
        executions_by_status=by_status,
        pending_approvals=by_status[ExecutionStatus.PAUSED_APPROVAL.value],
        due_delays=len(due),
    )
