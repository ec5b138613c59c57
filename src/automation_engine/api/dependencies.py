"""
FastAPI 依赖
"""
from fastapi import HTTPException, Request, status

from ..exceptions import (
    AutomationError, DefinitionValidationError, InvalidStateTransitionError,
    NotFoundError, ConcurrencyConflictError
)
from ..runtime import Runtime


ERROR_STATUS = {
    DefinitionValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidStateTransitionError: status.HTTP_409_CONFLICT,
    ConcurrencyConflictError: status.HTTP_409_CONFLICT,
}


def get_runtime(request: Request) -> Runtime:
    runtime = getattr(request.app.state, "runtime", None)

    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "service_unavailable",
                "message": "Automation runtime not initialized"
            }
        )

    return runtime


def to_http_exception(error: AutomationError) -> HTTPException:
    """将领域错误映射为带 ``{error, message}`` 响应体的 HTTP 错误"""
    status_code = status.HTTP_400_BAD_REQUEST
    for error_type, code in ERROR_STATUS.items():
        if isinstance(error, error_type):
            status_code = code
            break
    return HTTPException(status_code=status_code, detail=error.to_dict())
