"""
FastAPI 应用
"""
from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .dependencies import to_http_exception
from .middleware import RequestLoggingMiddleware
from .routers import events, executions, approvals, monitoring
from .. import __version__
from ..config import Settings
from ..exceptions import AutomationError
from ..runtime import Runtime


logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def create_app(settings: Optional[Settings] = None, runtime: Optional[Runtime] = None) -> FastAPI:
    """
    创建 API 应用

    Args:
        settings: 配置；省略时取自 ``runtime`` 或环境变量
        runtime: 预先组装好的组件（测试用）。省略时由 lifespan 根据 ``settings``
            创建数据库运行时并在关闭时释放；传入的运行时只负责启动和停止。
    """
    if settings is None:
        settings = runtime.settings if runtime is not None else Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        current = runtime
        owned = current is None
        if owned:
            current = await Runtime.from_settings(settings)
        await current.start(scheduler=settings.scheduler_enabled)
        app.state.runtime = current
        logger.info(
            f"Automation API ready (database={settings.database_url}, "
            f"scheduler={'on' if settings.scheduler_enabled else 'off'})"
        )

        yield

        if owned:
            await current.close()
        else:
            await current.scheduler.stop()
            await current.dispatcher.detach(current.event_bus)
        app.state.runtime = None
        logger.info("Automation API stopped")

    app = FastAPI(
        title="Piano Service Automation API",
        description="Workflow automation engine for piano-service businesses",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(events.router, prefix=f"{API_PREFIX}/events", tags=["events"])
    app.include_router(executions.router, prefix=f"{API_PREFIX}/executions", tags=["executions"])
    app.include_router(approvals.router, prefix=f"{API_PREFIX}/approvals", tags=["approvals"])
    app.include_router(monitoring.router, prefix=f"{API_PREFIX}/monitoring", tags=["monitoring"])

    @app.exception_handler(AutomationError)
    async def automation_error_handler(request: Request, exc: AutomationError):
        # 路由已处理预期错误，这里兜底其余领域错误
        http_error = to_http_exception(exc)
        logger.warning(f"{request.method} {request.url.path}: {exc.kind}: {exc}")
        return JSONResponse(status_code=http_error.status_code, content={"detail": http_error.detail})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": {
                    "error": "InternalError",
                    "message": "An unexpected error occurred",
                },
                "request_id": getattr(request.state, "request_id", None),
            }
        )

    @app.get("/", tags=["root"])
    async def root():
        return {
            "name": "Piano Service Automation API",
            "version": __version__,
            "docs": "/docs",
            "health": f"{API_PREFIX}/monitoring/health",
        }

    return app
