"""
动作适配器边界
"""
import asyncio
import inspect
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

from ..core.schemas import SchemaValidator
from ..exceptions import AdapterError


logger = logging.getLogger(__name__)


class ActionAdapter(ABC):
    """执行一种具体动作类型"""

    @abstractmethod
    async def execute(
        self,
        action_type: str,
        params: Dict[str, Any],
        context: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        用已解析的 ``params`` 执行 ``action_type``

        Returns:
            动作输出，以节点 id 为键合并进执行上下文

        Raises:
            AdapterError: 外部调用失败
        """
        pass


class ActionRegistry(ActionAdapter):
    """将动作类型路由到已注册的处理函数"""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self.handlers: Dict[str, Callable] = {}
        self.schemas: Dict[str, Dict[str, Any]] = {}
        self.schema_validator = SchemaValidator()

    def register_action(
        self,
        action_type: str,
        handler: Callable,
        params_schema: Optional[Dict[str, Any]] = None
    ):
        if not callable(handler):
            raise ValueError(f"Handler for action {action_type} must be callable")
        self.handlers[action_type] = handler
        if params_schema:
            self.schemas[action_type] = params_schema
        logger.info(f"Registered action: {action_type}")

    def unregister_action(self, action_type: str):
        self.handlers.pop(action_type, None)
        self.schemas.pop(action_type, None)

    def list_actions(self) -> List[str]:
        return sorted(self.handlers)

    async def execute(
        self,
        action_type: str,
        params: Dict[str, Any],
        context: Dict[str, Any]
    ) -> Dict[str, Any]:
        handler = self.handlers.get(action_type)
        if handler is None:
            raise AdapterError(action_type, f"No handler registered for action type '{action_type}'")

        schema = self.schemas.get(action_type)
        if schema:
            errors = self.schema_validator.validate(params, schema)
            if errors:
                raise AdapterError(action_type, f"Invalid parameters for {action_type}: {errors}")

        start_time = time.time()
        try:
            if inspect.iscoroutinefunction(handler):
                call = handler(params, context)
            else:
                call = asyncio.to_thread(handler, params, context)
            if self.timeout:
                result = await asyncio.wait_for(call, timeout=self.timeout)
            else:
                result = await call
        except AdapterError:
            raise
        except asyncio.TimeoutError as e:
            raise AdapterError(action_type, f"Action {action_type} timed out after {self.timeout}s", e)
        except Exception as e:
            logger.error(f"Action {action_type} failed: {e}", exc_info=True)
            raise AdapterError(action_type, f"Action {action_type} failed: {e}", e)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(f"Action {action_type} completed in {duration_ms:.2f}ms")

        if result is None:
            return {}
        if not isinstance(result, dict):
            return {"result": result}
        return result


class LoggingActionAdapter(ActionRegistry):
    """
    开发用适配器

    记录每次调用并原样返回参数。``send_whatsapp`` 只生成 ``wa.me`` 链接，
    需要人工点击发送，因此输出状态为 ``prepared`` 而不是 ``delivered``。
    """

    def __init__(self, timeout: Optional[float] = None):
        super().__init__(timeout=timeout)
        self.calls: List[Dict[str, Any]] = []
        self.register_action("send_email", self._send_email)
        self.register_action("send_whatsapp", self._send_whatsapp)
        self.register_action("create_reminder", self._echo("create_reminder"))
        self.register_action("create_appointment", self._echo("create_appointment"))
        self.register_action("update_status", self._echo("update_status"))

    def _record(self, action_type: str, params: Dict[str, Any]):
        self.calls.append({"action_type": action_type, "params": params})
        logger.info(f"[{action_type}] {params}")

    async def _send_email(self, params, context):
        self._record("send_email", params)
        return {"status": "sent", "to": params.get("to"), "subject": params.get("subject")}

    async def _send_whatsapp(self, params, context):
        self._record("send_whatsapp", params)
        phone = "".join(ch for ch in str(params.get("phone", "")) if ch.isdigit())
        message = str(params.get("message", ""))
        return {
            "status": "prepared",
            "url": f"https://wa.me/{phone}?text={quote(message)}",
        }

    def _echo(self, action_type: str):
        async def handler(params, context):
            self._record(action_type, params)
            return {"status": "ok", **params}
        return handler
