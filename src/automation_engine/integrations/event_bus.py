"""
进程内消息总线

承载两类消息：``domain.events`` 上的业务事件（由触发分发器消费），
以及引擎在 ``execution.<status>`` 上发布的执行状态变更。订阅使用
``fnmatch`` 模式，``execution.*`` 可接收全部状态变更。
"""
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from fnmatch import fnmatchcase
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from ..models.workflow import utcnow


logger = logging.getLogger(__name__)


@dataclass
class BusMessage:
    topic: str
    payload: Any
    published_at: datetime = field(default_factory=utcnow)
    headers: Dict[str, str] = field(default_factory=dict)


Handler = Callable[[BusMessage], Union[None, Awaitable[None]]]


class EventBus:
    """基于模式的发布/订阅，按订阅顺序投递给处理函数"""

    def __init__(self):
        self._subscriptions: List[Tuple[str, Handler]] = []
        self.delivered = 0
        self.failed_deliveries = 0

    def subscribers_for(self, topic: str) -> List[Handler]:
        return [handler for pattern, handler in self._subscriptions if fnmatchcase(topic, pattern)]

    async def publish(self, topic: str, payload: Any, headers: Optional[Dict[str, str]] = None) -> int:
        """
        将 ``payload`` 投递给所有模式匹配 ``topic`` 的处理函数

        处理函数失败时记录日志并跳过，其余处理函数照常接收。
        返回成功接收的处理函数数量。
        """
        message = BusMessage(topic=topic, payload=payload, headers=dict(headers or {}))
        accepted = 0
        for handler in self.subscribers_for(topic):
            if await self._deliver(handler, message):
                accepted += 1

        logger.debug(f"Message on '{topic}' accepted by {accepted} handler(s)")
        return accepted

    async def subscribe(self, pattern: str, handler: Handler):
        if (pattern, handler) in self._subscriptions:
            return
        self._subscriptions.append((pattern, handler))
        logger.info(f"Subscribed {getattr(handler, '__qualname__', handler)!s} to '{pattern}'")

    async def unsubscribe(self, pattern: str, handler: Handler) -> bool:
        try:
            self._subscriptions.remove((pattern, handler))
        except ValueError:
            return False
        logger.info(f"Unsubscribed from '{pattern}'")
        return True

    async def _deliver(self, handler: Handler, message: BusMessage) -> bool:
        try:
            result = handler(message)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.failed_deliveries += 1
            logger.error(f"Handler for '{message.topic}' failed: {e}", exc_info=True)
            return False
        self.delivered += 1
        return True
