"""
触发分发器：为每个匹配的活动工作流启动一个执行
"""
import logging
from typing import TYPE_CHECKING, List

from ..exceptions import AutomationError, ConcurrencyConflictError
from ..models.execution import DomainEvent, Execution
from ..storage.repository import DefinitionRepository, ExecutionRepository
from .engine import ExecutionEngine

if TYPE_CHECKING:
    from ..integrations.event_bus import BusMessage, EventBus


logger = logging.getLogger(__name__)

DOMAIN_EVENTS_TOPIC = "domain.events"


class TriggerDispatcher:
    """将领域事件匹配到活动的工作流定义"""

    def __init__(
        self,
        engine: ExecutionEngine,
        definitions: DefinitionRepository,
        executions: ExecutionRepository,
        dedup_events: bool = True,
    ):
        self.engine = engine
        self.definitions = definitions
        self.executions = executions
        self.dedup_events = dedup_events

    async def dispatch(self, event: DomainEvent) -> List[Execution]:
        """
        为每个绑定 ``event.type`` 的活动工作流启动并推进一个执行

        单个工作流失败只记录日志，不影响其他工作流启动。开启 ``dedup_events``
        时，重复投递的事件不会为已启动过的工作流再创建执行。

        Returns:
            本次调用启动的执行（推进之后的状态）
        """
        definitions = await self.definitions.list_active(event.type)
        if not definitions:
            logger.debug(f"No active workflows for event type '{event.type}'")
            return []

        started: List[Execution] = []
        for definition in definitions:
            event_id = event.event_id if self.dedup_events else None
            if event_id is not None:
                existing = await self.executions.find_by_trigger_event(definition.id, event_id)
                if existing is not None:
                    logger.info(
                        f"Event {event_id} already started workflow {definition.id} "
                        f"(execution {existing.id}), skipping"
                    )
                    continue

            try:
                execution = await self.engine.create_execution(definition.id, event.payload, event_id)
            except ConcurrencyConflictError:
                logger.info(f"Event {event_id} raced another dispatcher for workflow {definition.id}")
                continue
            except AutomationError as e:
                logger.error(f"Could not start workflow {definition.id}: {e.message}")
                continue

            try:
                execution = await self.engine.advance(execution.id)
            except AutomationError as e:
                logger.error(f"Workflow {definition.id} stopped on event {event.event_id}: {e.message}")
                execution = await self.executions.get(execution.id) or execution
            except Exception as e:
                logger.error(
                    f"Unexpected error running workflow {definition.id}: {e}", exc_info=True
                )
                execution = await self.executions.get(execution.id) or execution
            started.append(execution)

        logger.info(
            f"Event {event.type}/{event.event_id} started {len(started)} of "
            f"{len(definitions)} matching workflows"
        )
        return started

    async def attach(self, event_bus: "EventBus", topic: str = DOMAIN_EVENTS_TOPIC):
        """分发 ``topic`` 上发布的每条消息"""
        await event_bus.subscribe(topic, self._on_bus_event)

    async def detach(self, event_bus: "EventBus", topic: str = DOMAIN_EVENTS_TOPIC):
        await event_bus.unsubscribe(topic, self._on_bus_event)

    async def _on_bus_event(self, message: "BusMessage"):
        payload = message.payload
        if isinstance(payload, DomainEvent):
            event = payload
        else:
            event = DomainEvent(
                type=payload["type"],
                payload=payload.get("payload") or {},
                **({"event_id": payload["event_id"]} if payload.get("event_id") else {}),
            )
        await self.dispatch(event)
