"""
API 与 CLI 共用的组件装配
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .config import Settings
from .core import ApprovalGateway, DelayScheduler, ExecutionEngine, TriggerDispatcher, WorkflowParser
from .integrations import ActionAdapter, EventBus, LoggingActionAdapter
from .models.workflow import WorkflowDefinition
from .monitoring import EventLogger, MetricsRecorder
from .storage.repository import (
    DefinitionRepository, ExecutionRepository,
    InMemoryDefinitionRepository, InMemoryExecutionRepository
)
from .storage.sqlalchemy_repository import (
    DatabaseManager, SQLAlchemyDefinitionRepository, SQLAlchemyExecutionRepository
)


logger = logging.getLogger(__name__)

WORKFLOW_FILE_SUFFIXES = (".yaml", ".yml", ".json")


@dataclass
class Runtime:
    settings: Settings
    definitions: DefinitionRepository
    executions: ExecutionRepository
    engine: ExecutionEngine
    scheduler: DelayScheduler
    gateway: ApprovalGateway
    dispatcher: TriggerDispatcher
    event_bus: EventBus
    metrics: MetricsRecorder
    parser: WorkflowParser = field(default_factory=WorkflowParser)
    db_manager: Optional[DatabaseManager] = None

    @classmethod
    def assemble(
        cls,
        settings: Settings,
        definitions: DefinitionRepository,
        executions: ExecutionRepository,
        action_adapter: Optional[ActionAdapter] = None,
        db_manager: Optional[DatabaseManager] = None,
        clock=None,
    ) -> "Runtime":
        event_bus = EventBus()
        metrics = MetricsRecorder()
        engine_kwargs = {"clock": clock} if clock else {}
        engine = ExecutionEngine(
            definitions=definitions,
            executions=executions,
            action_adapter=action_adapter or LoggingActionAdapter(timeout=settings.action_timeout),
            event_bus=event_bus,
            metrics=metrics,
            event_logger=EventLogger(),
            **engine_kwargs,
        )
        return cls(
            settings=settings,
            definitions=definitions,
            executions=executions,
            engine=engine,
            scheduler=DelayScheduler(
                engine,
                executions,
                poll_interval=settings.scheduler_poll_interval,
                concurrency=settings.scheduler_concurrency,
            ),
            gateway=ApprovalGateway(engine, executions),
            dispatcher=TriggerDispatcher(
                engine, definitions, executions, dedup_events=settings.dedup_events
            ),
            event_bus=event_bus,
            metrics=metrics,
            db_manager=db_manager,
        )

    @classmethod
    def in_memory(
        cls,
        settings: Optional[Settings] = None,
        action_adapter: Optional[ActionAdapter] = None,
        clock=None,
    ) -> "Runtime":
        return cls.assemble(
            settings or Settings(),
            InMemoryDefinitionRepository(),
            InMemoryExecutionRepository(),
            action_adapter=action_adapter,
            clock=clock,
        )

    @classmethod
    async def from_settings(
        cls,
        settings: Settings,
        action_adapter: Optional[ActionAdapter] = None
    ) -> "Runtime":
        db_manager = DatabaseManager(settings.database_url)
        await db_manager.initialize()
        runtime = cls.assemble(
            settings,
            SQLAlchemyDefinitionRepository(db_manager),
            SQLAlchemyExecutionRepository(db_manager),
            action_adapter=action_adapter,
            db_manager=db_manager,
        )
        if settings.workflows_dir:
            await runtime.load_definitions(Path(settings.workflows_dir))
        return runtime

    async def load_definitions(self, source: Path) -> List[WorkflowDefinition]:
        """解析并保存单个工作流文件，或目录下的全部工作流文件"""
        if source.is_dir():
            files = sorted(p for p in source.iterdir() if p.suffix.lower() in WORKFLOW_FILE_SUFFIXES)
        else:
            files = [source]
        loaded = []
        for path in files:
            definition = self.parser.parse(path)
            await self.definitions.save(definition)
            loaded.append(definition)
            logger.info(f"Loaded workflow {definition.id} ({definition.status.value}) from {path}")
        return loaded

    async def start(self, scheduler: bool = True):
        await self.dispatcher.attach(self.event_bus)
        if scheduler:
            await self.scheduler.start()

    async def close(self):
        await self.scheduler.stop()
        await self.dispatcher.detach(self.event_bus)
        if self.db_manager is not None:
            await self.db_manager.close()
