"""
SQLAlchemy 仓储实现
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from ..core.parser import WorkflowParser
from ..exceptions import ConcurrencyConflictError
from ..models.execution import ApprovalDecision, Decision, Execution, ExecutionStatus
from ..models.workflow import WorkflowDefinition, WorkflowStatus
from .repository import DefinitionRepository, ExecutionRepository
from .sqlalchemy_models import (
    ApprovalDecisionRecord,
    Base,
    ExecutionRecord,
    WorkflowDefinitionRecord,
)


logger = logging.getLogger(__name__)


def to_db_time(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_time(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


class DatabaseManager:
    """持有异步引擎并提供事务会话"""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None
        self.async_session_maker = None

    async def initialize(self, create_tables: bool = True):
        engine_kwargs = {"echo": self.echo}
        if not self.database_url.startswith("sqlite"):
            engine_kwargs.update(pool_size=20, max_overflow=10, pool_pre_ping=True)
        self.engine = create_async_engine(self.database_url, **engine_kwargs)

        self.async_session_maker = sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        if create_tables:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        logger.info("Database initialized")

    async def close(self):
        if self.engine:
            await self.engine.dispose()

    @asynccontextmanager
    async def get_session(self):
        async with self.async_session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


class SQLAlchemyDefinitionRepository(DefinitionRepository):

    def __init__(self, db_manager: DatabaseManager, parser: Optional[WorkflowParser] = None):
        self.db = db_manager
        self.parser = parser or WorkflowParser()

    async def save(self, definition: WorkflowDefinition) -> str:
        async with self.db.get_session() as session:
            record = await session.get(WorkflowDefinitionRecord, definition.id)
            if record is None:
                record = WorkflowDefinitionRecord(id=definition.id)
                session.add(record)
            record.name = definition.name
            record.trigger_type = definition.trigger_type
            record.status = definition.status.value
            record.definition = self.parser.to_dict(definition)
            record.description = definition.description
            record.created_at = to_db_time(definition.created_at)
            record.updated_at = to_db_time(definition.updated_at)
        return definition.id

    async def get(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        async with self.db.get_session() as session:
            record = await session.get(WorkflowDefinitionRecord, workflow_id)
            return self._to_model(record) if record else None

    async def list(self, status: Optional[WorkflowStatus] = None) -> List[WorkflowDefinition]:
        query = select(WorkflowDefinitionRecord).order_by(WorkflowDefinitionRecord.id)
        if status is not None:
            query = query.where(WorkflowDefinitionRecord.status == WorkflowStatus(status).value)
        async with self.db.get_session() as session:
            result = await session.execute(query)
            return [self._to_model(record) for record in result.scalars()]

    async def list_active(self, trigger_type: str) -> List[WorkflowDefinition]:
        query = (
            select(WorkflowDefinitionRecord)
            .where(
                WorkflowDefinitionRecord.status == WorkflowStatus.ACTIVE.value,
                WorkflowDefinitionRecord.trigger_type == trigger_type,
            )
            .order_by(WorkflowDefinitionRecord.id)
        )
        async with self.db.get_session() as session:
            result = await session.execute(query)
            return [self._to_model(record) for record in result.scalars()]

    def _to_model(self, record: WorkflowDefinitionRecord) -> WorkflowDefinition:
        return self.parser.parse(dict(record.definition))


class SQLAlchemyExecutionRepository(ExecutionRepository):

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    def _columns(self, execution: Execution) -> dict:
        return {
            "workflow_id": execution.workflow_id,
            "status": execution.status.value,
            "current_node_id": execution.current_node_id,
            "version": execution.version,
            "trigger_event_id": execution.trigger_event_id,
            "pending_resume_at": to_db_time(execution.pending_resume_at),
            "state": execution.to_dict(),
            "created_at": to_db_time(execution.created_at),
            "updated_at": to_db_time(execution.updated_at),
        }

    async def create(self, execution: Execution) -> Execution:
        execution.check_invariants()
        try:
            async with self.db.get_session() as session:
                session.add(ExecutionRecord(id=execution.id, **self._columns(execution)))
                await session.flush()
        except IntegrityError as e:
            raise ConcurrencyConflictError(
                f"Execution {execution.id} conflicts with an existing execution",
                {"workflow_id": execution.workflow_id, "trigger_event_id": execution.trigger_event_id},
            ) from e
        return execution.copy()

    async def get(self, execution_id: str) -> Optional[Execution]:
        async with self.db.get_session() as session:
            record = await session.get(ExecutionRecord, execution_id)
            return Execution.from_dict(record.state) if record else None

    async def compare_and_swap(self, execution: Execution, expected_version: int) -> bool:
        execution.check_invariants()
        execution.version = expected_version + 1
        async with self.db.get_session() as session:
            result = await session.execute(
                update(ExecutionRecord)
                .where(
                    ExecutionRecord.id == execution.id,
                    ExecutionRecord.version == expected_version,
                )
                .values(**self._columns(execution))
            )
            swapped = result.rowcount == 1
        if not swapped:
            execution.version = expected_version
        return swapped

    async def _select(self, query) -> List[Execution]:
        async with self.db.get_session() as session:
            result = await session.execute(query)
            return [Execution.from_dict(record.state) for record in result.scalars()]

    async def list_by_status(
        self,
        status: ExecutionStatus,
        offset: int = 0,
        limit: int = 100
    ) -> List[Execution]:
        query = (
            select(ExecutionRecord)
            .where(ExecutionRecord.status == ExecutionStatus(status).value)
            .order_by(ExecutionRecord.created_at, ExecutionRecord.id)
            .offset(offset)
            .limit(limit)
        )
        return await self._select(query)

    async def list_by_workflow(
        self,
        workflow_id: str,
        status: Optional[ExecutionStatus] = None,
        offset: int = 0,
        limit: int = 100
    ) -> List[Execution]:
        query = select(ExecutionRecord).where(ExecutionRecord.workflow_id == workflow_id)
        if status is not None:
            query = query.where(ExecutionRecord.status == ExecutionStatus(status).value)
        query = (
            query.order_by(ExecutionRecord.created_at, ExecutionRecord.id)
            .offset(offset)
            .limit(limit)
        )
        return await self._select(query)

    async def list_due_delays(self, now: datetime, limit: int = 100) -> List[Execution]:
        query = (
            select(ExecutionRecord)
            .where(
                ExecutionRecord.status == ExecutionStatus.PAUSED_DELAY.value,
                ExecutionRecord.pending_resume_at <= to_db_time(now),
            )
            .order_by(ExecutionRecord.pending_resume_at, ExecutionRecord.id)
            .limit(limit)
        )
        return await self._select(query)

    async def find_by_trigger_event(self, workflow_id: str, event_id: str) -> Optional[Execution]:
        query = select(ExecutionRecord).where(
            ExecutionRecord.workflow_id == workflow_id,
            ExecutionRecord.trigger_event_id == event_id,
        )
        found = await self._select(query)
        return found[0] if found else None

    async def save_decision(self, decision: ApprovalDecision) -> None:
        async with self.db.get_session() as session:
            session.add(ApprovalDecisionRecord(
                execution_id=decision.execution_id,
                node_id=decision.node_id,
                decision=Decision(decision.decision).value,
                approver_id=decision.approver_id,
                decided_at=to_db_time(decision.decided_at),
            ))

    async def list_decisions(self, execution_id: str) -> List[ApprovalDecision]:
        query = (
            select(ApprovalDecisionRecord)
            .where(ApprovalDecisionRecord.execution_id == execution_id)
            .order_by(ApprovalDecisionRecord.id)
        )
        async with self.db.get_session() as session:
            result = await session.execute(query)
            return [
                ApprovalDecision(
                    execution_id=record.execution_id,
                    decision=Decision(record.decision),
                    approver_id=record.approver_id,
                    node_id=record.node_id,
                    decided_at=from_db_time(record.decided_at),
                )
                for record in result.scalars()
            ]
