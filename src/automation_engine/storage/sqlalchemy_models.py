"""
SQLAlchemy 表定义
"""
from sqlalchemy import (
    Column, String, Text, Integer, DateTime, ForeignKey,
    UniqueConstraint, CheckConstraint, Index, JSON
)
from sqlalchemy.orm import declarative_base


Base = declarative_base()

# 时间戳统一以 naive UTC 存储


class WorkflowDefinitionRecord(Base):
    """工作流定义"""
    __tablename__ = 'workflow_definitions'

    id = Column(String(255), primary_key=True)
    name = Column(String(255), nullable=False)
    trigger_type = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default='inactive')
    definition = Column(JSON, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("status IN ('active', 'inactive')", name='check_definition_status'),
        Index('idx_workflow_definitions_trigger', 'trigger_type', 'status'),
    )


class ExecutionRecord(Base):
    """执行状态；``state`` 保存完整的序列化执行"""
    __tablename__ = 'workflow_executions'

    id = Column(String(64), primary_key=True)
    workflow_id = Column(String(255), ForeignKey('workflow_definitions.id'), nullable=False)
    status = Column(String(50), nullable=False)
    current_node_id = Column(String(255), nullable=False)
    version = Column(Integer, nullable=False, default=0)
    trigger_event_id = Column(String(255))
    pending_resume_at = Column(DateTime)
    state = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint('workflow_id', 'trigger_event_id', name='unique_workflow_trigger_event'),
        CheckConstraint(
            "status IN ('running', 'paused_delay', 'paused_approval', 'completed', 'failed', 'cancelled')",
            name='check_execution_status'
        ),
        Index('idx_workflow_executions_workflow_id', 'workflow_id'),
        Index('idx_workflow_executions_status', 'status'),
        Index('idx_workflow_executions_due', 'status', 'pending_resume_at'),
    )


class ApprovalDecisionRecord(Base):
    """人工审批决定记录"""
    __tablename__ = 'approval_decisions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    execution_id = Column(
        String(64), ForeignKey('workflow_executions.id', ondelete='CASCADE'), nullable=False
    )
    node_id = Column(String(255))
    decision = Column(String(20), nullable=False)
    approver_id = Column(String(255), nullable=False)
    decided_at = Column(DateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("decision IN ('approved', 'rejected')", name='check_decision'),
        Index('idx_approval_decisions_execution_id', 'execution_id'),
    )
