"""
Pytest 配置和共享 fixture
"""
import pytest
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

from automation_engine.config import Settings
from automation_engine.core import WorkflowParser
from automation_engine.integrations import LoggingActionAdapter
from automation_engine.runtime import Runtime
from automation_engine.storage.sqlalchemy_repository import DatabaseManager


class FakeClock:
    """手动推进的 UTC 时钟"""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def parser() -> WorkflowParser:
    return WorkflowParser()


@pytest.fixture
def adapter() -> LoggingActionAdapter:
    return LoggingActionAdapter()


@pytest.fixture
def runtime(clock, adapter) -> Runtime:
    """使用假时钟的内存运行时"""
    settings = Settings(scheduler_enabled=False)
    return Runtime.in_memory(settings, action_adapter=adapter, clock=clock)


@pytest.fixture
async def install(runtime, parser):
    """解析定义字典并保存到运行时"""
    async def _install(data: dict):
        definition = parser.parse(data)
        await runtime.definitions.save(definition)
        return definition
    return _install


@pytest.fixture
async def test_database(tmp_path) -> AsyncGenerator[DatabaseManager, None]:
    db_manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'automation.db'}")
    await db_manager.initialize()

    yield db_manager

    await db_manager.close()


@pytest.fixture
def welcome_workflow() -> dict:
    """trigger -> send_email"""
    return {
        "id": "welcome-email",
        "name": "Welcome new client",
        "triggerType": "client_created",
        "status": "active",
        "nodes": [
            {"id": "trigger", "type": "trigger", "config": {"triggerType": "client_created"}},
            {
                "id": "email",
                "type": "action",
                "config": {
                    "actionType": "send_email",
                    "params": {
                        "to": "{{payload.email}}",
                        "subject": "Welcome, client #{{payload.clientId}}",
                    },
                },
            },
        ],
        "edges": [{"from": "trigger", "to": "email"}],
    }


@pytest.fixture
def invoice_branch_workflow() -> dict:
    """trigger -> condition(amount > 100) -> reminder | email"""
    return {
        "id": "invoice-followup",
        "name": "Invoice follow-up",
        "trigger_type": "invoice_created",
        "status": "active",
        "nodes": [
            {"id": "trigger", "type": "trigger", "config": {}},
            {"id": "big", "type": "condition", "config": {"expression": "payload.amount > 100"}},
            {
                "id": "reminder",
                "type": "action",
                "config": {"action_type": "create_reminder", "params": {"title": "Call about {{payload.amount}}"}},
            },
            {
                "id": "email",
                "type": "action",
                "config": {"action_type": "send_email", "params": {"subject": "Thanks"}},
            },
        ],
        "edges": [
            {"from": "trigger", "to": "big"},
            {"from": "big", "to": "reminder", "branch": "true"},
            {"from": "big", "to": "email", "branch": "false"},
        ],
    }


@pytest.fixture
def approval_workflow() -> dict:
    """trigger -> approval -> update_status | send_email"""
    return {
        "id": "quote-approval",
        "name": "Quote approval",
        "trigger_type": "service_created",
        "status": "active",
        "nodes": [
            {"id": "trigger", "type": "trigger", "config": {}},
            {
                "id": "approve",
                "type": "approval",
                "config": {"message": "Approve quote?", "details": "Concert grand regulation", "timeout": 24},
            },
            {
                "id": "mark",
                "type": "action",
                "config": {"action_type": "update_status", "params": {"status": "approved"}},
            },
            {
                "id": "notify",
                "type": "action",
                "config": {"action_type": "send_email", "params": {"subject": "Quote rejected"}},
            },
        ],
        "edges": [
            {"from": "trigger", "to": "approve"},
            {"from": "approve", "to": "mark", "branch": "approved"},
            {"from": "approve", "to": "notify", "branch": "rejected"},
        ],
    }


@pytest.fixture
def delay_workflow() -> dict:
    """trigger -> delay(5 minutes) -> send_whatsapp"""
    return {
        "id": "tuning-reminder",
        "name": "Tuning reminder",
        "trigger_type": "appointment_created",
        "status": "active",
        "nodes": [
            {"id": "trigger", "type": "trigger", "config": {}},
            {"id": "wait", "type": "delay", "config": {"amount": 5, "unit": "minutes"}},
            {
                "id": "whatsapp",
                "type": "action",
                "config": {
                    "actionType": "send_whatsapp",
                    "params": {"phone": "{{payload.phone}}", "message": "See you soon!"},
                },
            },
        ],
        "edges": [
            {"from": "trigger", "to": "wait"},
            {"from": "wait", "to": "whatsapp"},
        ],
    }
