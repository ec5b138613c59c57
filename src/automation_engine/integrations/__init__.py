"""
外部集成
"""
from .actions import ActionAdapter, ActionRegistry, LoggingActionAdapter
from .event_bus import BusMessage, EventBus

__all__ = [
    "ActionAdapter",
    "ActionRegistry",
    "LoggingActionAdapter",
    "EventBus",
    "BusMessage",
]
