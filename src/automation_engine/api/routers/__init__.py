"""API 路由"""
from . import events, executions, approvals, monitoring

__all__ = ["events", "executions", "approvals", "monitoring"]
