"""HTTP API 层"""
from .app import create_app

__all__ = ["create_app"]
