"""存储与仓储接口"""

from .repository import (
    DefinitionRepository,
    ExecutionRepository,
    InMemoryDefinitionRepository,
    InMemoryExecutionRepository
)

__all__ = [
    "DefinitionRepository",
    "ExecutionRepository",
    "InMemoryDefinitionRepository",
    "InMemoryExecutionRepository"
]
