"""Repository layer for data persistence."""

from .definition_repository import SqlDefinitionRepository
from .instance_repository import SqlInstanceStore

__all__ = [
    "SqlDefinitionRepository",
    "SqlInstanceStore",
]
