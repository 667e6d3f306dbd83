"""Storage interfaces and in-memory implementations."""

from .base import DefinitionProvider, InstanceStore
from .definition_store import InMemoryDefinitionStore
from .instance_store import InMemoryInstanceStore

__all__ = [
    "DefinitionProvider",
    "InstanceStore",
    "InMemoryDefinitionStore",
    "InMemoryInstanceStore",
]
