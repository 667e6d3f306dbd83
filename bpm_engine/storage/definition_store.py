"""In-memory definition storage."""

from __future__ import annotations

import uuid
from typing import Any

from ..core.exceptions import DefinitionNotFoundError
from ..engine.graph import load_definition
from ..engine.types import WorkflowDefinition
from .base import DefinitionProvider


class InMemoryDefinitionStore(DefinitionProvider):
    """Versioned in-memory definition storage. Registered versions are immutable."""

    def __init__(self) -> None:
        self._definitions: dict[str, dict[int, WorkflowDefinition]] = {}

    async def get_definition(self, definition_id: str, version: int | None = None) -> WorkflowDefinition:
        versions = self._definitions.get(definition_id)
        if not versions:
            raise DefinitionNotFoundError(definition_id, version)
        if version is None:
            return versions[max(versions)]
        if version not in versions:
            raise DefinitionNotFoundError(definition_id, version)
        return versions[version]

    async def register(
        self,
        raw: dict[str, Any],
        definition_id: str | None = None,
        created_by: str | None = None,
    ) -> WorkflowDefinition:
        definition_id = definition_id or raw.get("id") or self._generate_id()
        versions = self._definitions.setdefault(definition_id, {})
        next_version = max(versions, default=0) + 1

        definition = load_definition(raw, definition_id=definition_id, version=next_version)
        versions[next_version] = definition
        return definition

    async def list_definitions(self) -> list[WorkflowDefinition]:
        return [versions[max(versions)] for versions in self._definitions.values() if versions]

    def _generate_id(self) -> str:
        return f"wf_{uuid.uuid4().hex[:12]}"
