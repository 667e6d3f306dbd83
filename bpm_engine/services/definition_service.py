"""Definition service for business logic."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..engine.graph import definition_to_dict
from ..schemas.definition import (
    DefinitionCreateRequest,
    DefinitionDetailResponse,
    DefinitionListItem,
)

if TYPE_CHECKING:
    from ..engine.types import WorkflowDefinition
    from ..storage.base import DefinitionProvider


class DefinitionService:
    """Service for definition operations."""

    def __init__(self, definitions: DefinitionProvider) -> None:
        self._definitions = definitions

    async def list_definitions(self) -> list[DefinitionListItem]:
        """List the latest version of every definition."""
        definitions = await self._definitions.list_definitions()
        return [
            DefinitionListItem(
                id=d.id,
                version=d.version,
                name=d.name,
                description=d.description,
                node_count=len(d.nodes),
                edge_count=len(d.edges),
            )
            for d in definitions
        ]

    async def get_definition(self, definition_id: str, version: int | None = None) -> DefinitionDetailResponse:
        """Get a definition version (latest by default)."""
        definition = await self._definitions.get_definition(definition_id, version)
        return self._to_detail(definition)

    async def create_definition(
        self,
        request: DefinitionCreateRequest,
        created_by: str | None = None,
    ) -> DefinitionDetailResponse:
        """Validate and register a definition as its next version."""
        raw = request.model_dump(exclude={"id"})
        definition = await self._definitions.register(raw, definition_id=request.id, created_by=created_by)
        return self._to_detail(definition)

    def _to_detail(self, definition: WorkflowDefinition) -> DefinitionDetailResponse:
        return DefinitionDetailResponse(
            id=definition.id,
            version=definition.version,
            name=definition.name,
            description=definition.description,
            definition=definition_to_dict(definition),
        )
