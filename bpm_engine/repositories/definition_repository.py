"""Definition repository for database persistence."""

from __future__ import annotations

import time
import uuid
from typing import Any

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from ..core.exceptions import DefinitionNotFoundError
from ..db.models import DefinitionModel
from ..engine.graph import definition_from_dict, definition_to_dict, load_definition
from ..engine.types import WorkflowDefinition
from ..storage.base import DefinitionProvider


class SqlDefinitionRepository(DefinitionProvider):
    """
    Versioned definition storage backed by SQLModel.

    Registered versions never change, so decoded definitions are cached by
    (id, version).
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._cache: dict[tuple[str, int], WorkflowDefinition] = {}

    async def get_definition(self, definition_id: str, version: int | None = None) -> WorkflowDefinition:
        if version is not None and (definition_id, version) in self._cache:
            return self._cache[(definition_id, version)]

        async with self._session_factory() as session:
            if version is None:
                statement = (
                    select(DefinitionModel)
                    .where(DefinitionModel.id == definition_id)
                    .order_by(DefinitionModel.version.desc())
                )
                result = (await session.execute(statement)).scalars().first()
            else:
                result = await session.get(DefinitionModel, (definition_id, version))

        if not result:
            raise DefinitionNotFoundError(definition_id, version)
        return self._to_definition(result)

    async def register(
        self,
        raw: dict[str, Any],
        definition_id: str | None = None,
        created_by: str | None = None,
    ) -> WorkflowDefinition:
        definition_id = definition_id or raw.get("id") or self._generate_id()

        async with self._session_factory() as session:
            statement = select(func.max(DefinitionModel.version)).where(DefinitionModel.id == definition_id)
            latest = (await session.execute(statement)).scalar_one_or_none()
            next_version = (latest or 0) + 1

            definition = load_definition(raw, definition_id=definition_id, version=next_version)
            session.add(
                DefinitionModel(
                    id=definition_id,
                    version=next_version,
                    name=definition.name,
                    description=definition.description,
                    definition=definition_to_dict(definition),
                    created_by=created_by,
                )
            )
            await session.commit()

        self._cache[(definition_id, next_version)] = definition
        return definition

    async def list_definitions(self) -> list[WorkflowDefinition]:
        statement = select(DefinitionModel).order_by(DefinitionModel.id, DefinitionModel.version)
        async with self._session_factory() as session:
            result = await session.execute(statement)
            rows = result.scalars().all()

        latest: dict[str, DefinitionModel] = {}
        for row in rows:
            latest[row.id] = row
        return [self._to_definition(row) for row in latest.values()]

    def _generate_id(self) -> str:
        """Generate a unique definition ID."""
        return f"wf_{int(time.time() * 1000)}_{uuid.uuid4().hex[:7]}"

    def _to_definition(self, model: DefinitionModel) -> WorkflowDefinition:
        key = (model.id, model.version)
        if key not in self._cache:
            # Stored definitions were validated on register
            self._cache[key] = definition_from_dict(model.definition, definition_id=model.id, version=model.version)
        return self._cache[key]
