"""Instance service for business logic."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..engine.types import InstanceStatus
from ..schemas.instance import (
    HistoryEntrySchema,
    InstanceDetailResponse,
    InstanceListItem,
    InstanceStartRequest,
    InstanceStartResponse,
)
from .task_service import task_to_response

if TYPE_CHECKING:
    from ..engine.engine import WorkflowEngine


class InstanceService:
    """Service for workflow instance operations."""

    def __init__(self, engine: WorkflowEngine) -> None:
        self._engine = engine

    async def start_instance(self, request: InstanceStartRequest, user_id: str | None) -> InstanceStartResponse:
        """Start an instance and run it until it waits or ends."""
        instance_id = await self._engine.start_instance(
            request.definition_id,
            initial_data=request.data,
            started_by=user_id,
            version=request.version,
        )
        snapshot = await self._engine.get_instance(instance_id)
        return InstanceStartResponse(
            id=snapshot.id,
            status=snapshot.status.value,
            current_node_ids=snapshot.current_node_ids,
        )

    async def list_instances(
        self,
        definition_id: str | None = None,
        status: InstanceStatus | None = None,
    ) -> list[InstanceListItem]:
        instances = await self._engine.list_instances(definition_id=definition_id, status=status)
        return [
            InstanceListItem(
                id=i.id,
                definition_id=i.definition_id,
                definition_version=i.definition_version,
                status=i.status.value,
                started_by=i.started_by,
                started_at=i.started_at.isoformat(),
                completed_at=i.completed_at.isoformat() if i.completed_at else None,
            )
            for i in instances
        ]

    async def get_instance(self, instance_id: str) -> InstanceDetailResponse:
        snapshot = await self._engine.get_instance(instance_id)
        return InstanceDetailResponse(
            id=snapshot.id,
            definition_id=snapshot.definition_id,
            definition_version=snapshot.definition_version,
            status=snapshot.status.value,
            current_node_ids=snapshot.current_node_ids,
            data=snapshot.data,
            history=[
                HistoryEntrySchema(
                    id=h.id,
                    node_id=h.node_id,
                    action=h.action,
                    actor_user_id=h.actor_user_id,
                    data=h.data,
                    timestamp=h.timestamp.isoformat(),
                )
                for h in snapshot.history
            ],
            open_tasks=[task_to_response(t) for t in snapshot.open_tasks],
            started_by=snapshot.started_by,
            started_at=snapshot.started_at.isoformat(),
            completed_at=snapshot.completed_at.isoformat() if snapshot.completed_at else None,
            error=snapshot.error,
        )

    async def cancel_instance(self, instance_id: str, user_id: str | None) -> InstanceDetailResponse:
        await self._engine.cancel_instance(instance_id, user_id)
        return await self.get_instance(instance_id)

    async def subscribe(self, instance_id: str, user_id: str) -> None:
        await self._engine.add_subscriber(instance_id, user_id)

    async def unsubscribe(self, instance_id: str, user_id: str) -> None:
        await self._engine.remove_subscriber(instance_id, user_id)
