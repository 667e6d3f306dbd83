"""Node catalog routes."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.dependencies import get_node_service
from ..core.exceptions import NodeNotFoundError
from ..services.node_service import NodeService

router = APIRouter(prefix="/nodes")

NodeServiceDep = Annotated[NodeService, Depends(get_node_service)]


@router.get("", response_model=list[dict[str, Any]])
async def list_node_types(
    service: NodeServiceDep,
    group: str | None = Query(None, description="Only node types in this group (flow, human, data, ...)"),
) -> list[dict[str, Any]]:
    """Node types a definition may use, with their config schemas."""
    return service.list_nodes(group)


@router.get("/{node_type}", response_model=dict[str, Any])
async def describe_node_type(node_type: str, service: NodeServiceDep) -> dict[str, Any]:
    try:
        return service.get_node(node_type)
    except NodeNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
