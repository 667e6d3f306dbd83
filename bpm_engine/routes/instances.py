"""Instance routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.dependencies import get_current_user, get_instance_service, require_user
from ..core.exceptions import (
    DefinitionNotFoundError,
    InstanceAlreadyTerminalError,
    InstanceNotFoundError,
)
from ..engine.types import InstanceStatus
from ..schemas.common import SubscriptionResponse
from ..schemas.instance import (
    InstanceDetailResponse,
    InstanceListItem,
    InstanceStartRequest,
    InstanceStartResponse,
)
from ..services.instance_service import InstanceService

router = APIRouter(prefix="/instances")


# Type alias for dependency injection
InstanceServiceDep = Annotated[InstanceService, Depends(get_instance_service)]


@router.get("", response_model=list[InstanceListItem])
async def list_instances(
    service: InstanceServiceDep,
    definition_id: str | None = Query(None, description="Filter by definition"),
    status: InstanceStatus | None = Query(None, description="Filter by status"),
) -> list[InstanceListItem]:
    """List instances, newest first."""
    return await service.list_instances(definition_id=definition_id, status=status)


@router.post("", response_model=InstanceStartResponse, status_code=201)
async def start_instance(
    request: InstanceStartRequest,
    service: InstanceServiceDep,
    user_id: str | None = Depends(get_current_user),
) -> InstanceStartResponse:
    """Start an instance of a definition."""
    try:
        return await service.start_instance(request, user_id)
    except DefinitionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.get("/{instance_id}", response_model=InstanceDetailResponse)
async def get_instance(
    instance_id: str,
    service: InstanceServiceDep,
) -> InstanceDetailResponse:
    """Get an instance with its history and open tasks."""
    try:
        return await service.get_instance(instance_id)
    except InstanceNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("/{instance_id}/cancel", response_model=InstanceDetailResponse)
async def cancel_instance(
    instance_id: str,
    service: InstanceServiceDep,
    user_id: str | None = Depends(get_current_user),
) -> InstanceDetailResponse:
    """Cancel a running instance."""
    try:
        return await service.cancel_instance(instance_id, user_id)
    except InstanceNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except InstanceAlreadyTerminalError as e:
        raise HTTPException(status_code=409, detail=e.message)


@router.post("/{instance_id}/subscribe", response_model=SubscriptionResponse)
async def subscribe(
    instance_id: str,
    service: InstanceServiceDep,
    user_id: str = Depends(require_user),
) -> SubscriptionResponse:
    """Follow an instance's events."""
    try:
        await service.subscribe(instance_id, user_id)
    except InstanceNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return SubscriptionResponse(instance_id=instance_id, user_id=user_id, subscribed=True)


@router.delete("/{instance_id}/subscribe", response_model=SubscriptionResponse)
async def unsubscribe(
    instance_id: str,
    service: InstanceServiceDep,
    user_id: str = Depends(require_user),
) -> SubscriptionResponse:
    """Stop following an instance."""
    try:
        await service.unsubscribe(instance_id, user_id)
    except InstanceNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return SubscriptionResponse(instance_id=instance_id, user_id=user_id, subscribed=False)
