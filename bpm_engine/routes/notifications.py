"""Notification inbox routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.dependencies import get_notification_service, require_user
from ..core.exceptions import NotificationNotFoundError
from ..schemas.notification import MarkAllReadResponse, NotificationResponse, UnreadCountResponse
from ..services.notification_service import NotificationService

router = APIRouter(prefix="/notifications")

NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]


@router.get("", response_model=list[NotificationResponse])
async def list_notifications(
    service: NotificationServiceDep,
    user_id: str = Depends(require_user),
    unread_only: bool = Query(False, description="Only unread notifications"),
    limit: int = Query(100, ge=1, le=500),
) -> list[NotificationResponse]:
    """The caller's notifications, newest first."""
    return await service.list_notifications(user_id, unread_only=unread_only, limit=limit)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(service: NotificationServiceDep, user_id: str = Depends(require_user)) -> UnreadCountResponse:
    return await service.unread_count(user_id)


@router.put("/mark-all-read", response_model=MarkAllReadResponse)
async def mark_all_read(service: NotificationServiceDep, user_id: str = Depends(require_user)) -> MarkAllReadResponse:
    return await service.mark_all_read(user_id)


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: str,
    service: NotificationServiceDep,
    user_id: str = Depends(require_user),
) -> NotificationResponse:
    try:
        return await service.mark_read(notification_id, user_id)
    except NotificationNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.delete("/{notification_id}", status_code=204)
async def delete_notification(
    notification_id: str,
    service: NotificationServiceDep,
    user_id: str = Depends(require_user),
) -> None:
    """Delete one of the caller's notifications."""
    try:
        await service.delete(notification_id, user_id)
    except NotificationNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
