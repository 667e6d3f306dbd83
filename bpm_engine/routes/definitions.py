"""Definition routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.dependencies import get_current_user, get_definition_service
from ..core.exceptions import DefinitionNotFoundError, ValidationError
from ..schemas.definition import (
    DefinitionCreateRequest,
    DefinitionDetailResponse,
    DefinitionListItem,
)
from ..services.definition_service import DefinitionService

router = APIRouter(prefix="/definitions")


# Type alias for dependency injection
DefinitionServiceDep = Annotated[DefinitionService, Depends(get_definition_service)]


@router.get("", response_model=list[DefinitionListItem])
async def list_definitions(service: DefinitionServiceDep) -> list[DefinitionListItem]:
    """List the latest version of every definition."""
    return await service.list_definitions()


@router.get("/{definition_id}", response_model=DefinitionDetailResponse)
async def get_definition(
    definition_id: str,
    service: DefinitionServiceDep,
    version: int | None = Query(None, ge=1, description="Definition version; latest when omitted"),
) -> DefinitionDetailResponse:
    """Get a definition by ID."""
    try:
        return await service.get_definition(definition_id, version)
    except DefinitionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("", response_model=DefinitionDetailResponse, status_code=201)
async def create_definition(
    definition: DefinitionCreateRequest,
    service: DefinitionServiceDep,
    user_id: str | None = Depends(get_current_user),
) -> DefinitionDetailResponse:
    """Validate and register a definition. Re-posting an ID adds a version."""
    try:
        return await service.create_definition(definition, created_by=user_id)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.message)
