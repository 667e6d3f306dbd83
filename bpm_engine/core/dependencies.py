"""FastAPI dependency injection for the BPM engine."""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from fastapi import Depends, Header, HTTPException, Request

if TYPE_CHECKING:
    from ..engine.engine import WorkflowEngine


# --- Engine Dependency ---


def get_engine(request: Request) -> WorkflowEngine:
    """Get the engine built by the application lifespan."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Workflow engine is not running")
    return engine


@lru_cache
def get_node_registry():
    """Get node registry instance."""
    from ..engine.node_registry import node_registry, register_all_nodes

    register_all_nodes()
    return node_registry


# --- Caller Identity ---


def get_current_user(x_user_id: str | None = Header(None)) -> str | None:
    """Caller identity from the X-User-Id header, if any."""
    return x_user_id or None


def require_user(user_id: str | None = Depends(get_current_user)) -> str:
    """Caller identity; the X-User-Id header is mandatory."""
    if not user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return user_id


# --- Service Dependencies ---


def get_definition_service(engine=Depends(get_engine)):
    """Get definition service instance."""
    from ..services.definition_service import DefinitionService

    return DefinitionService(engine.definitions)


def get_instance_service(engine=Depends(get_engine)):
    """Get instance service instance."""
    from ..services.instance_service import InstanceService

    return InstanceService(engine)


def get_task_service(engine=Depends(get_engine)):
    """Get task service instance."""
    from ..services.task_service import TaskService

    return TaskService(engine)


def get_notification_service(engine=Depends(get_engine)):
    """Get notification service instance."""
    from ..services.notification_service import NotificationService

    return NotificationService(engine)


def get_node_service(
    node_registry=Depends(get_node_registry),
):
    """Get node service instance."""
    from ..services.node_service import NodeService

    return NodeService(node_registry)
