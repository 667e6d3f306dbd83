"""API router aggregating all REST endpoints."""

from fastapi import APIRouter

from .definitions import router as definitions_router
from .events import router as events_router
from .instances import router as instances_router
from .nodes import router as nodes_router
from .notifications import router as notifications_router
from .tasks import router as tasks_router

router = APIRouter(prefix="/api")

router.include_router(definitions_router, tags=["Definitions"])
router.include_router(instances_router, tags=["Instances"])
router.include_router(tasks_router, tags=["Tasks"])
router.include_router(notifications_router, tags=["Notifications"])
router.include_router(nodes_router, tags=["Nodes"])
router.include_router(events_router, tags=["Streaming"])
