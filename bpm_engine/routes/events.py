"""Server-Sent Events (SSE) route for per-user workflow events."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncGenerator

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from ..core.dependencies import get_engine, require_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events")


@router.get("/stream")
async def stream_events(
    engine=Depends(get_engine),
    user_id: str = Depends(require_user),
) -> EventSourceResponse:
    """Stream the caller's task, instance and notification events."""
    subscription = engine.subscribe(user_id)

    async def event_generator() -> AsyncGenerator[dict[str, Any], None]:
        try:
            async for event in subscription:
                yield {"event": event.type.value, "data": json.dumps(event.to_dict())}
        finally:
            subscription.close()
            if subscription.dropped:
                logger.info("Stream for %s closed after dropping %d events", user_id, subscription.dropped)

    return EventSourceResponse(event_generator())
