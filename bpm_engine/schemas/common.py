"""Schemas shared by the root endpoints and the subscription routes."""

from pydantic import BaseModel


class SubscriptionResponse(BaseModel):
    """Outcome of following or unfollowing an instance."""

    success: bool = True
    instance_id: str
    user_id: str
    subscribed: bool


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    engine_running: bool
    store_backend: str


class RootResponse(BaseModel):
    name: str
    version: str
    status: str
    docs_url: str | None = "/docs"
