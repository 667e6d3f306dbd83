"""Definition-related Pydantic schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DefinitionCreateRequest(BaseModel):
    """
    Request schema for registering a workflow definition.

    Nodes and edges are passed through as raw dicts so both the flat form and
    the designer form (label/config under ``data``, camelCase keys) are accepted.
    """

    id: str | None = Field(None, description="Definition ID; a new one is generated when omitted")
    name: str = Field(..., min_length=1, max_length=255, description="Workflow name")
    description: str | None = Field(None, max_length=1000, description="Workflow description")
    nodes: list[dict[str, Any]] = Field(..., min_length=1, description="List of nodes")
    edges: list[dict[str, Any]] = Field(default_factory=list, description="List of edges")
    settings: dict[str, Any] = Field(default_factory=dict, description="Workflow settings")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Expense approval",
                "nodes": [
                    {"id": "start", "type": "start"},
                    {"id": "approve", "type": "approval", "config": {"assignee": "group:managers"}},
                    {"id": "end", "type": "end"},
                ],
                "edges": [
                    {"source": "start", "target": "approve"},
                    {"source": "approve", "target": "end"},
                ],
            }
        }
    )


class DefinitionListItem(BaseModel):
    """Definition list item (latest version)."""

    id: str
    version: int
    name: str
    description: str | None = None
    node_count: int
    edge_count: int


class DefinitionDetailResponse(BaseModel):
    """One definition version with its full graph."""

    id: str
    version: int
    name: str
    description: str | None = None
    definition: dict[str, Any]
