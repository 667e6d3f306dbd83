"""Base node class for all workflow nodes."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, TYPE_CHECKING

from .configs import EmptyConfig, NodeConfig

if TYPE_CHECKING:
    from ..engine.types import ExecutionOutcome, HistoryRecord, InstanceContext, Node


@dataclass
class NodeOutputDefinition:
    """Outgoing handle a node routes to."""

    name: str
    display_name: str


@dataclass
class NodeTypeDescription:
    """Description of a node type for the catalog."""

    name: str
    display_name: str
    description: str
    icon: str | None = None
    group: list[str] = field(default_factory=lambda: ["data"])
    outputs: list[NodeOutputDefinition] | str = field(
        default_factory=lambda: [NodeOutputDefinition(name="main", display_name="Output")]
    )


class BaseNode(ABC):
    """
    Abstract base class for all workflow nodes.

    Executors are stateless: everything they need comes from the
    InstanceContext, and they report what happened through an
    ExecutionOutcome instead of touching the graph themselves.
    """

    node_description: NodeTypeDescription | None = None
    config_model: type[NodeConfig] = EmptyConfig

    @property
    @abstractmethod
    def type(self) -> str:
        """Node type identifier."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Short description of what the node does."""
        ...

    @abstractmethod
    async def execute(self, ctx: InstanceContext, node: Node) -> ExecutionOutcome:
        """Execute the node logic."""
        ...

    def parse_config(self, raw: dict[str, Any] | None) -> NodeConfig:
        """Decode a raw config dict into this node type's config model."""
        return self.config_model.model_validate(raw or {})

    def resolve(self, ctx: InstanceContext, value: Any) -> Any:
        """Resolve {{ }} expressions in a config value against instance data."""
        return ctx.services.expressions.resolve(value, ctx.data)

    def advance(self, *labels: str, record: HistoryRecord | None = None) -> ExecutionOutcome:
        """Helper to continue along the given handles (all edges when none)."""
        from ..engine.types import Advance

        return Advance(labels=frozenset(labels), record=record)

    def fail(self, reason: str, error_type: str = "NodeError") -> ExecutionOutcome:
        """Helper to create a failure outcome."""
        from ..engine.types import Fail

        return Fail(reason=reason, error_type=error_type)
