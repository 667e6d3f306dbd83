"""Registry of node executors, keyed by node type."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, TYPE_CHECKING

from ..core.exceptions import NodeNotFoundError

if TYPE_CHECKING:
    from ..nodes.base import BaseNode

logger = logging.getLogger(__name__)


@dataclass
class NodeTypeInfo:
    """Catalog entry for one node type, as shown to workflow designers."""

    type: str
    display_name: str
    description: str
    icon: str | None = None
    group: list[str] | None = None
    outputs: list[dict[str, Any]] | None = None
    dynamic_outputs: bool = False
    config_schema: dict[str, Any] = field(default_factory=dict)


class NodeRegistryClass:
    """
    Maps node types to executor instances.

    Executors hold no per-instance state, so one instance per type is shared
    by every workflow instance the engine runs.
    """

    def __init__(self) -> None:
        self._executors: dict[str, BaseNode] = {}

    def register(self, node_class: type[BaseNode]) -> None:
        """
        Register an executor class under its type.

        Registering the same class twice is a no-op. A different class
        claiming an existing type is rejected.
        """
        executor = node_class()
        existing = self._executors.get(executor.type)
        if existing is not None:
            if type(existing) is not node_class:
                raise ValueError(
                    f'Node type "{executor.type}" is already registered by {type(existing).__name__}'
                )
            return
        self._executors[executor.type] = executor
        logger.debug("Registered node type %s", executor.type)

    def register_many(self, node_classes: Iterable[type[BaseNode]]) -> None:
        for node_class in node_classes:
            self.register(node_class)

    def get(self, node_type: str) -> BaseNode:
        """
        Get the executor for a node type.

        Raises:
            NodeNotFoundError: If the type is not registered
        """
        try:
            return self._executors[node_type]
        except KeyError:
            raise NodeNotFoundError(node_type) from None

    def has(self, node_type: str) -> bool:
        return node_type in self._executors

    def list(self) -> list[str]:
        return sorted(self._executors)

    def catalog(self, group: str | None = None) -> list[NodeTypeInfo]:
        """Catalog entries in registration order, optionally limited to one group."""
        entries = [self._describe(executor) for executor in self._executors.values()]
        if group:
            entries = [e for e in entries if e.group and group in e.group]
        return entries

    def describe(self, node_type: str) -> NodeTypeInfo | None:
        executor = self._executors.get(node_type)
        return self._describe(executor) if executor else None

    @staticmethod
    def _describe(executor: BaseNode) -> NodeTypeInfo:
        desc = executor.node_description
        if desc is None:
            return NodeTypeInfo(
                type=executor.type,
                display_name=executor.type,
                description=executor.description,
                outputs=[{"name": "main", "displayName": "Output"}],
                config_schema=executor.config_model.model_json_schema(),
            )

        dynamic = desc.outputs == "dynamic"
        outputs = None if dynamic else [
            {"name": o.name, "displayName": o.display_name} for o in desc.outputs
        ]
        return NodeTypeInfo(
            type=executor.type,
            display_name=desc.display_name,
            description=executor.description,
            icon=desc.icon,
            group=desc.group,
            outputs=outputs,
            dynamic_outputs=dynamic,
            config_schema=executor.config_model.model_json_schema(),
        )


node_registry = NodeRegistryClass()


_builtins_registered = False


def register_all_nodes() -> None:
    """Register the built-in node types. Safe to call more than once."""
    global _builtins_registered
    if _builtins_registered:
        return

    from ..nodes import BUILTIN_NODES

    node_registry.register_many(BUILTIN_NODES)
    _builtins_registered = True
