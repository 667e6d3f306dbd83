"""Node catalog service."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..core.exceptions import NodeNotFoundError

if TYPE_CHECKING:
    from ..engine.node_registry import NodeRegistryClass, NodeTypeInfo


class NodeService:
    """Serves the node catalog that workflow designers build definitions from."""

    def __init__(self, node_registry: NodeRegistryClass) -> None:
        self._node_registry = node_registry

    def list_nodes(self, group: str | None = None) -> list[dict[str, Any]]:
        return [self._to_dict(info) for info in self._node_registry.catalog(group)]

    def get_node(self, node_type: str) -> dict[str, Any]:
        info = self._node_registry.describe(node_type)
        if info is None:
            raise NodeNotFoundError(node_type)
        return self._to_dict(info)

    @staticmethod
    def _to_dict(info: NodeTypeInfo) -> dict[str, Any]:
        # camelCase keys match the designer's definition format
        return {
            "type": info.type,
            "displayName": info.display_name,
            "description": info.description,
            "icon": info.icon,
            "group": info.group,
            "outputs": info.outputs,
            "dynamicOutputs": info.dynamic_outputs,
            "configSchema": info.config_schema,
        }
