"""Workflow graph decoding, validation and traversal helpers."""

from __future__ import annotations

import logging
from collections import deque
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import NodeNotFoundError, ValidationError
from .node_registry import NodeRegistryClass, node_registry, register_all_nodes
from .types import Edge, Node, WorkflowDefinition

logger = logging.getLogger(__name__)

# Node types a reentrant (loop-back) edge may point to
REENTRANT_TARGETS = frozenset({"loop", "timer"})


def _pick(raw: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key, accepting snake_case and camelCase spellings."""
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def _format_errors(error: PydanticValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(p) for p in err["loc"]) or "config"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


def decode_node(raw: dict[str, Any], registry: NodeRegistryClass | None = None) -> Node:
    """
    Decode a raw node dict into a Node with a typed config.

    Accepts the flat form ``{"id", "type", "label", "config"}`` as well as
    the designer form where label and config are nested under ``data``.
    """
    registry = registry or node_registry
    if not isinstance(raw, dict):
        raise ValidationError("Node must be an object", field="nodes")

    node_id = raw.get("id")
    if not node_id or not isinstance(node_id, str):
        raise ValidationError("Node is missing an id", field="nodes")

    node_type = raw.get("type")
    if not node_type:
        raise ValidationError(f'Node "{node_id}" is missing a type', field=f"nodes.{node_id}.type")

    try:
        executor = registry.get(node_type)
    except NodeNotFoundError as e:
        raise ValidationError(f'Node "{node_id}" has unknown type "{node_type}"', field=f"nodes.{node_id}.type") from e

    nested = raw.get("data") if isinstance(raw.get("data"), dict) else {}
    raw_config = _pick(raw, "config", default=None)
    if raw_config is None:
        raw_config = nested.get("config") or {}

    try:
        config = executor.parse_config(raw_config)
    except PydanticValidationError as e:
        raise ValidationError(
            f'Invalid config for node "{node_id}": {_format_errors(e)}',
            field=f"nodes.{node_id}.config",
        ) from e

    return Node(
        id=node_id,
        type=node_type,
        config=config,
        label=_pick(raw, "label", "name") or nested.get("label"),
        retry_on_fail=int(_pick(raw, "retry_on_fail", "retryOnFail", default=0)),
        retry_delay=int(_pick(raw, "retry_delay", "retryDelay", default=1000)),
        retry_backoff=float(_pick(raw, "retry_backoff", "retryBackoff", default=1.0)),
        continue_on_fail=bool(_pick(raw, "continue_on_fail", "continueOnFail", default=False)),
    )


def decode_edge(raw: dict[str, Any], index: int) -> Edge:
    """Decode a raw edge dict."""
    if not isinstance(raw, dict):
        raise ValidationError("Edge must be an object", field="edges")

    source = _pick(raw, "source_id", "source")
    target = _pick(raw, "target_id", "target")
    if not source or not target:
        raise ValidationError(f"Edge {raw.get('id', index)} needs a source and a target", field="edges")

    return Edge(
        id=str(raw.get("id") or f"e{index}-{source}-{target}"),
        source_id=source,
        target_id=target,
        source_handle=_pick(raw, "source_handle", "sourceHandle"),
        label=raw.get("label"),
        reentrant=bool(raw.get("reentrant", False)),
    )


def definition_from_dict(
    raw: dict[str, Any],
    definition_id: str | None = None,
    version: int | None = None,
    registry: NodeRegistryClass | None = None,
) -> WorkflowDefinition:
    """Decode a raw definition dict. Does not run graph validation."""
    register_all_nodes()

    nodes = raw.get("nodes")
    edges = raw.get("edges", [])
    if not isinstance(nodes, list) or not isinstance(edges, list):
        raise ValidationError("Definition needs a list of nodes and a list of edges", field="nodes")

    return WorkflowDefinition(
        id=definition_id or raw.get("id") or "",
        version=version if version is not None else int(raw.get("version", 1)),
        name=raw.get("name") or definition_id or raw.get("id") or "Untitled workflow",
        description=raw.get("description"),
        nodes=tuple(decode_node(n, registry) for n in nodes),
        edges=tuple(decode_edge(e, i) for i, e in enumerate(edges)),
        settings=dict(raw.get("settings") or {}),
    )


def definition_to_dict(definition: WorkflowDefinition) -> dict[str, Any]:
    """Encode a definition back into its raw dict form."""
    return {
        "id": definition.id,
        "version": definition.version,
        "name": definition.name,
        "description": definition.description,
        "settings": definition.settings,
        "nodes": [
            {
                "id": node.id,
                "type": node.type,
                "label": node.label,
                "config": node.config.model_dump(exclude_defaults=True),
                "retry_on_fail": node.retry_on_fail,
                "retry_delay": node.retry_delay,
                "retry_backoff": node.retry_backoff,
                "continue_on_fail": node.continue_on_fail,
            }
            for node in definition.nodes
        ],
        "edges": [
            {
                "id": edge.id,
                "source": edge.source_id,
                "target": edge.target_id,
                "source_handle": edge.source_handle,
                "label": edge.label,
                "reentrant": edge.reentrant,
            }
            for edge in definition.edges
        ],
    }


def load_definition(
    raw: dict[str, Any],
    definition_id: str | None = None,
    version: int | None = None,
) -> WorkflowDefinition:
    """Decode and validate a raw definition."""
    definition = definition_from_dict(raw, definition_id=definition_id, version=version)
    validate(definition)
    return definition


def validate(definition: WorkflowDefinition, registry: NodeRegistryClass | None = None) -> None:
    """
    Validate a workflow definition.

    Raises:
        ValidationError: With the first violation found.
    """
    registry = registry or node_registry

    if not definition.nodes:
        raise ValidationError("Definition has no nodes", field="nodes")

    seen_nodes: set[str] = set()
    for node in definition.nodes:
        if node.id in seen_nodes:
            raise ValidationError(f'Duplicate node id "{node.id}"', field="nodes")
        seen_nodes.add(node.id)
        if not registry.has(node.type):
            raise ValidationError(f'Node "{node.id}" has unknown type "{node.type}"', field=f"nodes.{node.id}.type")

    seen_edges: set[str] = set()
    for edge in definition.edges:
        if edge.id in seen_edges:
            raise ValidationError(f'Duplicate edge id "{edge.id}"', field="edges")
        seen_edges.add(edge.id)
        if edge.source_id not in seen_nodes:
            raise ValidationError(f'Edge "{edge.id}" references unknown source "{edge.source_id}"', field="edges")
        if edge.target_id not in seen_nodes:
            raise ValidationError(f'Edge "{edge.id}" references unknown target "{edge.target_id}"', field="edges")

    starts = [n for n in definition.nodes if n.type == "start"]
    if len(starts) != 1:
        raise ValidationError(f"Definition must have exactly one start node, found {len(starts)}", field="nodes")
    start = starts[0]
    if definition.incoming(start.id):
        raise ValidationError(f'Start node "{start.id}" must not have incoming edges', field="edges")

    for node in definition.nodes:
        if node.type != "start" and not definition.incoming(node.id):
            raise ValidationError(f'Node "{node.id}" has no incoming edge', field=f"nodes.{node.id}")

    reachable = _reachable_from(definition, start.id)
    for node in definition.nodes:
        if node.id not in reachable:
            raise ValidationError(f'Node "{node.id}" is not reachable from the start node', field=f"nodes.{node.id}")

    for node in definition.nodes:
        handles: set[str] = set()
        for edge in definition.outgoing(node.id):
            if not edge.handle:
                continue
            if edge.handle in handles:
                raise ValidationError(
                    f'Node "{node.id}" has more than one outgoing "{edge.handle}" edge',
                    field="edges",
                )
            handles.add(edge.handle)

    for edge in definition.edges:
        if edge.reentrant:
            target = definition.node_map[edge.target_id]
            if target.type not in REENTRANT_TARGETS:
                raise ValidationError(
                    f'Reentrant edge "{edge.id}" must target a loop or timer node, not "{target.type}"',
                    field="edges",
                )

    cycle_node = _find_cycle(definition)
    if cycle_node is not None:
        raise ValidationError(
            f'Cycle through node "{cycle_node}"; mark the loop-back edge as reentrant',
            field="edges",
        )


def _reachable_from(definition: WorkflowDefinition, source_id: str) -> set[str]:
    """Nodes reachable from a node over any edge, reentrant ones included."""
    seen = {source_id}
    stack = [source_id]
    while stack:
        for edge in definition.outgoing(stack.pop()):
            if edge.target_id not in seen:
                seen.add(edge.target_id)
                stack.append(edge.target_id)
    return seen


def _find_cycle(definition: WorkflowDefinition) -> str | None:
    """Return a node on a cycle of non-reentrant edges, or None (Kahn's algorithm)."""
    in_degree = {node.id: 0 for node in definition.nodes}
    for edge in definition.edges:
        if not edge.reentrant:
            in_degree[edge.target_id] += 1

    queue = deque(node_id for node_id, degree in in_degree.items() if degree == 0)
    visited = 0
    while queue:
        node_id = queue.popleft()
        visited += 1
        for edge in definition.outgoing(node_id):
            if edge.reentrant:
                continue
            in_degree[edge.target_id] -= 1
            if in_degree[edge.target_id] == 0:
                queue.append(edge.target_id)

    if visited == len(in_degree):
        return None
    return next(node.id for node in definition.nodes if in_degree[node.id] > 0)


def shortest_distances(definition: WorkflowDefinition, source_id: str) -> dict[str, int]:
    """Breadth-first edge distances from a node, ignoring reentrant edges."""
    distances = {source_id: 0}
    queue = deque([source_id])
    while queue:
        node_id = queue.popleft()
        for edge in definition.outgoing(node_id):
            if edge.reentrant or edge.target_id in distances:
                continue
            distances[edge.target_id] = distances[node_id] + 1
            queue.append(edge.target_id)
    return distances


def find_join_node(
    definition: WorkflowDefinition,
    fork_node_id: str,
    target_ids: list[str] | None = None,
) -> str | None:
    """
    Find where the branches leaving a node meet.

    The join is the node reachable from every branch target with the
    smallest worst-case distance; ties go to the earlier node in the
    definition. Branch targets default to all outgoing edges. Returns None
    when the branches never meet.
    """
    targets = target_ids if target_ids is not None else [e.target_id for e in definition.outgoing(fork_node_id)]
    if not targets:
        return None

    reach = [shortest_distances(definition, target) for target in targets]
    common = set(reach[0])
    for distances in reach[1:]:
        common &= set(distances)
    common.discard(fork_node_id)
    if not common:
        return None

    order = {node.id: index for index, node in enumerate(definition.nodes)}
    return min(
        common,
        key=lambda node_id: (max(distances[node_id] for distances in reach), order[node_id]),
    )
