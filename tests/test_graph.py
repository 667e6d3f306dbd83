"""Tests for definition decoding, validation and join detection."""

import pytest

from bpm_engine.core.exceptions import ValidationError
from bpm_engine.engine.graph import (
    definition_from_dict,
    definition_to_dict,
    find_join_node,
    load_definition,
)
from bpm_engine.nodes.configs import TaskConfig, TimerConfig


def _definition(nodes, edges):
    return {"name": "test", "nodes": nodes, "edges": edges}


def test_decodes_typed_configs_and_both_edge_spellings():
    definition = load_definition(
        _definition(
            [
                {"id": "start", "type": "start"},
                {"id": "wait", "type": "timer", "data": {"label": "Wait", "config": {"duration": 5, "unit": "minutes"}}},
                {"id": "review", "type": "task", "config": {"assignee": "user:alice"}, "retryOnFail": 2},
                {"id": "end", "type": "end"},
            ],
            [
                {"id": "e1", "source": "start", "target": "wait"},
                {"id": "e2", "source_id": "wait", "target_id": "review"},
                {"id": "e3", "source": "review", "target": "end", "sourceHandle": "main"},
            ],
        ),
        definition_id="wf",
        version=3,
    )

    assert definition.id == "wf"
    assert definition.version == 3
    wait = definition.get_node("wait")
    assert isinstance(wait.config, TimerConfig)
    assert wait.config.seconds == 300
    assert wait.display_name == "Wait"
    review = definition.get_node("review")
    assert isinstance(review.config, TaskConfig)
    assert review.retry_on_fail == 2
    assert definition.outgoing("review")[0].handle == "main"


def test_round_trip_through_dict_form():
    raw = _definition(
        [
            {"id": "start", "type": "start"},
            {"id": "check", "type": "condition", "config": {"expression": "amount > 10"}},
            {"id": "yes", "type": "end"},
            {"id": "no", "type": "end"},
        ],
        [
            {"id": "e1", "source": "start", "target": "check"},
            {"id": "e2", "source": "check", "target": "yes", "sourceHandle": "true"},
            {"id": "e3", "source": "check", "target": "no", "sourceHandle": "false"},
        ],
    )
    definition = load_definition(raw, definition_id="wf", version=1)
    again = definition_from_dict(definition_to_dict(definition))

    assert again.nodes == definition.nodes
    assert again.edges == definition.edges


@pytest.mark.parametrize(
    "nodes, edges, field",
    [
        ([], [], "nodes"),
        ([{"id": "a", "type": "start"}, {"id": "a", "type": "end"}], [], "nodes"),
        ([{"id": "a", "type": "start"}, {"id": "b", "type": "teleport"}], [], "nodes.b.type"),
        ([{"id": "a", "type": "start"}, {"id": "b", "type": "timer", "config": {}}], [], "nodes.b.config"),
        ([{"id": "a", "type": "start"}, {"id": "b", "type": "end", "config": {"bogus": 1}}], [], "nodes.b.config"),
        ([{"id": "a", "type": "start"}, {"id": "b", "type": "end"}], [{"source": "a", "target": "zzz"}], "edges"),
        ([{"id": "a", "type": "end"}], [], "nodes"),
        ([{"id": "a", "type": "start"}, {"id": "b", "type": "start"}], [], "nodes"),
        ([{"id": "a", "type": "start"}, {"id": "b", "type": "end"}], [], "nodes.b"),
    ],
)
def test_invalid_definitions_are_rejected(nodes, edges, field):
    with pytest.raises(ValidationError) as exc_info:
        load_definition(_definition(nodes, edges), definition_id="wf", version=1)
    assert exc_info.value.details["field"] == field


def test_loop_back_edge_must_be_marked_reentrant():
    nodes = [
        {"id": "start", "type": "start"},
        {"id": "loop", "type": "loop", "config": {"collection": "items"}},
        {"id": "body", "type": "log", "config": {"message": "{{ item }}"}},
        {"id": "end", "type": "end"},
    ]
    edges = [
        {"id": "e1", "source": "start", "target": "loop"},
        {"id": "e2", "source": "loop", "target": "body", "sourceHandle": "loop"},
        {"id": "e3", "source": "body", "target": "loop"},
        {"id": "e4", "source": "loop", "target": "end", "sourceHandle": "done"},
    ]
    with pytest.raises(ValidationError, match="Cycle"):
        load_definition(_definition(nodes, edges), definition_id="wf", version=1)

    edges[2]["reentrant"] = True
    load_definition(_definition(nodes, edges), definition_id="wf", version=1)


def test_island_cut_off_from_start_is_rejected():
    nodes = [
        {"id": "start", "type": "start"},
        {"id": "end", "type": "end"},
        {"id": "loop", "type": "loop", "config": {"condition": "true"}},
        {"id": "body", "type": "log", "config": {"message": "tick"}},
    ]
    edges = [
        {"id": "e1", "source": "start", "target": "end"},
        {"id": "e2", "source": "loop", "target": "body", "sourceHandle": "loop"},
        {"id": "e3", "source": "body", "target": "loop", "reentrant": True},
    ]
    with pytest.raises(ValidationError, match="not reachable") as exc_info:
        load_definition(_definition(nodes, edges), definition_id="wf", version=1)
    assert exc_info.value.details["field"] == "nodes.loop"


def test_reentrant_edge_must_target_loop_or_timer():
    nodes = [
        {"id": "start", "type": "start"},
        {"id": "a", "type": "log", "config": {"message": "a"}},
        {"id": "end", "type": "end"},
    ]
    edges = [
        {"id": "e1", "source": "start", "target": "a"},
        {"id": "e2", "source": "a", "target": "end"},
        {"id": "e3", "source": "end", "target": "a", "reentrant": True},
    ]
    with pytest.raises(ValidationError, match="Reentrant"):
        load_definition(_definition(nodes, edges), definition_id="wf", version=1)


def test_duplicate_handles_are_rejected():
    nodes = [
        {"id": "start", "type": "start"},
        {"id": "check", "type": "condition", "config": {"expression": "true"}},
        {"id": "a", "type": "end"},
        {"id": "b", "type": "end"},
    ]
    edges = [
        {"id": "e1", "source": "start", "target": "check"},
        {"id": "e2", "source": "check", "target": "a", "sourceHandle": "true"},
        {"id": "e3", "source": "check", "target": "b", "sourceHandle": "true"},
    ]
    with pytest.raises(ValidationError, match='more than one outgoing "true"'):
        load_definition(_definition(nodes, edges), definition_id="wf", version=1)


def test_loop_config_requires_exactly_one_mode():
    nodes = [
        {"id": "start", "type": "start"},
        {"id": "loop", "type": "loop", "config": {"collection": "items", "condition": "true"}},
    ]
    edges = [{"source": "start", "target": "loop"}]
    with pytest.raises(ValidationError) as exc_info:
        load_definition(_definition(nodes, edges), definition_id="wf", version=1)
    assert exc_info.value.details["field"] == "nodes.loop.config"


def test_find_join_node_picks_nearest_common_node():
    definition = load_definition(
        _definition(
            [
                {"id": "start", "type": "start"},
                {"id": "fork", "type": "parallel"},
                {"id": "a", "type": "log", "config": {"message": "a"}},
                {"id": "b1", "type": "log", "config": {"message": "b1"}},
                {"id": "b2", "type": "log", "config": {"message": "b2"}},
                {"id": "join", "type": "log", "config": {"message": "join"}},
                {"id": "end", "type": "end"},
            ],
            [
                {"source": "start", "target": "fork"},
                {"source": "fork", "target": "a"},
                {"source": "fork", "target": "b1"},
                {"source": "b1", "target": "b2"},
                {"source": "a", "target": "join"},
                {"source": "b2", "target": "join"},
                {"source": "join", "target": "end"},
            ],
        ),
        definition_id="wf",
        version=1,
    )
    assert find_join_node(definition, "fork") == "join"


def test_find_join_node_returns_none_when_branches_never_meet():
    definition = load_definition(
        _definition(
            [
                {"id": "start", "type": "start"},
                {"id": "fork", "type": "parallel"},
                {"id": "a", "type": "end"},
                {"id": "b", "type": "end"},
            ],
            [
                {"source": "start", "target": "fork"},
                {"source": "fork", "target": "a"},
                {"source": "fork", "target": "b"},
            ],
        ),
        definition_id="wf",
        version=1,
    )
    assert find_join_node(definition, "fork") is None


# --- Node registry ---


def test_registry_rejects_a_second_class_for_the_same_type():
    from bpm_engine.core.exceptions import NodeNotFoundError
    from bpm_engine.engine.node_registry import NodeRegistryClass
    from bpm_engine.nodes import EndNode, StartNode

    class ImpostorStart(StartNode):
        pass

    registry = NodeRegistryClass()
    registry.register_many([StartNode, EndNode, StartNode])

    assert registry.list() == ["end", "start"]
    assert [info.type for info in registry.catalog("flow")] == ["end"]
    with pytest.raises(ValueError):
        registry.register(ImpostorStart)
    with pytest.raises(NodeNotFoundError):
        registry.get("teleport")
    assert registry.describe("teleport") is None
