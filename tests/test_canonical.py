"""Tests for workflow state canonicalization."""

from __future__ import annotations

import copy

import pytest

from flowstate.canonical import (
    BLOCK_FIELDS,
    EDGE_FIELDS,
    PRESENTATION_FIELDS,
    Canonicalizer,
    canonicalize,
)
from flowstate.digest import encode_canonical
from flowstate.errors import CanonicalizationError


def test_canonical_encoding_of_reference_state(agent_state):
    """The reference single-agent state has a fixed canonical encoding."""

    expected = (
        '{"blocks":{"block1":{"id":"block1","type":"agent",'
        '"metadata":{"id":"agent","name":"Test Agent"},'
        '"config":{"params":{"prompt":"Hello"}},"subBlocks":{},"outputs":{},'
        '"enabled":true,"advancedMode":false}},'
        '"edges":[{"id":"edge1","source":"block1","target":"block2",'
        '"sourceHandle":null,"targetHandle":null}],"loops":{},"parallels":{}}'
    )
    assert encode_canonical(canonicalize(agent_state())) == expected


def test_root_fields_have_fixed_order():
    state = {"parallels": {}, "loops": {}, "edges": [], "blocks": {}}
    assert list(canonicalize(state)) == ["blocks", "edges", "loops", "parallels"]


def test_missing_root_collections_are_empty():
    assert canonicalize({}) == {"blocks": {}, "edges": [], "loops": {}, "parallels": {}}
    assert canonicalize({"blocks": None, "edges": None}) == canonicalize({})


def test_unknown_root_keys_are_ignored():
    state = {"blocks": {}, "edges": [], "lastSaved": 1700000000, "isDeployed": True}
    assert canonicalize(state) == canonicalize({})


def test_variables_only_emitted_when_non_empty():
    assert "variables" not in canonicalize({"variables": {}})
    canonical = canonicalize({"variables": {"b": 2, "a": 1}})
    assert list(canonical) == ["blocks", "edges", "loops", "parallels", "variables"]
    assert list(canonical["variables"]) == ["a", "b"]


def test_block_fields_in_fixed_order_without_presentation(agent_state):
    block = canonicalize(agent_state())["blocks"]["block1"]

    assert list(block) == list(BLOCK_FIELDS)
    assert PRESENTATION_FIELDS.isdisjoint(block)


def test_block_field_order_ignores_input_key_order(agent_state):
    state = agent_state()
    original = state["blocks"]["block1"]
    state["blocks"]["block1"] = dict(reversed(list(original.items())))

    assert list(canonicalize(state)["blocks"]["block1"]) == list(BLOCK_FIELDS)


def test_layout_field_is_presentation_only(agent_state):
    state = agent_state(layout={"measuredHeight": 120})
    assert "layout" not in canonicalize(state)["blocks"]["block1"]


def test_extra_block_fields_follow_known_fields_sorted(agent_state):
    state = agent_state(triggerMode=False, data={"parentId": "loop1"})
    block = canonicalize(state)["blocks"]["block1"]

    assert list(block)[len(BLOCK_FIELDS):] == ["data", "triggerMode"]
    assert block["data"] == {"parentId": "loop1"}


def test_absent_block_mapping_fields_equal_empty_mappings():
    sparse = {"blocks": {"b": {"id": "b", "type": "agent"}}}
    explicit = {
        "blocks": {
            "b": {
                "id": "b",
                "type": "agent",
                "metadata": {},
                "config": None,
                "subBlocks": {},
                "outputs": {},
            }
        }
    }

    assert canonicalize(sparse) == canonicalize(explicit)
    block = canonicalize(sparse)["blocks"]["b"]
    assert block["enabled"] is None
    assert block["advancedMode"] is None


def test_mapping_keys_are_sorted_recursively():
    state = {
        "blocks": {
            "z": {"id": "z", "config": {"params": {"b": {"y": 1, "x": 2}, "a": 0}}},
            "a": {"id": "a"},
        },
        "loops": {"loop2": {}, "loop1": {}},
    }
    canonical = canonicalize(state)

    assert list(canonical["blocks"]) == ["a", "z"]
    assert list(canonical["loops"]) == ["loop1", "loop2"]
    params = canonical["blocks"]["z"]["config"]["params"]
    assert list(params) == ["a", "b"]
    assert list(params["b"]) == ["x", "y"]


def test_sequences_keep_their_order():
    state = {"blocks": {"b": {"config": {"tools": ["search", "calculator"]}}}}
    reversed_state = {"blocks": {"b": {"config": {"tools": ["calculator", "search"]}}}}

    assert canonicalize(state)["blocks"]["b"]["config"]["tools"] == [
        "search",
        "calculator",
    ]
    assert canonicalize(state) != canonicalize(reversed_state)


def test_tuples_become_lists():
    canonical = Canonicalizer().canonicalize_value({"tools": ("a", "b")})
    assert canonical == {"tools": ["a", "b"]}


def test_edges_sorted_by_endpoints_then_handles_then_id():
    edges = [
        {"id": "e4", "source": "b", "target": "a"},
        {"id": "e3", "source": "a", "target": "b", "sourceHandle": "out"},
        {"id": "e2", "source": "a", "target": "b"},
        {"id": "e1", "source": "a", "target": "b"},
    ]
    canonical = canonicalize({"edges": edges})

    assert [edge["id"] for edge in canonical["edges"]] == ["e1", "e2", "e3", "e4"]
    assert all(list(edge) == list(EDGE_FIELDS) for edge in canonical["edges"])


def test_edge_records_drop_presentation_fields():
    edge = {
        "id": "e1",
        "source": "a",
        "target": "b",
        "type": "workflowEdge",
        "animated": True,
        "style": {"stroke": "#999"},
    }
    canonical = canonicalize({"edges": [edge]})
    assert canonical["edges"] == [
        {
            "id": "e1",
            "source": "a",
            "target": "b",
            "sourceHandle": None,
            "targetHandle": None,
        }
    ]


def test_edge_ties_resolve_deterministically():
    with_null = {"id": "e", "source": "a", "target": "b", "sourceHandle": None}
    with_empty = {"id": "e", "source": "a", "target": "b", "sourceHandle": ""}

    first = canonicalize({"edges": [with_null, with_empty]})
    second = canonicalize({"edges": [with_empty, with_null]})

    assert encode_canonical(first) == encode_canonical(second)


def test_integral_floats_collapse_to_ints():
    canonicalizer = Canonicalizer()

    assert canonicalizer.canonicalize_value(3.0) == 3
    assert isinstance(canonicalizer.canonicalize_value(3.0), int)
    assert canonicalizer.canonicalize_value(-0.0) == 0
    assert isinstance(canonicalizer.canonicalize_value(0.7), float)
    assert isinstance(canonicalizer.canonicalize_value(1e300), float)


def test_booleans_are_not_numbers():
    canonical = Canonicalizer().canonicalize_value([True, 1, False, 0])
    assert [type(item) for item in canonical] == [bool, int, bool, int]


def test_strings_pass_through_unchanged():
    value = "  Hello\tWorld é "
    assert Canonicalizer().canonicalize_value(value) == value


@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_numbers_are_rejected(value):
    state = {"parallels": {"p": {"config": {"maxConcurrency": value}}}}
    with pytest.raises(CanonicalizationError) as excinfo:
        canonicalize(state)
    assert excinfo.value.path == "parallels.p.config.maxConcurrency"


@pytest.mark.parametrize(
    "value",
    [{"a", "b"}, b"raw", lambda: None, object()],
    ids=["set", "bytes", "function", "object"],
)
def test_unsupported_values_are_rejected_with_path(value):
    state = {"blocks": {"block1": {"config": {"params": {"tools": ["ok", value]}}}}}
    with pytest.raises(CanonicalizationError) as excinfo:
        canonicalize(state)
    assert excinfo.value.path == "blocks.block1.config.params.tools[1]"
    assert "blocks.block1.config.params.tools[1]" in str(excinfo.value)


def test_circular_reference_is_rejected():
    params: dict[str, object] = {"prompt": "Hello"}
    params["self"] = params
    state = {"blocks": {"block1": {"config": {"params": params}}}}

    with pytest.raises(CanonicalizationError, match="circular reference") as excinfo:
        canonicalize(state)
    assert excinfo.value.path == "blocks.block1.config.params.self"


def _nested(depth: int, wrap) -> object:
    value: object = "leaf"
    for _ in range(depth):
        value = wrap(value)
    return value


@pytest.mark.parametrize(
    "wrap", [lambda inner: {"n": inner}, lambda inner: [inner]], ids=["mapping", "list"]
)
def test_deeply_nested_values_are_rejected(wrap):
    state = {"blocks": {"b": {"config": {"params": _nested(2000, wrap)}}}}

    with pytest.raises(CanonicalizationError, match="nests too deeply") as excinfo:
        canonicalize(state)
    assert excinfo.value.path.startswith("blocks.b.config.params")


def test_nesting_below_the_limit_is_accepted():
    state = {"blocks": {"b": {"config": {"params": _nested(100, lambda v: {"n": v})}}}}

    params = canonicalize(state)["blocks"]["b"]["config"]["params"]
    for _ in range(100):
        params = params["n"]
    assert params == "leaf"


@pytest.mark.parametrize(
    ("state", "path"),
    [
        ({"blocks": {"b": {"config": {"prompt": "\ud800"}}}}, "blocks.b.config.prompt"),
        ({"blocks": {"b": {"config": {"\udfff": "x"}}}}, "blocks.b.config"),
        ({"edges": [{"id": "e\ud800", "source": "a", "target": "b"}]}, "edges[0].id"),
    ],
    ids=["value", "key", "edge-field"],
)
def test_lone_surrogates_are_rejected_with_path(state, path):
    with pytest.raises(CanonicalizationError, match="not valid Unicode") as excinfo:
        canonicalize(state)
    assert excinfo.value.path == path


def test_shared_non_cyclic_values_are_allowed():
    shared = {"value": "gpt-4"}
    state = {"blocks": {"a": {"subBlocks": {"m": shared}}, "b": {"subBlocks": {"m": shared}}}}
    canonical = canonicalize(state)
    assert canonical["blocks"]["a"]["subBlocks"] == canonical["blocks"]["b"]["subBlocks"]


def test_non_string_keys_are_rejected():
    with pytest.raises(CanonicalizationError, match="keys must be strings"):
        canonicalize({"loops": {1: {}}})


@pytest.mark.parametrize(
    ("state", "path"),
    [
        ({"blocks": {"b": "agent"}}, "blocks.b"),
        ({"blocks": {"b": {"config": ["not", "a", "mapping"]}}}, "blocks.b.config"),
        ({"edges": {"e1": {}}}, "edges"),
        ({"edges": ["a->b"]}, "edges[0]"),
        ({"edges": [{"id": "e", "source": 1, "target": "b"}]}, "edges[0].source"),
    ],
)
def test_malformed_structure_names_offending_path(state, path):
    with pytest.raises(CanonicalizationError) as excinfo:
        canonicalize(state)
    assert excinfo.value.path == path


def test_state_must_be_a_mapping():
    with pytest.raises(CanonicalizationError, match="must be a mapping"):
        canonicalize([])  # type: ignore[arg-type]


def test_input_is_not_mutated(complex_state):
    snapshot = copy.deepcopy(complex_state)
    canonicalize(complex_state)
    assert complex_state == snapshot
    assert list(complex_state["blocks"]["block1"]) == list(snapshot["blocks"]["block1"])


def test_result_shares_no_containers_with_input(complex_state):
    canonical = canonicalize(complex_state)
    canonical["blocks"]["block1"]["config"]["params"]["tools"].append("extra")
    assert complex_state["blocks"]["block1"]["config"]["params"]["tools"] == [
        "search",
        "calculator",
    ]
