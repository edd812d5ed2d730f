"""Unit tests for observing nested dicts."""

import copy
import json
import pickle

import pytest

from pathwatch import (
    ACCESS,
    ITERATE,
    NodeRegistry,
    NotObservableError,
    ObservableDict,
    can_observe,
    get_channel,
    is_observed,
    observe,
    to_plain,
)
from pathwatch.events import read, write


# ============================================================================
# PATH ACCUMULATION
# ============================================================================


@pytest.mark.unit
@pytest.mark.graph
def test_events_carry_full_path_from_root(registry, record):
    """Writing a nested entry reads each parent and writes with the full path."""
    root, channel = observe({"a": "hello", "b": {"c": "world"}}, registry)
    events = record(channel)

    root["a"] = "world"
    root["b"]["c"] = "yes!"

    assert events == [write("a"), read("b"), write("b", "c")]


@pytest.mark.unit
@pytest.mark.graph
def test_sub_node_channel_sees_relative_paths(registry, record):
    root, _ = observe({"a": "hello", "b": {"c": "world"}}, registry)
    events = record(get_channel(root["b"]))

    root["a"] = "world"
    root["b"]["c"] = "yes!"

    assert events == [write("c")]


@pytest.mark.unit
@pytest.mark.graph
def test_deep_paths_accumulate_through_every_level(registry, record):
    root, channel = observe({"x": {"y": {"z": {"w": 0}}}}, registry)
    events = record(channel)

    root["x"]["y"]["z"]["w"] = 1

    assert events == [
        read("x"),
        read("x", "y"),
        read("x", "y", "z"),
        write("x", "y", "z", "w"),
    ]


@pytest.mark.unit
@pytest.mark.graph
def test_assigning_fresh_dict_instruments_it(registry, record):
    root, channel = observe({}, registry)
    events = record(channel)

    root["b"] = {"c": "hello"}
    root["b"]["c"] = "world"

    assert events == [write("b"), read("b"), write("b", "c")]
    assert isinstance(root["b"], ObservableDict)


@pytest.mark.unit
@pytest.mark.graph
def test_assigning_nested_fresh_dict_instruments_every_level(registry, record):
    root, channel = observe({}, registry)
    root["b"] = {"c": {"d": 1}}
    events = record(channel)

    root["b"]["c"]["d"] = 2

    assert events == [read("b"), read("b", "c"), write("b", "c", "d")]


# ============================================================================
# IDENTITY AND REPLACEMENT
# ============================================================================


@pytest.mark.unit
@pytest.mark.graph
def test_reassigning_identical_node_is_a_no_op(registry, record):
    root, channel = observe({}, registry)
    events = record(channel)

    root["b"] = {"c": "hello"}
    temp = root["b"]
    root["b"] = temp
    root["b"] = temp
    root["b"]["c"] = "world"

    assert events == [write("b"), read("b"), read("b"), write("b", "c")]
    assert get_channel(temp).listener_count(ACCESS) == 1


@pytest.mark.unit
@pytest.mark.graph
def test_self_assignment_reads_once_and_writes_nothing(registry, record):
    root, channel = observe({"b": {"c": 1}}, registry)
    events = record(channel)

    root["b"] = root["b"]

    assert events == [read("b")]


@pytest.mark.unit
@pytest.mark.graph
def test_replaced_node_is_detached(registry, record):
    root, channel = observe({"b": {"c": 1}}, registry)
    old = root["b"]
    events = record(channel)

    root["b"] = {"c": 2}
    old["c"] = 3

    assert events == [write("b")]
    assert get_channel(old).listener_count(ACCESS) == 0
    assert is_observed(old)


@pytest.mark.unit
@pytest.mark.graph
def test_replacing_node_with_scalar_detaches_it(registry, record):
    root, channel = observe({"b": {"c": 1}}, registry)
    old = root["b"]
    events = record(channel)

    root["b"] = None
    old["c"] = 3

    assert events == [write("b")]
    assert root["b"] is None


@pytest.mark.unit
@pytest.mark.graph
def test_repeated_replacement_never_duplicates_delivery(registry, record):
    root, channel = observe({"b": {"c": 0}}, registry)

    root["b"] = {"c": 1}
    root["b"] = {"c": 2}
    root["b"] = "scalar"
    root["b"] = "other scalar"
    root["b"] = {"c": 3}
    events = record(channel)
    root["b"]["c"] = 4

    assert events == [read("b"), write("b", "c")]


@pytest.mark.unit
@pytest.mark.graph
def test_existing_node_is_reused_not_rewrapped(registry, record):
    root, channel = observe({}, registry)
    other, other_channel = observe({"x": 1}, registry)
    events = record(channel)

    root["o"] = other
    other["x"] = 2

    assert root["o"] is other
    assert events == [write("o"), write("o", "x"), read("o")]
    assert other_channel.listener_count(ACCESS) == 1


@pytest.mark.unit
@pytest.mark.graph
def test_node_shared_under_two_keys_reports_both_paths(registry, record):
    root, channel = observe({}, registry)
    shared, _ = observe({"x": 1}, registry)
    root["p"] = shared
    root["q"] = shared
    events = record(channel)

    shared["x"] = 2

    assert events == [write("p", "x"), write("q", "x")]


@pytest.mark.unit
@pytest.mark.graph
def test_replacing_one_alias_keeps_other_key_linked(registry, record):
    """Detaching a shared node reinstalls the links this parent still needs."""
    root, channel = observe({}, registry)
    shared, _ = observe({"x": 1}, registry)
    root["p"] = shared
    root["q"] = shared

    root["p"] = 0
    events = record(channel)
    shared["x"] = 2

    assert events == [write("q", "x")]


@pytest.mark.unit
@pytest.mark.graph
def test_swapping_nodes_keeps_both_linked(registry, record):
    root, channel = observe({"b": {"n": "b"}, "c": {"n": "c"}}, registry)
    first, second = root["b"], root["c"]

    root["b"] = second
    root["c"] = first
    events = record(channel)
    first["n"] = "first"
    second["n"] = "second"

    assert events == [write("c", "n"), write("b", "n")]


@pytest.mark.unit
@pytest.mark.graph
def test_shared_input_containers_map_to_one_node(registry):
    shared = {"x": 1}

    root, _ = observe({"p": shared, "q": shared}, registry)

    assert root["p"] is root["q"]


@pytest.mark.unit
@pytest.mark.graph
def test_reference_cycles_are_rejected(registry):
    data = {}
    data["self"] = data

    with pytest.raises(ValueError, match="Circular reference"):
        observe(data, registry)


@pytest.mark.unit
@pytest.mark.graph
def test_rejected_cyclic_assignment_leaves_entry_linked(registry, record):
    root, channel = observe({"b": {"c": 1}}, registry)
    cyclic = {}
    cyclic["self"] = cyclic

    with pytest.raises(ValueError, match="Circular reference"):
        root["b"] = cyclic
    events = record(channel)
    root["b"]["c"] = 2

    assert events == [read("b"), write("b", "c")]
    assert root == {"b": {"c": 2}}


@pytest.mark.unit
@pytest.mark.graph
def test_wrapping_current_node_in_new_dict_keeps_it_linked(registry, record):
    root, channel = observe({"b": {"c": 1}}, registry)
    inner = root["b"]
    events = record(channel)

    root["b"] = {"inner": inner}
    inner["c"] = 2

    assert events == [write("b"), write("b", "inner", "c")]


# ============================================================================
# READS
# ============================================================================


@pytest.mark.unit
@pytest.mark.graph
def test_callable_values_are_returned_without_events(registry, record):
    root, channel = observe({"fn": len, "value": 1}, registry)
    events = record(channel)

    assert root["fn"] is len
    assert root["value"] == 1
    assert events == [read("value")]


@pytest.mark.unit
@pytest.mark.graph
def test_key_iteration_reads_only_the_entry_set(registry, record):
    root, channel = observe({"a": 1, "b": {"c": 2}}, registry)
    events = record(channel)

    assert list(root.keys()) == ["a", "b"]
    assert list(root) == ["a", "b"]

    assert events == [read(ITERATE), read(ITERATE)]


@pytest.mark.unit
@pytest.mark.graph
def test_values_and_items_read_every_entry(registry, record):
    root, channel = observe({"a": 1, "fn": len, "b": {"c": 2}}, registry)
    events = record(channel)

    assert list(root.values()) == [1, len, {"c": 2}]
    assert list(root.items()) == [("a", 1), ("fn", len), ("b", {"c": 2})]

    per_pass = [read(ITERATE), read("a"), read("b")]
    assert events == per_pass + per_pass


@pytest.mark.unit
@pytest.mark.graph
def test_len_and_membership_emit_nothing(registry, record):
    root, channel = observe({"a": 1}, registry)
    events = record(channel)

    assert len(root) == 1
    assert "a" in root
    assert "missing" not in root

    assert events == []


@pytest.mark.unit
@pytest.mark.graph
def test_missing_key_read_is_recorded_before_key_error(registry, record):
    root, channel = observe({}, registry)
    events = record(channel)

    with pytest.raises(KeyError):
        root["missing"]

    assert events == [read("missing")]


@pytest.mark.unit
@pytest.mark.graph
def test_get_reads_present_and_missing_keys(registry, record):
    root, channel = observe({"a": "x"}, registry)
    events = record(channel)

    assert root.get("a") == "x"
    assert root.get("missing", "fallback") == "fallback"

    assert events == [read("a"), read("missing")]


@pytest.mark.unit
@pytest.mark.graph
def test_attribute_access_aliases_item_access(registry, record):
    root, channel = observe({"b": {"c": "hello"}}, registry)
    events = record(channel)

    root.b.c = "world"

    assert root.b.c == "world"
    assert events == [
        read("b"),
        write("b", "c"),
        read("b"),
        read("b", "c"),
    ]


@pytest.mark.unit
@pytest.mark.graph
def test_missing_attribute_raises_attribute_error(registry):
    root, _ = observe({}, registry)

    with pytest.raises(AttributeError):
        root.missing
    assert not hasattr(root, "missing")


# ============================================================================
# OTHER WRITES
# ============================================================================


@pytest.mark.unit
@pytest.mark.graph
def test_delete_writes_and_detaches(registry, record):
    root, channel = observe({"a": 1, "b": {"c": 2}}, registry)
    old = root["b"]
    events = record(channel)

    del root["b"]
    del root.a

    assert events == [write("b"), write("a")]
    assert root == {}
    assert get_channel(old).listener_count(ACCESS) == 0


@pytest.mark.unit
@pytest.mark.graph
def test_delete_missing_key_raises(registry):
    root, _ = observe({}, registry)

    with pytest.raises(KeyError):
        del root["missing"]


@pytest.mark.unit
@pytest.mark.graph
def test_update_writes_each_changed_key(registry, record):
    root, channel = observe({"a": "old"}, registry)
    events = record(channel)

    root.update({"a": "new"}, z={"deep": True})
    root["z"]["deep"] = False

    assert events == [write("a"), write("z"), read("z"), write("z", "deep")]


@pytest.mark.unit
@pytest.mark.graph
def test_in_place_or_routes_through_update(registry, record):
    root, channel = observe({}, registry)
    events = record(channel)

    root |= {"a": "x"}

    assert isinstance(root, ObservableDict)
    assert events == [write("a")]


@pytest.mark.unit
@pytest.mark.graph
def test_setdefault_writes_missing_and_reads_present(registry, record):
    root, channel = observe({"a": "x"}, registry)
    events = record(channel)

    assert root.setdefault("a", "unused") == "x"
    created = root.setdefault("n", {})

    assert isinstance(created, ObservableDict)
    assert events == [read("a"), write("n")]


@pytest.mark.unit
@pytest.mark.graph
def test_pop_popitem_and_clear_write_removed_keys(registry, record):
    root, channel = observe({"a": 1, "b": 2, "c": 3}, registry)
    events = record(channel)

    assert root.pop("a") == 1
    assert root.pop("missing", None) is None
    assert root.popitem() == ("c", 3)
    root.clear()

    assert events == [write("a"), write("c"), write("b")]
    with pytest.raises(KeyError):
        root.pop("missing")
    with pytest.raises(KeyError):
        root.popitem()


# ============================================================================
# ELIGIBILITY AND LOOKUP
# ============================================================================


@pytest.mark.unit
@pytest.mark.graph
@pytest.mark.parametrize("value", [None, 1, "text", 1.5, (1, 2), {1, 2}])
def test_non_containers_cannot_be_observed(value, registry):
    assert not can_observe(value)
    with pytest.raises(NotObservableError):
        observe(value, registry)


@pytest.mark.unit
@pytest.mark.graph
def test_not_observable_error_is_a_type_error(registry):
    with pytest.raises(TypeError):
        observe(None, registry)


@pytest.mark.unit
@pytest.mark.graph
def test_get_channel_only_for_wrapped_nodes(registry):
    root, channel = observe({"b": {}}, registry)

    assert get_channel(root) is channel
    assert get_channel(root["b"]) is not None
    assert get_channel({}) is None
    assert get_channel(42) is None
    assert get_channel(None) is None


@pytest.mark.unit
@pytest.mark.graph
def test_get_channel_honours_explicit_registry(registry):
    root, channel = observe({"b": {}}, registry)

    assert get_channel(root, registry) is channel
    assert get_channel(root["b"], registry) is get_channel(root["b"])
    assert get_channel(root, NodeRegistry()) is None
    assert get_channel({}, registry) is None


@pytest.mark.unit
@pytest.mark.graph
def test_observing_a_node_again_returns_it(registry):
    root, channel = observe({"a": 1}, registry)

    again, again_channel = observe(root)

    assert again is root
    assert again_channel is channel


@pytest.mark.unit
@pytest.mark.graph
def test_original_data_is_left_untouched(registry):
    original = {"b": {"c": 1}}
    root, _ = observe(original, registry)

    root["b"]["c"] = 2

    assert original == {"b": {"c": 1}}
    assert type(original["b"]) is dict


@pytest.mark.unit
@pytest.mark.graph
def test_direct_construction_observes_data(registry, record):
    root = ObservableDict({"b": {"c": 1}}, registry=registry)
    events = record(get_channel(root))

    root["b"]["c"] = 2

    assert events == [read("b"), write("b", "c")]


# ============================================================================
# TRANSPARENCY
# ============================================================================


@pytest.mark.unit
@pytest.mark.graph
def test_json_serialization_matches_original(registry):
    original = {"a": "hello", "b": {"c": "world", "n": [1, {"d": None}]}}
    root, _ = observe(original, registry)

    assert json.dumps(root) == json.dumps(original)
    assert json.dumps(root, indent=2, sort_keys=True) == json.dumps(
        original, indent=2, sort_keys=True
    )


@pytest.mark.unit
@pytest.mark.graph
def test_views_compare_equal_to_plain_data(registry):
    original = {"a": 1, "b": {"c": [1, 2]}}
    root, _ = observe(original, registry)

    assert root == original
    assert isinstance(root, dict)
    assert isinstance(root["b"], dict)


@pytest.mark.unit
@pytest.mark.graph
def test_to_plain_returns_builtin_containers(registry):
    root, _ = observe({"b": {"c": [{"d": 1}]}}, registry)

    plain = to_plain(root)

    assert plain == {"b": {"c": [{"d": 1}]}}
    assert type(plain) is dict
    assert type(plain["b"]) is dict
    assert type(plain["b"]["c"]) is list
    assert type(plain["b"]["c"][0]) is dict


@pytest.mark.unit
@pytest.mark.graph
def test_copies_and_pickles_are_plain_data(registry):
    root, _ = observe({"b": {"c": 1}}, registry)

    shallow = copy.copy(root)
    deep = copy.deepcopy(root)
    restored = pickle.loads(pickle.dumps(root))

    for result in (shallow, deep, restored):
        assert result == {"b": {"c": 1}}
        assert type(result) is dict
        assert not is_observed(result["b"])
