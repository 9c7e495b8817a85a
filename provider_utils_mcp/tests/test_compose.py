import copy

from provider_utils_mcp.providerdev.compose import (
    MAX_COMPOSE_DEPTH,
    effective_schema,
    merge_all_of,
    resolve_union_first_branch,
    strip_read_only,
)

# --- allOf merging ---


def test_merge_later_branch_wins_per_property():
    schema = {
        "allOf": [
            {"properties": {"x": {"type": "string"}, "a": {"type": "boolean"}}},
            {"properties": {"x": {"type": "integer"}}},
        ]
    }
    merged = merge_all_of(schema)
    assert merged["properties"] == {"x": {"type": "integer"}, "a": {"type": "boolean"}}
    assert "allOf" not in merged


def test_merge_unions_required_and_keeps_own_keys():
    schema = {
        "description": "outer",
        "required": ["z"],
        "properties": {"z": {"type": "string"}},
        "allOf": [
            {"type": "object", "required": ["b", "a"], "properties": {"a": {}, "b": {}}},
            {"required": ["a"], "description": "inner"},
        ],
    }
    merged = merge_all_of(schema)
    assert merged["required"] == ["a", "b", "z"]
    assert set(merged["properties"]) == {"a", "b", "z"}
    assert merged["type"] == "object"
    assert merged["description"] == "inner"


def test_merge_flattens_nested_all_of():
    schema = {
        "type": "object",
        "properties": {
            "child": {"allOf": [{"allOf": [{"properties": {"deep": {"type": "string"}}}]}, {"required": ["deep"]}]},
            "list": {"type": "array", "items": {"allOf": [{"properties": {"n": {"type": "number"}}}]}},
        },
    }
    merged = merge_all_of(schema)
    assert merged["properties"]["child"] == {"properties": {"deep": {"type": "string"}}, "required": ["deep"]}
    assert merged["properties"]["list"]["items"] == {"properties": {"n": {"type": "number"}}}


def test_merge_reaches_union_branches():
    schema = {"oneOf": [{"allOf": [{"properties": {"a": {}}}]}, {"type": "string"}]}
    merged = merge_all_of(schema)
    assert merged["oneOf"][0] == {"properties": {"a": {}}}


def test_merge_ignores_non_dict_branches():
    merged = merge_all_of({"allOf": ["junk", None, {"type": "object"}]})
    assert merged == {"type": "object"}


def test_merge_does_not_mutate_input():
    schema = {"allOf": [{"properties": {"a": {"type": "string"}}}, {"properties": {"b": {}}}]}
    snapshot = copy.deepcopy(schema)
    merge_all_of(schema)
    assert schema == snapshot


# --- Union resolution ---


def test_union_takes_first_branch():
    assert resolve_union_first_branch({"anyOf": [{"type": "string"}, {"type": "integer"}]}) == {"type": "string"}
    assert resolve_union_first_branch({"oneOf": [{"type": "number"}, {"type": "null"}]}) == {"type": "number"}


def test_any_of_checked_before_one_of():
    schema = {"oneOf": [{"type": "integer"}], "anyOf": [{"type": "boolean"}]}
    assert resolve_union_first_branch(schema) == {"type": "boolean"}


def test_empty_union_is_left_alone():
    schema = {"anyOf": [], "type": "string"}
    assert resolve_union_first_branch(schema) == schema


def test_union_resolved_in_nested_schemas():
    schema = {
        "properties": {"p": {"oneOf": [{"anyOf": [{"type": "string"}]}, {"type": "integer"}]}},
        "items": [{"anyOf": [{"type": "boolean"}]}],
        "additionalProperties": {"oneOf": [{"type": "number"}]},
    }
    resolved = resolve_union_first_branch(schema)
    assert resolved["properties"]["p"] == {"type": "string"}
    assert resolved["items"] == [{"type": "boolean"}]
    assert resolved["additionalProperties"] == {"type": "number"}


# --- readOnly stripping ---


def test_strip_read_only_properties():
    schema = {
        "type": "object",
        "required": ["id", "name"],
        "properties": {
            "id": {"type": "string", "readOnly": True},
            "name": {"type": "string"},
            "meta": {"properties": {"created": {"readOnly": True}, "note": {}}},
            "flag": {"readOnly": False},
        },
    }
    stripped = strip_read_only(schema)
    assert set(stripped["properties"]) == {"name", "meta", "flag"}
    assert stripped["required"] == ["name"]
    assert stripped["properties"]["meta"]["properties"] == {"note": {}}
    assert "id" in schema["properties"]


def test_strip_read_only_in_array_items():
    schema = {"type": "array", "items": {"properties": {"id": {"readOnly": True}, "v": {}}}}
    assert strip_read_only(schema)["items"]["properties"] == {"v": {}}


# --- Cycles and depth ---


def test_self_referencing_schema_terminates():
    node = {"type": "object", "properties": {}}
    node["properties"]["self"] = node
    node["properties"]["id"] = {"readOnly": True}

    merged = merge_all_of(node)
    assert merged["properties"]["self"] is node

    stripped = strip_read_only(node)
    assert "id" not in stripped["properties"]

    resolved = resolve_union_first_branch(node)
    assert resolved["type"] == "object"


def test_all_of_cycle_terminates():
    node = {"allOf": [{"properties": {"a": {}}}]}
    node["allOf"].append(node)
    merged = merge_all_of(node)
    assert merged["properties"]["a"] == {}


def test_mutual_union_cycle_terminates():
    a = {"anyOf": []}
    b = {"anyOf": [a]}
    a["anyOf"].append(b)
    assert isinstance(resolve_union_first_branch(a), dict)


def test_depth_limit_returns_deep_nodes_unchanged():
    root = {"properties": {}}
    current = root
    for _ in range(MAX_COMPOSE_DEPTH + 5):
        child = {"properties": {"hidden": {"readOnly": True}}}
        current["properties"]["child"] = child
        current = child

    stripped = strip_read_only(root)
    assert "hidden" not in stripped["properties"]["child"]["properties"]

    deepest = stripped
    for _ in range(MAX_COMPOSE_DEPTH + 5):
        deepest = deepest["properties"]["child"]
    assert "hidden" in deepest["properties"]


# --- Effective schema ---


def test_effective_schema():
    schema = {
        "allOf": [
            {"type": "object", "required": ["id"], "properties": {"id": {"type": "string", "readOnly": True}}},
            {"properties": {"kind": {"oneOf": [{"type": "string"}, {"type": "integer"}]}, "size": {"type": "integer"}}},
        ]
    }
    snapshot = copy.deepcopy(schema)
    result = effective_schema(schema)
    assert result == {
        "type": "object",
        "properties": {"kind": {"type": "string"}, "size": {"type": "integer"}},
        "required": [],
    }
    assert schema == snapshot


def test_effective_schema_is_idempotent():
    schema = {
        "anyOf": [
            {
                "allOf": [
                    {"properties": {"a": {"type": "string"}, "ro": {"readOnly": True}}},
                    {"properties": {"b": {"anyOf": [{"type": "integer"}, {"type": "string"}]}}, "required": ["a", "ro"]},
                ]
            }
        ]
    }
    once = effective_schema(schema)
    assert effective_schema(once) == once


def test_effective_schema_on_cyclic_input():
    node = {"type": "object", "properties": {"id": {"readOnly": True}}}
    node["properties"]["parent"] = node
    result = effective_schema(node)
    assert "id" not in result["properties"]
    assert "parent" in result["properties"]
