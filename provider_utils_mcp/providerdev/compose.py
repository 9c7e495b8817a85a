from __future__ import annotations

import copy
import logging
from typing import Any, Callable

_logger = logging.getLogger(__name__)

MAX_COMPOSE_DEPTH = 20

UNION_KEYS = ("anyOf", "oneOf")

Rewrite = Callable[[Any, "set[int] | None", int], Any]


def _guard(node: Any, visited: set[int], depth: int, rewrite_name: str) -> bool:
    if depth > MAX_COMPOSE_DEPTH:
        _logger.debug("%s: depth limit %d reached, returning node unchanged", rewrite_name, MAX_COMPOSE_DEPTH)
        return False
    if id(node) in visited:
        _logger.debug("%s: cycle detected, returning node unchanged", rewrite_name)
        return False
    return True


def _rewrite_children(node: dict[str, Any], rewrite: Rewrite, visited: set[int], depth: int) -> dict[str, Any]:
    properties = node.get("properties")
    if isinstance(properties, dict):
        node["properties"] = {
            name: rewrite(value, visited, depth + 1) for name, value in properties.items()
        }

    items = node.get("items")
    if isinstance(items, list):
        node["items"] = [rewrite(item, visited, depth + 1) for item in items]
    elif isinstance(items, dict):
        node["items"] = rewrite(items, visited, depth + 1)

    additional = node.get("additionalProperties")
    if isinstance(additional, dict):
        node["additionalProperties"] = rewrite(additional, visited, depth + 1)

    return node


def merge_all_of(node: Any, visited: set[int] | None = None, depth: int = 0) -> Any:
    """Collapse ``allOf`` into a single schema.

    Branches fold left to right onto the node's own keys: scalar keys and
    individual properties from later branches win, ``required`` is unioned.
    """
    if not isinstance(node, dict):
        return node
    if visited is None:
        visited = set()
    if not _guard(node, visited, depth, "merge_all_of"):
        return node

    visited.add(id(node))
    try:
        result = {key: value for key, value in node.items() if key != "allOf"}
        branches = node.get("allOf")
        if isinstance(branches, list):
            own_properties = result.get("properties")
            properties: dict[str, Any] = dict(own_properties) if isinstance(own_properties, dict) else {}
            required: set[str] = set(_string_list(result.get("required")))
            for branch in branches:
                merged_branch = merge_all_of(branch, visited, depth + 1)
                if not isinstance(merged_branch, dict):
                    continue
                for key, value in merged_branch.items():
                    if key == "properties" and isinstance(value, dict):
                        properties.update(value)
                    elif key == "required":
                        required.update(_string_list(value))
                    else:
                        result[key] = value
            if properties:
                result["properties"] = properties
            if required:
                result["required"] = sorted(required)

        for key in UNION_KEYS:
            options = result.get(key)
            if isinstance(options, list):
                result[key] = [merge_all_of(option, visited, depth + 1) for option in options]

        return _rewrite_children(result, merge_all_of, visited, depth)
    finally:
        visited.discard(id(node))


def resolve_union_first_branch(node: Any, visited: set[int] | None = None, depth: int = 0) -> Any:
    """Replace ``anyOf``/``oneOf`` with their first branch.

    This is a lossy simplification: alternate branches are discarded.
    """
    if not isinstance(node, dict):
        return node
    if visited is None:
        visited = set()
    if not _guard(node, visited, depth, "resolve_union_first_branch"):
        return node

    visited.add(id(node))
    try:
        for key in UNION_KEYS:
            options = node.get(key)
            if isinstance(options, list) and options:
                if len(options) > 1:
                    _logger.debug("Resolving %s to first of %d branches", key, len(options))
                return resolve_union_first_branch(options[0], visited, depth + 1)

        return _rewrite_children(dict(node), resolve_union_first_branch, visited, depth)
    finally:
        visited.discard(id(node))


def strip_read_only(node: Any, visited: set[int] | None = None, depth: int = 0) -> Any:
    """Drop ``readOnly`` properties, leaving the writable shape of a schema."""
    if not isinstance(node, dict):
        return node
    if visited is None:
        visited = set()
    if not _guard(node, visited, depth, "strip_read_only"):
        return node

    visited.add(id(node))
    try:
        result = dict(node)
        properties = result.get("properties")
        if isinstance(properties, dict):
            removed = [
                name for name, value in properties.items()
                if isinstance(value, dict) and value.get("readOnly") is True
            ]
            if removed:
                result["properties"] = {
                    name: value for name, value in properties.items() if name not in removed
                }
                required = result.get("required")
                if isinstance(required, list):
                    result["required"] = [name for name in required if name not in removed]
        return _rewrite_children(result, strip_read_only, visited, depth)
    finally:
        visited.discard(id(node))


def effective_schema(node: Any) -> Any:
    """Merge ``allOf``, pick union first branches and strip read-only fields."""
    owned = copy.deepcopy(node)
    merged = merge_all_of(owned)
    resolved = resolve_union_first_branch(merged)
    return strip_read_only(resolved)


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]
