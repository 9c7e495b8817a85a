from __future__ import annotations

from typing import Any, Callable

from .model import ResolvedPointer
from .naming import decode_pointer_token

REF_KEY = "$ref"

# Visitor return values: descend into the node's children, or stop here.
DESCEND = True
STOP = False


def walk_nodes(
    node: Any,
    visit: Callable[[dict[str, Any], bool], bool],
    key: str | None = None,
    parent_is_properties_map: bool = False,
) -> None:
    """Depth-first walk over mappings and lists.

    ``visit`` is called for every mapping together with a flag telling
    whether the mapping is a ``properties`` map, i.e. the value of a
    ``properties`` key whose owner is not itself a properties map. Values of
    a properties map are schemas, whatever their names. Returning ``STOP``
    prevents the walk from entering that mapping's values.
    """
    if isinstance(node, dict):
        is_properties_map = key == "properties" and not parent_is_properties_map
        if not visit(node, is_properties_map):
            return
        for child_key, value in node.items():
            if isinstance(value, (dict, list)):
                walk_nodes(value, visit, child_key, is_properties_map)
    elif isinstance(node, list):
        for item in node:
            if isinstance(item, (dict, list)):
                walk_nodes(item, visit)


def extract_all_pointers(node: Any) -> set[str]:
    pointers: set[str] = set()

    def visit(mapping: dict[str, Any], _is_properties_map: bool) -> bool:
        ref = mapping.get(REF_KEY)
        if isinstance(ref, str):
            pointers.add(ref)
            return STOP
        return DESCEND

    walk_nodes(node, visit)
    return pointers


def parse_component_pointer(pointer: str) -> tuple[str, str] | None:
    parts = pointer.split("/")
    if len(parts) < 4 or parts[0] != "#" or parts[1] != "components":
        return None
    bucket = decode_pointer_token(parts[2])
    name = decode_pointer_token(parts[3])
    if not bucket or not name:
        return None
    return bucket, name


def component_pointer(bucket: str, name: str) -> str:
    encoded = name.replace("~", "~0").replace("/", "~1")
    return f"#/components/{bucket}/{encoded}"


def resolve_pointer(document: dict[str, Any], pointer: str) -> ResolvedPointer | None:
    parsed = parse_component_pointer(pointer)
    if parsed is None:
        return None
    bucket, name = parsed
    components = document.get("components") if isinstance(document, dict) else None
    if not isinstance(components, dict):
        return None
    bucket_map = components.get(bucket)
    if not isinstance(bucket_map, dict) or name not in bucket_map:
        return None
    return ResolvedPointer(bucket=bucket, name=name, value=bucket_map[name])
