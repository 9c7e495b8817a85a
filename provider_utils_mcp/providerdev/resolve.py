from __future__ import annotations

from typing import Any

from .naming import decode_pointer_token
from .pointers import REF_KEY


def deep_resolve_refs(value: Any, document: dict[str, Any] | None, active: tuple[str, ...] = ()) -> Any:
    """Return a copy of ``value`` with local ``$ref`` pointers inlined.

    A pointer that is already being expanded further up the tree is left as
    a ``$ref`` node, which keeps recursive schemas finite. Pointers that do
    not resolve inside ``document`` are kept as well.
    """
    if document is None:
        return value

    if isinstance(value, list):
        return [deep_resolve_refs(item, document, active) for item in value]
    if not isinstance(value, dict):
        return value

    ref = value.get(REF_KEY)
    if not isinstance(ref, str):
        return {key: deep_resolve_refs(item, document, active) for key, item in value.items()}

    target = None if ref in active else resolve_local_pointer(document, ref)
    if target is None:
        return dict(value)
    return deep_resolve_refs(target, document, active + (ref,))


def resolve_local_pointer(document: dict[str, Any], ref: str) -> Any | None:
    """Follow a ``#/...`` JSON pointer through mappings and list indexes."""
    if ref == "#":
        return document
    if not ref.startswith("#/"):
        return None

    current: Any = document
    for token in ref[2:].split("/"):
        token = decode_pointer_token(token)
        if isinstance(current, dict):
            current = current.get(token)
        elif isinstance(current, list) and token.isdigit() and int(token) < len(current):
            current = current[int(token)]
        else:
            return None
        if current is None:
            return None
    return current
