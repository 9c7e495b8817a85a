from __future__ import annotations

from typing import Any

from prance import ResolvingParser

from .errors import DocumentLoadError


class DerefError(DocumentLoadError):
    pass


def _keep_recursive_ref(limit: int, refstring: str, recursions: Any = ()) -> dict[str, Any]:
    return {"$ref": refstring}


def dereference_service(path: str) -> dict[str, Any]:
    """Fully inline every reference of an enriched service document.

    Recursive references stay as ``$ref`` nodes instead of failing the parse.
    """
    parser = ResolvingParser(
        path,
        lazy=True,
        strict=False,
        backend="openapi-spec-validator",
        recursion_limit_handler=_keep_recursive_ref,
    )
    try:
        parser.parse()
    except Exception as exc:
        raise DerefError(f"Failed to dereference service document {path}: {exc}") from exc

    document = parser.specification
    if not isinstance(document, dict):
        raise DerefError(f"Dereferenced service document {path} is not a mapping")
    return document
