from __future__ import annotations

import copy
import logging
from typing import Any, Iterable

from .model import ClosureResult, UnresolvedPointer
from .pointers import extract_all_pointers, parse_component_pointer, resolve_pointer

_logger = logging.getLogger(__name__)


def compute_closure(
    seed_pointers: Iterable[str],
    source_document: dict[str, Any],
    logger: logging.Logger | None = None,
    service: str | None = None,
) -> ClosureResult:
    """Collect every component transitively reachable from ``seed_pointers``.

    Each resolved component is deep-copied into the result so that services
    never share mutable structure with each other or with the source. The
    ``processed`` set only grows, which bounds the loop even when components
    reference themselves or each other.
    """
    log = logger or _logger
    components: dict[str, dict[str, Any]] = {}
    unresolved: list[UnresolvedPointer] = []
    processed: set[str] = set()
    frontier: set[str] = set(seed_pointers)

    while frontier:
        next_frontier: set[str] = set()
        for pointer in sorted(frontier):
            if pointer in processed:
                continue
            processed.add(pointer)

            if parse_component_pointer(pointer) is None:
                log.debug("Ignoring non-component reference %s", pointer)
                unresolved.append(UnresolvedPointer(pointer, "not a component reference", service))
                continue

            resolved = resolve_pointer(source_document, pointer)
            if resolved is None:
                log.warning("Could not find component for %s", pointer)
                unresolved.append(UnresolvedPointer(pointer, "component not found", service))
                continue

            bucket = components.setdefault(resolved.bucket, {})
            if resolved.name in bucket:
                continue

            value = copy.deepcopy(resolved.value)
            bucket[resolved.name] = value
            log.debug("Added component %s/%s", resolved.bucket, resolved.name)

            for found in extract_all_pointers(value):
                if found not in processed:
                    next_frontier.add(found)

        if next_frontier:
            log.debug("Found %d additional refs to resolve", len(next_frontier))
        frontier = next_frontier

    return ClosureResult(components=components, unresolved=unresolved)
