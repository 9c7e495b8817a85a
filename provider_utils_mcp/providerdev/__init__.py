from .compose import effective_schema, merge_all_of, resolve_union_first_branch, strip_read_only
from .closure import compute_closure
from .engine import ProviderDevEngine
from .partition import ServicePartitioner, split
from .pointers import extract_all_pointers, resolve_pointer

__all__ = [
    "ProviderDevEngine",
    "ServicePartitioner",
    "compute_closure",
    "effective_schema",
    "extract_all_pointers",
    "merge_all_of",
    "resolve_pointer",
    "resolve_union_first_branch",
    "split",
    "strip_read_only",
]
