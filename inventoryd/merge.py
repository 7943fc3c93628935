"""
Untyped tree operations used by the identity loader.

Trees are what ``yaml.safe_load`` returns: dicts, lists, str, int, float,
bool and None. Both functions here are pure; inputs are never mutated.

Merge rules (applied recursively by ``deep_merge``):

- mapping onto mapping: merge key by key, overlay keys win, keys only in the
  base are kept
- ``None`` in the overlay: the base value is left unchanged
- anything else (lists, scalars, type mismatches): the overlay value replaces
  the base value wholesale; lists are never merged element-wise
"""

from copy import deepcopy
from typing import Any, Dict


def deep_merge(base: Any, overlay: Any) -> Any:
    """Return ``base`` with ``overlay`` merged on top of it."""
    if overlay is None:
        return deepcopy(base)
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged: Dict[Any, Any] = deepcopy(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = deep_merge(merged[key], value)
            else:
                merged[key] = deepcopy(value)
        return merged
    return deepcopy(overlay)


def remove_field_path(tree: Any, path: str) -> Any:
    """
    Return a copy of ``tree`` with the dot-separated ``path`` removed.

    Intermediate segments must name nested mappings; the last segment is
    deleted from its parent mapping. A missing key, or a path that runs
    through a non-mapping value, leaves the tree unchanged.
    """
    result = deepcopy(tree)
    segments = [segment for segment in path.split(".") if segment]
    if not segments:
        return result

    node = result
    for segment in segments[:-1]:
        if not isinstance(node, dict):
            return result
        node = node.get(segment)
    if isinstance(node, dict):
        node.pop(segments[-1], None)
    return result
