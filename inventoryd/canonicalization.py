"""
Canonical JSON encoding for inventoryd.

Every checksum in the report pipeline is computed over these bytes, so two
reports that are semantically identical always hash identically regardless
of dict insertion order or how they were produced (fresh collection, or
decoded back from the persisted report file).
"""

import json
import math
from datetime import datetime
from typing import Any, Dict, List, Union


def canonicalize(obj: Any) -> bytes:
    """
    Convert an object to canonical JSON bytes.

    Rules:
    - Object keys sorted lexicographically (Unicode code point order)
    - No whitespace between tokens (compact form)
    - UTF-8 encoding, non-ASCII emitted as-is
    - Arrays preserve order
    - datetimes must already be rendered as strings (see ``to_json_tree``)

    Returns:
        UTF-8 encoded bytes of canonical JSON
    """
    canonical = _canonicalize_value(obj)
    return json.dumps(
        canonical, separators=(',', ':'), ensure_ascii=False, allow_nan=False
    ).encode('utf-8')


def canonicalize_str(obj: Any) -> str:
    """Return canonical JSON as string."""
    return canonicalize(obj).decode('utf-8')


def _canonicalize_value(value: Any) -> Any:
    """Recursively canonicalize a value."""
    if value is None:
        return None
    elif isinstance(value, bool):
        return value
    elif isinstance(value, int):
        return value
    elif isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValueError(f"Cannot canonicalize non-finite float: {value!r}")
        return value
    elif isinstance(value, str):
        return value
    elif isinstance(value, dict):
        return _canonicalize_object(value)
    elif isinstance(value, (list, tuple)):
        return _canonicalize_array(value)
    elif isinstance(value, datetime):
        raise ValueError("Cannot canonicalize datetime: serialize to RFC3339 first")
    else:
        raise ValueError(f"Cannot canonicalize type: {type(value)}")


def _canonicalize_object(obj: Dict[str, Any]) -> Dict[str, Any]:
    """Sort keys lexicographically; keys must be strings."""
    for key in obj:
        if not isinstance(key, str):
            raise ValueError(f"Cannot canonicalize non-string key: {key!r}")
    return {k: _canonicalize_value(obj[k]) for k in sorted(obj.keys())}


def _canonicalize_array(arr: Union[List, tuple]) -> List:
    """Canonicalize an array, preserving order."""
    return [_canonicalize_value(item) for item in arr]


def to_json_tree(model: Any) -> Any:
    """
    Render a pydantic model (or plain value) into a JSON-compatible tree.

    Models are dumped in JSON mode so datetimes become RFC3339 strings and
    the tree is exactly what would be read back from disk.
    """
    if hasattr(model, "model_dump"):
        return model.model_dump(mode="json")
    return model
