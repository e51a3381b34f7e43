from __future__ import annotations
from typing import Any, List


def ensure_list(obj: Any) -> List[Any]:
    """Ensure object is a list. If None, return empty list. If already list, return as-is."""
    if obj is None:
        return []
    if isinstance(obj, list):
        return obj
    return [obj]


def ensure_str_list(obj: Any) -> List[str]:
    """Like ensure_list, but drops empty entries and coerces the rest to stripped strings."""
    return [str(x).strip() for x in ensure_list(obj) if x is not None and str(x).strip()]
