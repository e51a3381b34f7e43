from __future__ import annotations

import json
import re
from typing import Any, Dict, Type, TypeVar

T = TypeVar("T")

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)


def extract_json(text: str) -> Dict[str, Any]:
    """
    Best-effort JSON object extraction:
    - Accepts raw JSON
    - Or JSON wrapped in markdown fences
    - Or JSON embedded in surrounding prose (first '{' .. last '}')
    Returns {} when nothing parses to an object.
    """
    if not text:
        return {}

    s = text.strip()

    m = _FENCE_RE.match(s)
    if m:
        s = m.group(1).strip()

    try:
        data = json.loads(s)
        return data if isinstance(data, dict) else {}
    except ValueError:
        pass

    start = s.find("{")
    end = s.rfind("}")
    if start != -1 and end != -1 and end > start:
        try:
            data = json.loads(s[start : end + 1])
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    return {}


def validate_with_pydantic(data: Dict[str, Any], model_cls: Type[T]) -> T:
    """
    Validate dict against a Pydantic model class (v2 compatible).
    """
    return model_cls.model_validate(data)  # type: ignore[attr-defined]

