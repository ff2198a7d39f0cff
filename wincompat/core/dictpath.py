# wincompat/core/dictpath.py
from __future__ import annotations
import re
from collections.abc import Mapping
from typing import Any

__all__ = ["getByPath", "hasPath"]

# Dots separate segments unless escaped: "logging\.file" is one key
_SEPARATOR_RE = re.compile(r"(?<!\\)\.")

_ABSENT = object()



def _resolve(data: Any, path: str) -> Any:
    if not isinstance(path, str) or not path or path.endswith("\\"):
        return _ABSENT
    node = data
    for raw in _SEPARATOR_RE.split(path):
        key = raw.replace("\\.", ".")
        if not key or not isinstance(node, Mapping) or key not in node:
            return _ABSENT
        node = node[key]
    return node



def getByPath(data: Any, path: str, default: Any = None) -> Any:
    """Value under dotted `path` in nested mappings; `default` when any segment is missing or the path is malformed."""
    found = _resolve(data, path)
    return default if found is _ABSENT else found



def hasPath(data: Any, path: str) -> bool:
    return _resolve(data, path) is not _ABSENT
