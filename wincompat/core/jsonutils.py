# wincompat/core/jsonutils.py
from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from enum import Enum
from pathlib import PurePath
from typing import Any

from pydantic import BaseModel

__all__ = ["safeJsonDumps", "jsonFallback"]



def jsonFallback(value: Any) -> Any:
    """`default=` hook for json.dumps: prefix paths, WineArch and outcome enums, models, report dataclasses."""
    if isinstance(value, PurePath):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return repr(value)



def safeJsonDumps(obj: object) -> str:
    """
    Compact single-line JSON. Values json can't encode go through
    jsonFallback; NaN, infinities and cycles degrade to the repr of `obj`.
    """
    try:
        return json.dumps(obj, default=jsonFallback, ensure_ascii=False, allow_nan=False, separators=(",", ":"))
    except ValueError:
        return json.dumps(repr(obj), ensure_ascii=False)
