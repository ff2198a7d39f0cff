# wincompat/core/logging/context.py
from __future__ import annotations
import contextvars

__all__ = ["CONTEXT_FIELDS", "setLogContext", "clearLogContext", "getLogContext"]

# Rendered by DevFormatter in this order; JsonFormatter keeps every key
CONTEXT_FIELDS = ("prefix", "family", "pid", "operation")

_current: contextvars.ContextVar[dict[str, object] | None] = contextvars.ContextVar("wincompat.logContext", default=None)



def setLogContext(**fields: object) -> None:
    """
    Attach fields to every record logged from this thread or task. None values
    are skipped, so `setLogContext(prefix=p, pid=None)` leaves an earlier pid alone.
    """
    merged = dict(_current.get() or {})
    merged.update({key: value for key, value in fields.items() if value is not None})
    _current.set(merged)



def clearLogContext() -> None:
    _current.set(None)



def getLogContext() -> dict[str, object] | None:
    return _current.get()
