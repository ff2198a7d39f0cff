# wincompat/core/logging/formatters.py
from __future__ import annotations

import logging
from datetime import datetime, timezone

from wincompat.core.jsonutils import safeJsonDumps
from wincompat.core.redaction import redactText
from .context import CONTEXT_FIELDS, getLogContext

__all__ = ["RedactingFormatter", "JsonFormatter", "DevFormatter"]



class RedactingFormatter(logging.Formatter):
    """Lets `inner` render the record, then masks credentials in the result."""

    def __init__(self, inner: logging.Formatter):
        super().__init__()
        self.inner = inner

    def format(self, record: logging.LogRecord) -> str:
        return redactText(self.inner.format(record))



class JsonFormatter(logging.Formatter):
    """
    One JSON object per line. The active log context (prefix, overlay family,
    supervised pid...) goes under "ctx"; "src" is module:line of the call site.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
            "ctx": dict(getLogContext() or {}),
            "src": f"{record.module}:{record.lineno}",
        }
        if record.exc_info and record.exc_info[0] is not None:
            excType, excValue, _tb = record.exc_info
            entry["exc"] = {
                "type": excType.__name__,
                "message": str(excValue),
                "stack": self.formatException(record.exc_info),
            }
        if record.stack_info:
            entry["stack"] = self.formatStack(record.stack_info)
        return safeJsonDumps(entry)



class DevFormatter(logging.Formatter):
    """`LEVEL: [logger] message [prefix=... family=... pid=...]` for terminals."""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname}: [{record.name}] {record.getMessage()}"

        ctx = getLogContext() or {}
        tags = [f"{key}={ctx[key]}" for key in CONTEXT_FIELDS if ctx.get(key) not in (None, "")]
        if tags:
            line += " [" + " ".join(tags) + "]"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        if record.stack_info:
            line += "\n" + self.formatStack(record.stack_info)
        return line
