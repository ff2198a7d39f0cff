# wincompat/core/logging/setup.py
from __future__ import annotations
import logging
import logging.handlers

from wincompat.app.settings import settings, settingsBool, settingsNumber
from .formatters import DevFormatter, JsonFormatter, RedactingFormatter
from .filters import RecurringSuppressFilter

__all__ = [
    "LIBRARY_LOGGER",
    "configureLogging",
    "getLogger",
]

LIBRARY_LOGGER = "wincompat"

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5



def configureLogging(*, devMode: bool | None = None, logFile: str | None = None) -> logging.Logger:
    """
    Install handlers on the "wincompat" logger and stop it propagating. For
    host applications and scripts; the library never calls this itself and
    the root logger is left alone.

    devMode logs DEBUG, otherwise INFO. The console gets DevFormatter lines
    (JSON when `logging.json` is set); `logFile` gets rotated JSON lines.
    Every handler masks credentials from spawned-process environments, and
    `logging.suppressRecurring` throttles the repeats a process-table scan
    produces. Arguments left as None come from settings.
    """
    if devMode is None:
        devMode = settingsBool("logging.devMode", False)
    if logFile is None:
        logFile = settings("logging.file", None)
    level = logging.DEBUG if devMode else logging.INFO

    lib = logging.getLogger(LIBRARY_LOGGER)
    for old in list(lib.handlers):
        lib.removeHandler(old)
        old.close()
    lib.setLevel(level)
    lib.propagate = False

    console = logging.StreamHandler()
    console.setFormatter(JsonFormatter() if settingsBool("logging.json", False) else DevFormatter())
    handlers: list[logging.Handler] = [console]
    if logFile:
        rotating = logging.handlers.RotatingFileHandler(
            str(logFile), maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8"
        )
        rotating.setFormatter(JsonFormatter())
        handlers.append(rotating)

    throttle = None
    if settingsBool("logging.suppressRecurring.enabled", False):
        throttle = RecurringSuppressFilter(
            windowSeconds=settingsNumber("logging.suppressRecurring.windowSeconds", 60),
            maxPerWindow=int(settingsNumber("logging.suppressRecurring.maxPerWindow", 5)),
        )

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(RedactingFormatter(handler.formatter))
        if throttle is not None:
            handler.addFilter(throttle)
        lib.addHandler(handler)
    return lib



def getLogger(name: str) -> logging.Logger:
    """Logger under the "wincompat" tree; `getLogger("overlays")` is "wincompat.overlays"."""
    name = str(name).strip()
    if name == LIBRARY_LOGGER or name.startswith(LIBRARY_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LIBRARY_LOGGER}.{name}")
