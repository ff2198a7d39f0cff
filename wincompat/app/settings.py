# wincompat/app/settings.py
from __future__ import annotations
import logging
from functools import lru_cache
from typing import Any

import json5
from pydantic import JsonValue

from wincompat.app.paths import userSettingsPath
from wincompat.core.dictpath import getByPath

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_SETTINGS", "loadUserSettings", "loadSettings", "reloadSettings",
    "deepMerge", "settings", "settingsBool", "settingsNumber",
]


# Every key the library reads; the user file only needs the ones it changes
DEFAULT_SETTINGS: dict[str, JsonValue] = {
    "supervisor": {
        "stopGraceSeconds": 5.0,
        "coordinatorNames": ["wineserver"],
        "scanEnvironment": True,
    },
    "runtime": {"versionTimeoutSeconds": 10},
    "logging": {
        "devMode": False,
        "file": None,
        "json": False,
        "suppressRecurring": {"enabled": False, "windowSeconds": 60, "maxPerWindow": 5},
    },
}



def loadUserSettings() -> dict[str, JsonValue]:
    """
    Parsed user settings file (JSON5), or {} when it is absent. An unreadable
    file or one whose top level isn't an object is logged and ignored, so a
    typo never stops a game from launching.
    """
    path = userSettingsPath()
    if not path.is_file():
        return {}
    try:
        data = json5.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as err:
        logger.error("Ignoring settings file '%s': %s", path, err)
        return {}
    if not isinstance(data, dict):
        logger.error("Ignoring settings file '%s': top level must be an object, got %s", path, type(data).__name__)
        return {}
    return data



@lru_cache(maxsize=1)
def loadSettings() -> JsonValue:
    return deepMerge(DEFAULT_SETTINGS, loadUserSettings())



def reloadSettings() -> JsonValue:
    """Forget the cached merge and read the user file again."""
    loadSettings.cache_clear()
    return loadSettings()



def deepMerge(base: JsonValue, override: JsonValue) -> JsonValue:
    """
    New value with `override` layered over `base`. Objects merge key by key;
    anything else (lists included) in `override` replaces what `base` had.
    Neither argument is modified.
    """
    if not (isinstance(base, dict) and isinstance(override, dict)):
        return override
    merged = dict(base)
    for key, value in override.items():
        merged[key] = deepMerge(merged[key], value) if key in merged else value
    return merged



def settings(path: str, default: Any = None) -> Any:
    """Value at dotted `path` in the merged settings; `default` when missing or null."""
    value = getByPath(loadSettings(), path)
    return default if value is None else value



def settingsBool(path: str, default: bool = False) -> bool:
    value = settings(path)
    return default if value is None else bool(value)



def settingsNumber(path: str, default: float) -> float:
    """Numeric setting as float. Non-numeric values are logged and replaced by `default`."""
    value = settings(path)
    if value is None:
        return float(default)
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Setting '%s' should be a number, got %r; using %s", path, value, default)
        return float(default)
