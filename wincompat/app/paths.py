# wincompat/app/paths.py
from __future__ import annotations
import os
from pathlib import Path

__all__ = ["SETTINGS_ENV_VAR", "userSettingsPath"]

SETTINGS_ENV_VAR = "WINCOMPAT_SETTINGS"



def userSettingsPath() -> Path:
    """~/.config/wincompat/settings.json5, or the file named by $WINCOMPAT_SETTINGS."""
    override = os.environ.get(SETTINGS_ENV_VAR)
    if override:
        return Path(override).expanduser()
    configHome = os.environ.get("XDG_CONFIG_HOME") or os.path.expanduser("~/.config")
    return Path(configHome) / "wincompat" / "settings.json5"
