# wincompat/runtimes/overrides.py
from __future__ import annotations
import logging
from collections.abc import Iterable
from enum import Enum

from wincompat.core.errors import RuntimeCommandError
from wincompat.prefix.prefix import Prefix
from wincompat.runtimes.base import Runtime

__all__ = ["OverrideMode", "DLL_OVERRIDES_KEY", "addOverride", "deleteOverride", "regAdd"]

logger = logging.getLogger(__name__)

DLL_OVERRIDES_KEY = "HKEY_CURRENT_USER\\Software\\Wine\\DllOverrides"



class OverrideMode(str, Enum):
    NATIVE = "native"
    BUILTIN = "builtin"
    DISABLED = "disabled"



def regAdd(runtime: Runtime, key: str, name: str, data: str, *, action: str, prefix: Prefix | None = None) -> None:
    """`reg add <key> /v <name> /d <data> /f`; RuntimeCommandError on failure."""
    result = runtime.runBlocking(["reg", "add", key, "/v", name, "/d", data, "/f"], prefix=prefix)
    if result.returncode != 0:
        raise RuntimeCommandError(action, result.returncode, result.stdout or result.stderr)



def addOverride(
    runtime: Runtime,
    dllName: str,
    modes: Iterable[OverrideMode | str] = (OverrideMode.NATIVE,),
    *,
    prefix: Prefix | None = None,
) -> None:
    """
    Set a DLL override in the prefix registry.
    `modes` are tried in order by the loader, e.g. (NATIVE, BUILTIN) -> "native,builtin".
    """
    value = ",".join(OverrideMode(mode).value for mode in modes)
    regAdd(runtime, DLL_OVERRIDES_KEY, dllName, value, action="add dll override", prefix=prefix)
    logger.info("DLL override %s=%s", dllName, value)



def deleteOverride(runtime: Runtime, dllName: str, *, prefix: Prefix | None = None) -> None:
    result = runtime.runBlocking(["reg", "delete", DLL_OVERRIDES_KEY, "/v", dllName, "/f"], prefix=prefix)
    if result.returncode != 0:
        raise RuntimeCommandError("remove dll override", result.returncode, result.stdout or result.stderr)
    logger.info("Removed DLL override %s", dllName)
