# wincompat/runtimes/boot.py
from __future__ import annotations
import logging
import os
import subprocess

from wincompat.core.errors import OverlayIoError, RuntimeCommandError, WincompatError
from wincompat.core.logging import setLogContext
from wincompat.prefix.prefix import Prefix, asPrefix
from wincompat.runtimes.base import runCaptured
from wincompat.runtimes.proton import Proton
from wincompat.runtimes.wine import Wine

__all__ = [
    "initPrefix",
    "updatePrefix",
    "stopProcesses",
    "restart",
    "shutdown",
    "endSession",
]

logger = logging.getLogger(__name__)

# Runtimes that ship a wineboot
BootRuntime = Wine | Proton



def _wineOf(runtime: BootRuntime) -> Wine:
    return runtime.innerWine if isinstance(runtime, Proton) else runtime



def _resolvePrefix(runtime: BootRuntime, prefix: Prefix | str | os.PathLike[str] | None) -> Prefix:
    if prefix is not None:
        return asPrefix(prefix, _wineOf(runtime).arch)
    if runtime.prefix is None:
        raise WincompatError("No prefix given and the runtime has none configured")
    return runtime.prefix



def _wineboot(
    runtime: BootRuntime,
    flag: str,
    action: str,
    prefix: Prefix | None = None,
    *,
    check: bool = True,
    timeout: float | None = None,
) -> subprocess.CompletedProcess[str]:
    cmd = [*_wineOf(runtime).winebootCommand(), flag]
    scoped = runtime.environment(prefix)
    setLogContext(prefix=scoped.get("WINEPREFIX"))
    result = runCaptured(cmd, scoped, timeout=timeout)
    if check and result.returncode != 0:
        raise RuntimeCommandError(action, result.returncode, result.stdout or result.stderr)
    logger.debug("wineboot %s finished with %s", flag, result.returncode)
    return result



def _ensureDir(prefix: Prefix) -> None:
    try:
        prefix.path.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        raise OverlayIoError(prefix.path, "create prefix directory", err) from err



def initPrefix(runtime: BootRuntime, prefix: Prefix | str | os.PathLike[str] | None = None, **kwargs) -> subprocess.CompletedProcess[str]:
    """Create a prefix (`wineboot -i`). Parent directories are created first."""
    target = _resolvePrefix(runtime, prefix)
    _ensureDir(target)
    logger.info("Initializing prefix '%s'", target)
    return _wineboot(runtime, "-i", "initialize prefix", target, **kwargs)



def updatePrefix(runtime: BootRuntime, prefix: Prefix | str | os.PathLike[str] | None = None, **kwargs) -> subprocess.CompletedProcess[str]:
    """Create or update a prefix (`wineboot -u`)."""
    target = _resolvePrefix(runtime, prefix)
    _ensureDir(target)
    logger.info("Updating prefix '%s'", target)
    return _wineboot(runtime, "-u", "update prefix", target, **kwargs)



def stopProcesses(runtime: BootRuntime, force: bool = False, **kwargs) -> subprocess.CompletedProcess[str]:
    """`wineboot -k`, or `-f` when forced."""
    return _wineboot(runtime, "-f" if force else "-k", "stop processes", **kwargs)



def restart(runtime: BootRuntime, **kwargs) -> subprocess.CompletedProcess[str]:
    return _wineboot(runtime, "-r", "restart", **kwargs)



def shutdown(runtime: BootRuntime, **kwargs) -> subprocess.CompletedProcess[str]:
    return _wineboot(runtime, "-s", "shut down", **kwargs)



def endSession(runtime: BootRuntime, **kwargs) -> subprocess.CompletedProcess[str]:
    return _wineboot(runtime, "-e", "end session", **kwargs)
