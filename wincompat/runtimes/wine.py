# wincompat/runtimes/wine.py
from __future__ import annotations
import logging
import os
import shutil
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal

from wincompat.app.settings import settingsNumber
from wincompat.core.errors import NotFoundError, RuntimeCommandError, SpawnError
from wincompat.prefix.prefix import Prefix, WineArch, asPrefix
from wincompat.runtimes.base import Runtime
from wincompat.runtimes.shared_libraries import GstreamerSharedLibs, WineSharedLibs

__all__ = ["WineLoader", "Wine"]

logger = logging.getLogger(__name__)



@dataclass(frozen=True)
class WineLoader:
    """
    How WINELOADER is set:

    - default: leave it unset, wine falls back to the system-wide binary
    - current: the runtime's own binary
    - custom:  an explicit path
    """
    mode: Literal["default", "current", "custom"] = "default"
    path: Path | None = None

    @classmethod
    def default(cls) -> WineLoader:
        return cls("default")

    @classmethod
    def current(cls) -> WineLoader:
        return cls("current")

    @classmethod
    def custom(cls, path: str | os.PathLike[str]) -> WineLoader:
        return cls("custom", Path(path))



@dataclass(frozen=True)
class Wine(Runtime):
    """
    A wine build: where its binaries are and which prefix it targets.

    Immutable; the with*() helpers return modified copies:

        wine = Wine.fromBinary("/opt/wine-ge/bin/wine64").withArch("win64").withPrefix("~/Games/pfx")
    """
    binary: Path = Path("wine")
    winePrefix: Prefix | None = None
    arch: WineArch | None = None
    wineboot: Path | None = None
    wineserver: Path | None = None
    loader: WineLoader = field(default_factory=WineLoader.default)
    wineLibs: WineSharedLibs = field(default_factory=WineSharedLibs.none)
    gstreamerLibs: GstreamerSharedLibs = field(default_factory=GstreamerSharedLibs.none)

    def __post_init__(self) -> None:
        object.__setattr__(self, "binary", Path(self.binary))
        if self.arch is not None and not isinstance(self.arch, WineArch):
            arch = WineArch.fromStr(str(self.arch))
            if arch is None:
                raise ValueError(f"Unknown wine architecture {self.arch!r}")
            object.__setattr__(self, "arch", arch)
        if self.winePrefix is not None and not isinstance(self.winePrefix, Prefix):
            object.__setattr__(self, "winePrefix", asPrefix(self.winePrefix, self.arch))

    @classmethod
    def fromBinary(cls, binary: str | os.PathLike[str]) -> Wine:
        return cls(binary=Path(binary))

    # ------------------------------------------------------------------ #
    # Builders
    # ------------------------------------------------------------------ #

    def withPrefix(self, prefix: Prefix | str | os.PathLike[str]) -> Wine:
        return replace(self, winePrefix=asPrefix(prefix, self.arch if not isinstance(prefix, Prefix) else None))

    def withArch(self, arch: WineArch | str) -> Wine:
        parsed = arch if isinstance(arch, WineArch) else WineArch.fromStr(arch)
        if parsed is None:
            raise ValueError(f"Unknown wine architecture {arch!r}")
        prefix = asPrefix(self.winePrefix, parsed) if self.winePrefix is not None else None
        return replace(self, arch=parsed, winePrefix=prefix)

    def withBoot(self, wineboot: str | os.PathLike[str]) -> Wine:
        return replace(self, wineboot=Path(wineboot))

    def withServer(self, wineserver: str | os.PathLike[str]) -> Wine:
        return replace(self, wineserver=Path(wineserver))

    def withLoader(self, loader: WineLoader) -> Wine:
        return replace(self, loader=loader)

    def withWineLibs(self, libs: WineSharedLibs) -> Wine:
        return replace(self, wineLibs=libs)

    def withGstreamerLibs(self, libs: GstreamerSharedLibs) -> Wine:
        return replace(self, gstreamerLibs=libs)

    # ------------------------------------------------------------------ #
    # Binary lookup
    # ------------------------------------------------------------------ #

    @property
    def prefix(self) -> Prefix | None:
        return self.winePrefix

    def executable(self) -> Path:
        return self.binary

    def resolvedBinary(self) -> Path | None:
        """Absolute path of the wine binary (PATH lookup for bare names), None if missing."""
        found = shutil.which(str(self.binary))
        return Path(found) if found else None

    def innerBinary(self, name: str) -> Path:
        """`name` next to the wine binary when the build ships it, else the bare name."""
        parent = self.binary.parent
        if str(parent) not in ("", "."):
            candidate = parent / name
            if candidate.exists():
                return candidate
        return Path(name)

    def winebootPath(self) -> Path:
        return self.wineboot or self.innerBinary("wineboot")

    def winebootCommand(self) -> list[str]:
        """
        argv prefix for wineboot: the explicit or sibling binary when it exists,
        else `wine wineboot`.
        """
        path = self.winebootPath()
        if path.exists():
            return [str(path)]
        return [str(self.binary), "wineboot"]

    def wineserverPath(self) -> Path:
        return self.wineserver or self.innerBinary("wineserver")

    def wineloaderPath(self) -> Path:
        if self.loader.mode == "current":
            return self.binary
        if self.loader.mode == "custom" and self.loader.path is not None:
            return self.loader.path
        return Path("wine")

    # ------------------------------------------------------------------ #
    # Commands and environment
    # ------------------------------------------------------------------ #

    def launchCommand(self, command: str, args: Sequence[str] = ()) -> list[str]:
        return [str(self.binary), str(command), *(str(arg) for arg in args)]

    def blockingCommand(self, args: Sequence[str]) -> list[str]:
        return [str(self.binary), *(str(arg) for arg in args)]

    def environment(self, prefix: Prefix | None = None) -> dict[str, str]:
        """
        Variables binding a process to this build and prefix:
        WINEPREFIX, WINEARCH, WINESERVER, WINELOADER, LD_LIBRARY_PATH, GST_PLUGIN_PATH.
        Only what is configured is set.
        """
        env: dict[str, str] = {}
        target = prefix or self.winePrefix
        if target is not None:
            env["WINEPREFIX"] = str(target.path)
        if self.arch is not None:
            env["WINEARCH"] = self.arch.value
        if self.wineserver is not None:
            env["WINESERVER"] = str(self.wineserver)
        if self.loader.mode != "default":
            env["WINELOADER"] = str(self.wineloaderPath())
        env.update(self.wineLibs.environment())
        env.update(self.gstreamerLibs.environment())
        return env

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def version(self, timeout: float | None = None) -> str:
        """
        `wine --version` output, decoded as UTF-8 and trimmed
        (e.g. "wine-9.0 (Staging)").
        """
        if timeout is None:
            timeout = settingsNumber("runtime.versionTimeoutSeconds", 10)
        cmd = [str(self.binary), "--version"]
        try:
            result = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                timeout=timeout,
                check=False,
            )
        except FileNotFoundError as err:
            raise NotFoundError(self.binary, "wine binary") from err
        except (OSError, ValueError) as err:
            raise SpawnError(cmd, err) from err
        return result.stdout.decode("utf-8", errors="replace").strip()

    def winepath(self, windowsPath: str, *, prefix: Prefix | None = None) -> Path:
        """Unix path of a Windows path inside the prefix (`winepath -u`)."""
        result = self.runBlocking(["winepath", "-u", windowsPath], prefix=prefix)
        if result.returncode != 0:
            raise RuntimeCommandError("find wine path", result.returncode, result.stdout or result.stderr)

        path = Path(result.stdout.rstrip("\n"))
        if not path.exists():
            raise NotFoundError(path, "wine path")
        return path
