# wincompat/runtimes/winetricks.py
from __future__ import annotations
import logging
import os
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path

from wincompat.core.errors import RuntimeCommandError
from wincompat.prefix.prefix import WineArch
from wincompat.runtimes.base import runCaptured
from wincompat.runtimes.proton import Proton
from wincompat.runtimes.wine import Wine

__all__ = ["Winetricks", "WinetricksResult"]

logger = logging.getLogger(__name__)

# winetricks prints this line before running each verb
_LOAD_RE = re.compile(r"^Executing load_([A-Za-z0-9_\-.=]+)", re.MULTILINE)



@dataclass(frozen=True)
class WinetricksResult:
    verbs: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    executed: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def check(self) -> WinetricksResult:
        """Raise RuntimeCommandError unless the invocation succeeded."""
        if not self.ok:
            raise RuntimeCommandError(
                f"install winetricks verbs {' '.join(self.verbs)}",
                self.returncode,
                self.stderr or self.stdout,
            )
        return self



@dataclass(frozen=True)
class Winetricks:
    """The `winetricks` helper script bound to a wine build and prefix."""
    script: Path
    wineserver: Path | None = None
    wineloader: Path | None = None
    wineprefix: Path | None = None
    arch: WineArch | None = None
    shell: str = "bash"

    @classmethod
    def fromRuntime(cls, script: str | os.PathLike[str], runtime: Wine | Proton) -> Winetricks:
        wine = runtime.innerWine if isinstance(runtime, Proton) else runtime
        return cls(
            script=Path(script),
            wineserver=wine.wineserverPath(),
            wineloader=wine.binary if wine.loader.mode == "default" else wine.wineloaderPath(),
            wineprefix=runtime.prefix.path if runtime.prefix is not None else None,
            arch=wine.arch,
        )

    def withServer(self, wineserver: str | os.PathLike[str]) -> Winetricks:
        return replace(self, wineserver=Path(wineserver))

    def withLoader(self, wineloader: str | os.PathLike[str]) -> Winetricks:
        return replace(self, wineloader=Path(wineloader))

    def withPrefix(self, wineprefix: str | os.PathLike[str]) -> Winetricks:
        return replace(self, wineprefix=Path(wineprefix))

    def withArch(self, arch: WineArch) -> Winetricks:
        return replace(self, arch=arch)

    def environment(self) -> dict[str, str]:
        env: dict[str, str] = {}
        if self.wineserver is not None:
            env["WINESERVER"] = str(self.wineserver)
        if self.wineloader is not None:
            env["WINELOADER"] = str(self.wineloader)
            env["WINE"] = str(self.wineloader)
            if self.arch == WineArch.WIN64:
                env["WINE64"] = str(self.wineloader)
        if self.wineprefix is not None:
            env["WINEPREFIX"] = str(self.wineprefix)
        if self.arch is not None:
            env["WINEARCH"] = self.arch.value
        return env

    def command(self, verbs: Sequence[str], args: Sequence[str] = ("-q",)) -> list[str]:
        return [self.shell, str(self.script), *args, *verbs]

    def install(
        self,
        verbs: Sequence[str] | str,
        args: Sequence[str] = ("-q",),
        environment: Mapping[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> WinetricksResult:
        """Run winetricks once for all `verbs`. A failing exit status is returned, not raised."""
        verbList = (verbs,) if isinstance(verbs, str) else tuple(verbs)
        logger.info("Running winetricks %s in '%s'", " ".join(verbList), self.wineprefix)
        result = runCaptured(self.command(verbList, args), self.environment(), environment, timeout=timeout)
        executed = tuple(_LOAD_RE.findall(result.stdout or ""))
        if result.returncode != 0:
            logger.warning("winetricks %s exited with %s", " ".join(verbList), result.returncode)
        return WinetricksResult(
            verbs=verbList,
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            executed=executed,
        )
