# wincompat/runtimes/proton.py
from __future__ import annotations
import os
from collections.abc import Sequence
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Literal, cast

from wincompat.prefix.prefix import Prefix, WineArch
from wincompat.runtimes.base import Runtime
from wincompat.runtimes.wine import Wine, WineLoader

__all__ = ["Proton", "ProtonVerb", "PROTON_VERBS", "compatLayout"]


ProtonVerb = Literal["run", "runinprefix", "waitforexitandrun"]
PROTON_VERBS: tuple[str, ...] = ("run", "runinprefix", "waitforexitandrun")



def compatLayout(path: Path) -> tuple[Path, Path]:
    """
    (compat data folder, wine prefix) for a path naming either of them.

    It is the compat data folder when it doesn't exist yet, has a `pfx`
    child, or has no `drive_c`; otherwise it's the wine prefix and its
    parent is the compat data folder.
    """
    if not path.exists() or (path / "pfx").exists() or not (path / "drive_c").exists():
        return path, path / "pfx"
    return path.parent, path



@dataclass(frozen=True)
class Proton(Runtime):
    """
    A Proton bundle: a wine build plus the `proton` python launcher.

    Compat data layout (STEAM_COMPAT_DATA_PATH):

        <protonPrefix>/
            pfx.lock
            version
            pfx/            <- the wine prefix
    """
    path: Path
    wine: Wine | None = None
    protonPrefix: Path | None = None
    steamClientPath: Path | None = None
    steamAppId: int = 0
    python: Path = Path("python3")
    launchVerb: ProtonVerb = "run"

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path))
        if self.launchVerb not in PROTON_VERBS:
            raise ValueError(f"Unknown proton verb {self.launchVerb!r}")
        if self.protonPrefix is not None:
            object.__setattr__(self, "protonPrefix", Path(os.path.abspath(os.path.expanduser(str(self.protonPrefix)))))
        if self.wine is None:
            wine = Wine(
                binary=self.path / "files" / "bin" / "wine64",
                arch=WineArch.WIN64,
                wineserver=self.path / "files" / "bin" / "wineserver",
                loader=WineLoader.current(),
            )
            if self.protonPrefix is not None:
                wine = wine.withPrefix(self.protonPrefix / "pfx")
            object.__setattr__(self, "wine", wine)

    @classmethod
    def fromBundle(cls, path: str | os.PathLike[str], protonPrefix: str | os.PathLike[str] | None = None) -> Proton:
        return cls(path=Path(path), protonPrefix=Path(protonPrefix) if protonPrefix is not None else None)

    @property
    def innerWine(self) -> Wine:
        # Never None once __post_init__ has run
        return cast(Wine, self.wine)

    # ------------------------------------------------------------------ #
    # Builders
    # ------------------------------------------------------------------ #

    def withPrefix(self, prefix: Prefix | str | os.PathLike[str]) -> Proton:
        """Accepts either the compat data folder or the wine prefix inside it; see compatLayout."""
        target = prefix.path if isinstance(prefix, Prefix) else Path(os.path.abspath(os.path.expanduser(str(prefix))))
        compatData, winePrefix = compatLayout(target)
        return replace(self, protonPrefix=compatData, wine=self.innerWine.withPrefix(winePrefix))

    def withArch(self, arch: WineArch | str) -> Proton:
        return replace(self, wine=self.innerWine.withArch(arch))

    def withServer(self, wineserver: str | os.PathLike[str]) -> Proton:
        return replace(self, wine=self.innerWine.withServer(wineserver))

    def withLoader(self, loader: WineLoader) -> Proton:
        return replace(self, wine=self.innerWine.withLoader(loader))

    def withBoot(self, wineboot: str | os.PathLike[str]) -> Proton:
        return replace(self, wine=self.innerWine.withBoot(wineboot))

    def withSteamClient(self, path: str | os.PathLike[str]) -> Proton:
        return replace(self, steamClientPath=Path(path))

    def withAppId(self, appId: int) -> Proton:
        return replace(self, steamAppId=int(appId))

    def withVerb(self, verb: ProtonVerb) -> Proton:
        return replace(self, launchVerb=verb)

    # ------------------------------------------------------------------ #
    # Runtime
    # ------------------------------------------------------------------ #

    @property
    def prefix(self) -> Prefix | None:
        return self.innerWine.prefix

    def executable(self) -> Path:
        return self.python

    def launchCommand(self, command: str, args: Sequence[str] = ()) -> list[str]:
        return [str(self.python), str(self.path / "proton"), self.launchVerb, str(command), *(str(arg) for arg in args)]

    def blockingCommand(self, args: Sequence[str]) -> list[str]:
        return self.innerWine.blockingCommand(args)

    def environment(self, prefix: Prefix | None = None) -> dict[str, str]:
        """Wine variables plus STEAM_COMPAT_DATA_PATH, STEAM_COMPAT_CLIENT_INSTALL_PATH and SteamAppId."""
        compatData = self.protonPrefix
        if prefix is not None:
            compatData, winePrefix = compatLayout(prefix.path)
            prefix = Prefix(winePrefix, prefix.arch)
        env = self.innerWine.environment(prefix)
        if compatData is not None:
            env["STEAM_COMPAT_DATA_PATH"] = str(compatData)
        if self.steamClientPath is not None:
            env["STEAM_COMPAT_CLIENT_INSTALL_PATH"] = str(self.steamClientPath)
        env["SteamAppId"] = str(self.steamAppId)
        return env

    def version(self, timeout: float | None = None) -> str:
        return self.innerWine.version(timeout)

    def winepath(self, windowsPath: str, *, prefix: Prefix | None = None) -> Path:
        return self.innerWine.winepath(windowsPath, prefix=prefix)
