# wincompat/runtimes/shared_libraries.py
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Literal

__all__ = ["WINE_LIB_DIRS", "GSTREAMER_LIB_DIRS", "WineSharedLibs", "GstreamerSharedLibs"]



# Sub-directories of a wine build that hold its unix-side libraries
WINE_LIB_DIRS: tuple[str, ...] = (
    "lib",
    "lib64",
    "lib/wine/x86_64-unix",
    "lib32/wine/x86_64-unix",
    "lib64/wine/x86_64-unix",
    "lib/wine/i386-unix",
    "lib32/wine/i386-unix",
    "lib64/wine/i386-unix",
)

GSTREAMER_LIB_DIRS: tuple[str, ...] = (
    "lib64/gstreamer-1.0",
    "lib/gstreamer-1.0",
    "lib32/gstreamer-1.0",
)

LibsMode = Literal["none", "standard", "custom"]



@dataclass(frozen=True)
class _SharedLibs:
    """
    Search-path policy for one environment variable.

    - none:      don't set the variable
    - standard:  the standard sub-directories of a build folder
    - custom:    exactly the given directories
    """
    mode: LibsMode = "none"
    paths: tuple[Path, ...] = ()

    STANDARD_DIRS: ClassVar[tuple[str, ...]] = ()
    VARIABLE: ClassVar[str] = ""

    @classmethod
    def none(cls):
        return cls("none", ())

    @classmethod
    def standard(cls, buildDir: str | os.PathLike[str]):
        return cls("standard", (Path(buildDir),))

    @classmethod
    def custom(cls, paths):
        return cls("custom", tuple(Path(path) for path in paths))

    def searchPaths(self) -> list[Path]:
        if self.mode == "standard":
            return [self.paths[0] / sub for sub in self.STANDARD_DIRS]
        if self.mode == "custom":
            return list(self.paths)
        return []

    def value(self) -> str | None:
        """Colon-joined search path, or None when the variable should stay unset."""
        if self.mode == "none":
            return None
        return os.pathsep.join(str(path) for path in self.searchPaths())

    def environment(self) -> dict[str, str]:
        value = self.value()
        return {} if value is None else {self.VARIABLE: value}



@dataclass(frozen=True)
class WineSharedLibs(_SharedLibs):
    STANDARD_DIRS: ClassVar[tuple[str, ...]] = WINE_LIB_DIRS
    VARIABLE: ClassVar[str] = "LD_LIBRARY_PATH"



@dataclass(frozen=True)
class GstreamerSharedLibs(_SharedLibs):
    STANDARD_DIRS: ClassVar[tuple[str, ...]] = GSTREAMER_LIB_DIRS
    VARIABLE: ClassVar[str] = "GST_PLUGIN_PATH"
