# wincompat/prefix/prefix.py
from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

__all__ = ["WineArch", "Prefix", "asPrefix"]



class WineArch(str, Enum):
    WIN32 = "win32"
    WIN64 = "win64"

    @classmethod
    def fromStr(cls, value: str) -> WineArch | None:
        """Returns the arch for "win32"/"win64", None for anything else."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None

    def __str__(self) -> str:
        return self.value



@dataclass(frozen=True)
class Prefix:
    """
    An isolated Windows environment on disk (WINEPREFIX).

    Pure path logic: nothing here creates, modifies or deletes files.
    `arch` is the architecture the prefix was created with; it decides
    where 32-bit libraries live inside a 64-bit prefix.
    """
    path: Path
    arch: WineArch = WineArch.WIN64

    def __post_init__(self) -> None:
        # Absolute, normalised, but symlinks are kept as given
        object.__setattr__(self, "path", Path(os.path.abspath(os.path.expanduser(str(self.path)))))
        if not isinstance(self.arch, WineArch):
            arch = WineArch.fromStr(str(self.arch))
            if arch is None:
                raise ValueError(f"Unknown prefix architecture {self.arch!r}")
            object.__setattr__(self, "arch", arch)

    @property
    def driveRoot(self) -> Path:
        return self.path / "drive_c"

    @property
    def windowsDir(self) -> Path:
        return self.driveRoot / "windows"

    @property
    def fontDir(self) -> Path:
        return self.windowsDir / "Fonts"

    def libraryDir(self, arch: WineArch | str | None = None) -> Path:
        """
        Directory holding system libraries for `arch` (defaults to the prefix arch).

        win64 prefix: 64-bit -> system32, 32-bit -> syswow64
        win32 prefix: everything -> system32
        """
        if arch is None:
            target = self.arch
        elif isinstance(arch, WineArch):
            target = arch
        else:
            parsed = WineArch.fromStr(arch)
            if parsed is None:
                raise ValueError(f"Unknown architecture {arch!r}")
            target = parsed
        if self.arch == WineArch.WIN64 and target == WineArch.WIN32:
            return self.windowsDir / "syswow64"
        return self.windowsDir / "system32"

    def exists(self) -> bool:
        return self.path.is_dir()

    def isInitialized(self) -> bool:
        """True once the runtime has booted the prefix (system32 is present)."""
        return (self.windowsDir / "system32").is_dir()

    def __str__(self) -> str:
        return str(self.path)



def asPrefix(value: Prefix | str | os.PathLike[str], arch: WineArch | str | None = None) -> Prefix:
    """Coerce a path or Prefix into a Prefix. An explicit `arch` overrides the Prefix's own."""
    if isinstance(value, Prefix):
        if arch is None:
            return value
        return Prefix(value.path, arch)  # type: ignore[arg-type]
    return Prefix(Path(value), arch or WineArch.WIN64)  # type: ignore[arg-type]
