# wincompat/overlays/dxvk.py
from __future__ import annotations
import os
from pathlib import Path

from wincompat.core.errors import NotFoundError, OverlayIoError
from wincompat.prefix.prefix import Prefix, WineArch, asPrefix

__all__ = ["DXVK_MARKER", "DXVK_PROBES", "readDxvkVersion", "readEmbeddedVersion"]

# DXVK builds embed "DXVK: \0v<version>\0" in their DLLs
DXVK_MARKER = b"DXVK: \x00v"

# (file, window start, window end): where the marker sits in release builds
DXVK_PROBES: tuple[tuple[str, int, int], ...] = (
    ("dxgi.dll", 1_600_000, 1_700_000),
    ("d3d11.dll", 2_400_000, 2_500_000),
)



def readEmbeddedVersion(path: Path, start: int, end: int) -> str | None:
    """
    Version string following DXVK_MARKER inside bytes [start, end) of `path`.
    None when the file is too short for the window or has no marker there.
    """
    try:
        size = path.stat().st_size
        if size <= end:
            return None
        with path.open("rb") as file:
            file.seek(start)
            window = file.read(end - start)
            idx = window.find(DXVK_MARKER)
            if idx == -1:
                return None
            # The version may run past the window end
            file.seek(start + idx + len(DXVK_MARKER))
            tail = file.read(64)
    except FileNotFoundError as err:
        raise NotFoundError(path) from err
    except OSError as err:
        raise OverlayIoError(path, "read", err) from err

    version, _sep, _rest = tail.partition(b"\x00")
    return version.decode("ascii", errors="replace") or None



def readDxvkVersion(prefix: Prefix | str | os.PathLike[str]) -> str | None:
    """
    DXVK version applied to the prefix's 64-bit library dir, read from the
    DLLs themselves ("2.3.1"), or None when DXVK isn't applied.

    dxgi.dll is checked first, d3d11.dll only when dxgi.dll is absent.
    Raises NotFoundError when neither exists (likely not a prefix).
    """
    target = asPrefix(prefix)
    libraryDir = target.libraryDir(WineArch.WIN64)
    missing: Path | None = None
    for name, start, end in DXVK_PROBES:
        path = libraryDir / name
        if not path.is_file():
            missing = path
            continue
        return readEmbeddedVersion(path, start, end)
    raise NotFoundError(missing or libraryDir, "DXVK probe library")
