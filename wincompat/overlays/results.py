# wincompat/overlays/results.py
from __future__ import annotations
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Union

from wincompat.overlays.manifest import OverlayVersion
from wincompat.runtimes.base import Runtime

__all__ = [
    "Applied",
    "NotApplied",
    "OverlayStatus",
    "InstallOutcome",
    "InstallOptions",
    "InstallResult",
    "UninstallOutcome",
    "UninstallOptions",
    "UninstallResult",
]



@dataclass(frozen=True)
class Applied:
    version: OverlayVersion

    def __bool__(self) -> bool:
        return True



@dataclass(frozen=True)
class NotApplied:
    family: str

    def __bool__(self) -> bool:
        return False



OverlayStatus = Union[Applied, NotApplied]



class InstallOutcome(str, Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    PARTIALLY_APPLIED = "partially_applied"



class UninstallOutcome(str, Enum):
    REMOVED = "removed"
    NOT_APPLIED = "not_applied"



@dataclass(frozen=True)
class InstallOptions:
    """
    sourceDir: extracted overlay archive holding the files to place
    force:     reinstall even when the version is already applied
    runtime:   sets the version's DLL overrides in the prefix registry;
               without one the registry is left alone
    """
    sourceDir: Path
    force: bool = False
    runtime: Runtime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "sourceDir", Path(os.path.expanduser(str(self.sourceDir))))



@dataclass(frozen=True)
class UninstallOptions:
    # Also delete unrecognised files at managed paths that have no backup
    force: bool = False
    # Removes the DLL overrides the install set
    runtime: Runtime | None = None



@dataclass(frozen=True)
class InstallResult:
    outcome: InstallOutcome
    version: OverlayVersion
    written: tuple[Path, ...] = ()
    backedUp: tuple[Path, ...] = ()
    retired: tuple[Path, ...] = ()
    overrides: tuple[str, ...] = ()
    failedPath: Path | None = None
    error: BaseException | None = field(default=None, compare=False)

    @property
    def ok(self) -> bool:
        return self.outcome != InstallOutcome.PARTIALLY_APPLIED



@dataclass(frozen=True)
class UninstallResult:
    outcome: UninstallOutcome
    family: str
    version: OverlayVersion | None = None
    restored: tuple[Path, ...] = ()
    removed: tuple[Path, ...] = ()
    overrides: tuple[str, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.restored or self.removed)
