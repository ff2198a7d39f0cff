# wincompat/core/errors.py
from __future__ import annotations

from pathlib import Path

__all__ = [
    "WincompatError",
    "NotFoundError",
    "OverlayIoError",
    "IntegrityError",
    "CatalogueError",
    "SpawnError",
    "ProcessControlError",
    "RuntimeCommandError",
]



class WincompatError(Exception):
    """Base class for every error raised by wincompat."""
    pass



class NotFoundError(WincompatError, FileNotFoundError):
    """An expected file or binary is absent."""
    def __init__(self, path: str | Path, what: str = "file") -> None:
        self.path = Path(path)
        self.what = what
        super().__init__(f"{what} not found: {self.path}")



class OverlayIoError(WincompatError):
    """Read, write or permission failure while touching prefix files."""
    def __init__(self, path: str | Path, operation: str, cause: BaseException | None = None) -> None:
        self.path = Path(path)
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to {operation} '{self.path}'{detail}")



class IntegrityError(WincompatError):
    """File content does not match its reference fingerprint."""
    def __init__(self, path: str | Path, expected: str, actual: str) -> None:
        self.path = Path(path)
        self.expected = expected
        self.actual = actual
        super().__init__(f"Fingerprint mismatch for '{self.path}': expected {expected}, got {actual}")



class CatalogueError(WincompatError):
    """Overlay catalogue is malformed or does not know the requested entry."""
    pass



class SpawnError(WincompatError):
    """Launching a process failed (missing binary, permission denied...)."""
    def __init__(self, command: list[str], cause: BaseException | None = None) -> None:
        self.command = list(command)
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to spawn {self.command!r}{detail}")



class ProcessControlError(WincompatError):
    """Signalling or waiting on a supervised process failed."""
    def __init__(self, message: str, report: object | None = None) -> None:
        self.report = report
        super().__init__(message)



class RuntimeCommandError(WincompatError):
    """A blocking runtime command (wineboot, reg, winepath, winetricks...) exited with failure."""
    def __init__(self, action: str, returncode: int | None, output: str = "") -> None:
        self.action = action
        self.returncode = returncode
        self.output = output
        lines = output.rstrip().splitlines()
        lastLine = lines[-1] if lines else output
        super().__init__(f"Failed to {action} (exit code {returncode}): {lastLine}")
