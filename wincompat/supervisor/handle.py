# wincompat/supervisor/handle.py
from __future__ import annotations
import time
from dataclasses import dataclass, field

import psutil

from wincompat.prefix.prefix import Prefix

__all__ = ["ProcessHandle"]



@dataclass(eq=False)
class ProcessHandle:
    """
    One process spawned by the supervisor.

    `environment` holds only the prefix-scoped variables the process was
    bound with; the full merged environment is not kept.
    """
    process: psutil.Popen
    prefix: Prefix
    command: list[str]
    environment: dict[str, str] = field(default_factory=dict)
    startedTs: float = field(default_factory=time.time)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    def poll(self) -> int | None:
        """Exit status if the process has exited (reaping it), else None."""
        return self.process.poll()

    def isRunning(self) -> bool:
        return self.poll() is None

    def __repr__(self) -> str:
        return f"ProcessHandle(pid={self.pid}, prefix='{self.prefix}', command={self.command!r})"
