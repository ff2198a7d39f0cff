# wincompat/runtimes/base.py
from __future__ import annotations
import logging
import os
import subprocess
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from pathlib import Path

from wincompat.core.errors import SpawnError
from wincompat.core.redaction import redactEnvironment
from wincompat.prefix.prefix import Prefix

__all__ = ["Runtime", "mergeEnvironment", "runCaptured"]

logger = logging.getLogger(__name__)



def mergeEnvironment(
    scoped: Mapping[str, str],
    caller: Mapping[str, str] | None = None,
    inherited: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """inherited < caller < prefix-scoped. `inherited` defaults to os.environ."""
    env = dict(os.environ if inherited is None else inherited)
    if caller:
        env.update({str(key): str(value) for key, value in caller.items()})
    env.update({str(key): str(value) for key, value in scoped.items()})
    return env



class Runtime(ABC):
    """
    A compatibility runtime able to execute Windows binaries against a prefix.

    Subclasses describe how to build the command line and which
    environment binds a process to a prefix; spawning and supervision
    live in wincompat.supervisor.
    """

    @property
    @abstractmethod
    def prefix(self) -> Prefix | None:
        """Prefix this runtime targets when the caller doesn't name one."""

    @abstractmethod
    def executable(self) -> Path:
        """First element of every launch command."""

    @abstractmethod
    def launchCommand(self, command: str, args: Sequence[str] = ()) -> list[str]:
        """argv that runs `command args...` on the Windows side."""

    @abstractmethod
    def blockingCommand(self, args: Sequence[str]) -> list[str]:
        """argv for short-lived helper invocations (reg, winepath, wineboot...)."""

    @abstractmethod
    def environment(self, prefix: Prefix | None = None) -> dict[str, str]:
        """Prefix-scoped variables for `prefix` (or the runtime's own prefix)."""

    def runBlocking(
        self,
        args: Sequence[str],
        environment: Mapping[str, str] | None = None,
        *,
        prefix: Prefix | None = None,
        timeout: float | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """
        Run a helper command to completion and capture its output as text.

        Returns the CompletedProcess whatever the exit status; callers decide
        what failure means. Raises SpawnError when the process can't start.
        """
        scoped = self.environment(prefix)
        return runCaptured(self.blockingCommand(args), scoped, environment, timeout=timeout)



def runCaptured(
    cmd: Sequence[str],
    scoped: Mapping[str, str],
    caller: Mapping[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> subprocess.CompletedProcess[str]:
    cmd = [str(part) for part in cmd]
    logger.debug("Running %s with %s", cmd, redactEnvironment(scoped))
    try:
        return subprocess.run(
            cmd,
            env=mergeEnvironment(scoped, caller),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except OSError as err:
        raise SpawnError(cmd, err) from err
