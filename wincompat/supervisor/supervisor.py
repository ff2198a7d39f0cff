# wincompat/supervisor/supervisor.py
from __future__ import annotations
import logging
import os
import subprocess
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

import psutil

from wincompat.app.settings import settings, settingsBool, settingsNumber
from wincompat.core.errors import ProcessControlError, SpawnError, WincompatError
from wincompat.core.logging import setLogContext
from wincompat.core.redaction import redactEnvironment
from wincompat.prefix.prefix import Prefix, asPrefix
from wincompat.runtimes.base import Runtime, mergeEnvironment
from wincompat.supervisor.handle import ProcessHandle
from wincompat.supervisor.registry import ScopeRegistry, scopeKey

__all__ = ["ProcessSupervisor", "ProcessTree", "StopReport", "KILL_WAIT_SECONDS"]

logger = logging.getLogger(__name__)

# How long SIGKILLed processes get to disappear before they count as survivors
KILL_WAIT_SECONDS = 2.0



@dataclass
class ProcessTree:
    """Live processes sharing one prefix scope, split by the order they are stopped in."""
    prefix: Prefix
    targets: list[psutil.Process] = field(default_factory=list)
    coordinators: list[psutil.Process] = field(default_factory=list)

    @property
    def pids(self) -> list[int]:
        return [proc.pid for proc in (*self.targets, *self.coordinators)]

    def __len__(self) -> int:
        return len(self.targets) + len(self.coordinators)

    def __contains__(self, pid: object) -> bool:
        return pid in self.pids



@dataclass
class StopReport:
    prefix: Prefix
    terminated: list[int] = field(default_factory=list)
    killed: list[int] = field(default_factory=list)
    alreadyExited: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def stopped(self) -> list[int]:
        return [*self.terminated, *self.killed]



class ProcessSupervisor:
    """
    Launches runtime processes and stops everything scoped to a prefix.

    Scope membership:
      - handles this supervisor spawned for the prefix
      - their descendants
      - any live process whose environment has WINEPREFIX set to the prefix
        (wineserver is usually not a child of anything we started)
    """

    def __init__(
        self,
        *,
        graceSeconds: float | None = None,
        coordinatorNames: Iterable[str] | None = None,
        scanEnvironment: bool | None = None,
    ) -> None:
        self.graceSeconds = settingsNumber("supervisor.stopGraceSeconds", 5.0) if graceSeconds is None else float(graceSeconds)
        names = settings("supervisor.coordinatorNames", ["wineserver"]) if coordinatorNames is None else coordinatorNames
        self.coordinatorNames = frozenset(str(name) for name in (names or ()))
        self.scanEnvironment = settingsBool("supervisor.scanEnvironment", True) if scanEnvironment is None else bool(scanEnvironment)
        self.registry = ScopeRegistry()

    # ------------------------------------------------------------------ #
    # Launching
    # ------------------------------------------------------------------ #

    def run(
        self,
        runtime: Runtime,
        command: str,
        args: Sequence[str] = (),
        environment: Mapping[str, str] | None = None,
        prefix: Prefix | str | os.PathLike[str] | None = None,
        *,
        cwd: str | os.PathLike[str] | None = None,
        stdout: int | None = None,
        stderr: int | None = None,
    ) -> ProcessHandle:
        """
        Spawn `command args...` through `runtime` and return immediately.

        Environment: inherited < `environment` < prefix-scoped variables.
        Raises SpawnError when the runtime can't be started.
        """
        target = asPrefix(prefix) if prefix is not None else runtime.prefix
        if target is None:
            raise WincompatError("No prefix given and the runtime has none configured")

        cmd = runtime.launchCommand(command, args)
        scoped = runtime.environment(target)
        env = mergeEnvironment(scoped, environment)

        logger.debug("Spawning %s with %s", cmd, redactEnvironment(scoped))
        try:
            process = psutil.Popen(
                cmd,
                env=env,
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=stdout,
                stderr=stderr,
            )
        except OSError as err:
            raise SpawnError(cmd, err) from err

        handle = ProcessHandle(process=process, prefix=target, command=cmd, environment=scoped)
        self.registry.add(handle)
        setLogContext(prefix=str(target), pid=process.pid)
        logger.info("Started pid %d in '%s': %s", process.pid, target, command)
        return handle

    def wait(self, handle: ProcessHandle, timeout: float | None = None) -> int:
        """
        Block until the handle's process exits and return its status.
        Negative values are the signal that terminated it.
        """
        try:
            status = handle.process.wait(timeout)
        except psutil.TimeoutExpired as err:
            raise ProcessControlError(f"pid {handle.pid} did not exit within {timeout}s") from err
        self.registry.discard(handle)
        return int(status)

    # ------------------------------------------------------------------ #
    # Scope resolution
    # ------------------------------------------------------------------ #

    def _isCoordinator(self, proc: psutil.Process) -> bool:
        try:
            name = proc.name()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return False
        return name in self.coordinatorNames or os.path.basename(name) in self.coordinatorNames

    @staticmethod
    def _hostLineage() -> set[int]:
        """
        This process and its ancestors. A shell or launcher that exported
        WINEPREFIX before starting the host is never part of the prefix scope.
        """
        lineage = {os.getpid()}
        try:
            lineage.update(parent.pid for parent in psutil.Process().parents())
        except (psutil.NoSuchProcess, psutil.AccessDenied) as err:
            logger.debug("Incomplete ancestry of pid %d: %s", os.getpid(), err)
        return lineage

    def _scanEnvironment(self, key: str, known: dict[int, psutil.Process]) -> None:
        excluded = self._hostLineage()
        for proc in psutil.process_iter():
            if proc.pid in excluded or proc.pid in known:
                continue
            try:
                if proc.status() == psutil.STATUS_ZOMBIE:
                    continue
                winePrefix = proc.environ().get("WINEPREFIX")
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                # Gone, or not ours to read
                continue
            if winePrefix and scopeKey(winePrefix) == key:
                known[proc.pid] = proc

    def processTree(self, prefix: Prefix | str | os.PathLike[str]) -> ProcessTree:
        """Resolve every live process in the prefix scope."""
        target = asPrefix(prefix)
        key = scopeKey(target)
        members: dict[int, psutil.Process] = {}

        for handle in self.registry.handles(target):
            if handle.poll() is not None:
                continue
            members.setdefault(handle.pid, handle.process)
            try:
                children = handle.process.children(recursive=True)
            except psutil.NoSuchProcess:
                continue
            for child in children:
                members.setdefault(child.pid, child)

        if self.scanEnvironment:
            self._scanEnvironment(key, members)

        tree = ProcessTree(prefix=target)
        for proc in members.values():
            if self._isCoordinator(proc):
                tree.coordinators.append(proc)
            else:
                tree.targets.append(proc)
        return tree

    # ------------------------------------------------------------------ #
    # Stopping
    # ------------------------------------------------------------------ #

    def _stopPhase(self, procs: list[psutil.Process], report: StopReport, *, force: bool, grace: float) -> None:
        if not procs:
            return

        signalled: list[psutil.Process] = []
        for proc in procs:
            try:
                if force:
                    proc.kill()
                else:
                    proc.terminate()
                signalled.append(proc)
            except psutil.NoSuchProcess:
                report.alreadyExited.append(proc.pid)
            except psutil.AccessDenied as err:
                report.failed[proc.pid] = f"access denied: {err}"

        gone, alive = psutil.wait_procs(signalled, timeout=KILL_WAIT_SECONDS if force else grace)
        for proc in gone:
            (report.killed if force else report.terminated).append(proc.pid)
        if not alive:
            return

        for proc in alive:
            logger.warning("pid %d still alive after %.1fs, killing", proc.pid, grace)
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                report.terminated.append(proc.pid)
            except psutil.AccessDenied as err:
                report.failed[proc.pid] = f"access denied: {err}"

        pending = [proc for proc in alive if proc.pid not in report.failed and proc.pid not in report.terminated]
        gone, survivors = psutil.wait_procs(pending, timeout=KILL_WAIT_SECONDS)
        report.killed.extend(proc.pid for proc in gone)
        for proc in survivors:
            report.failed[proc.pid] = "survived SIGKILL"

    def stop(
        self,
        target: ProcessHandle | Prefix | str | os.PathLike[str],
        force: bool = False,
        graceSeconds: float | None = None,
    ) -> StopReport:
        """
        Stop every process in the scope of `target` (a handle or a prefix).

        Targets get SIGTERM, then SIGKILL after the grace period; coordinators
        (wineserver) follow the same way once the targets are gone. `force`
        skips straight to SIGKILL. Processes that already exited count as
        stopped. Raises ProcessControlError (carrying the report) when a
        process could not be signalled or survived SIGKILL.
        """
        prefix = target.prefix if isinstance(target, ProcessHandle) else asPrefix(target)
        grace = self.graceSeconds if graceSeconds is None else float(graceSeconds)
        report = StopReport(prefix=prefix)

        tree = self.processTree(prefix)
        if isinstance(target, ProcessHandle) and target.poll() is not None:
            report.alreadyExited.append(target.pid)
        logger.info(
            "Stopping %d process(es) in '%s' (%d coordinator(s))%s",
            len(tree), prefix, len(tree.coordinators), " forcibly" if force else "",
        )

        self._stopPhase(tree.targets, report, force=force, grace=grace)
        self._stopPhase(tree.coordinators, report, force=force, grace=grace)
        self.registry.prune(prefix)

        if report.failed:
            details = ", ".join(f"{pid}: {reason}" for pid, reason in report.failed.items())
            raise ProcessControlError(f"Failed to stop processes in '{prefix}': {details}", report)
        return report
