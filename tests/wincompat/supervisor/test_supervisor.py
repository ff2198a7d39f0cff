import os
import subprocess
import sys
import time
from pathlib import Path

import psutil
import pytest

from wincompat.core.errors import ProcessControlError, SpawnError, WincompatError
from wincompat.prefix.prefix import Prefix
from wincompat.runtimes.wine import Wine
from wincompat.supervisor import supervisor as supervisorModule
from wincompat.supervisor.supervisor import ProcessSupervisor, ProcessTree

SLEEPER = "import time; time.sleep(30)"


def waitFor(predicate, timeout: float = 10.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


@pytest.fixture
def supervisor():
    sup = ProcessSupervisor(graceSeconds=5.0)
    yield sup
    # Never leak sleepers into the next test
    for scope in sup.registry.scopes():
        for handle in sup.registry.handles(scope):
            if handle.poll() is None:
                handle.process.kill()
                handle.process.wait()


# ---------------------------------------------------------------------- #
# Real processes
# ---------------------------------------------------------------------- #

@pytest.mark.posix
def test_run_returns_live_handle_with_scoped_environment(supervisor, fakeWine, prefix):
    handle = supervisor.run(fakeWine, sys.executable, ["-c", SLEEPER], {"WINEPREFIX": "/elsewhere", "DXVK_HUD": "fps"})

    assert handle.isRunning()
    assert psutil.pid_exists(handle.pid)
    assert handle.prefix == prefix
    assert handle.environment["WINEPREFIX"] == str(prefix.path)
    assert "DXVK_HUD" not in handle.environment
    assert supervisor.registry.handles(prefix) == [handle]
    assert waitFor(lambda: psutil.Process(handle.pid).environ().get("DXVK_HUD") == "fps")
    assert psutil.Process(handle.pid).environ()["WINEPREFIX"] == str(prefix.path)


@pytest.mark.posix
def test_stop_then_wait_reports_signal(supervisor, fakeWine):
    handle = supervisor.run(fakeWine, sys.executable, ["-c", SLEEPER])

    report = supervisor.stop(handle)

    assert report.ok
    assert handle.pid in report.stopped
    assert supervisor.wait(handle) != 0
    assert not handle.isRunning()
    assert len(supervisor.registry) == 0


@pytest.mark.posix
def test_wait_returns_exit_status(supervisor, fakeWine):
    handle = supervisor.run(fakeWine, sys.executable, ["-c", "raise SystemExit(7)"])
    assert supervisor.wait(handle, timeout=10) == 7
    assert supervisor.registry.handles(handle.prefix) == []


@pytest.mark.posix
def test_wait_timeout(supervisor, fakeWine):
    handle = supervisor.run(fakeWine, sys.executable, ["-c", SLEEPER])
    with pytest.raises(ProcessControlError):
        supervisor.wait(handle, timeout=0.1)
    assert handle.isRunning()


@pytest.mark.posix
def test_stop_on_exited_handle_is_ok(supervisor, fakeWine):
    handle = supervisor.run(fakeWine, sys.executable, ["-c", "pass"])
    assert waitFor(lambda: handle.poll() is not None)

    report = supervisor.stop(handle)

    assert report.ok
    assert report.alreadyExited == [handle.pid]
    assert report.stopped == []


@pytest.mark.posix
def test_tree_includes_descendants(supervisor, fakeWine, prefix):
    handle = supervisor.run(fakeWine, "sh", ["-c", "sleep 30 & wait"])
    assert waitFor(lambda: len(psutil.Process(handle.pid).children()) == 1)
    child = psutil.Process(handle.pid).children()[0]

    tree = supervisor.processTree(prefix)

    assert handle.pid in tree
    assert child.pid in tree
    assert tree.coordinators == []

    # Child first so the shell reaps it and exits on its own
    child.kill()
    assert isinstance(supervisor.wait(handle, timeout=10), int)
    assert supervisor.processTree(prefix).pids == []


@pytest.mark.posix
def test_coordinator_is_classified_by_name(supervisor, fakeWine, prefix, tmp_path, scriptWriter):
    server = scriptWriter(tmp_path / "bin" / "wineserver", "#!/bin/sh\nsleep 30\n")
    handle = supervisor.run(fakeWine, str(server))
    assert waitFor(lambda: psutil.Process(handle.pid).name() == "wineserver" and psutil.Process(handle.pid).children())

    tree = supervisor.processTree(prefix)

    assert [proc.pid for proc in tree.coordinators] == [handle.pid]
    assert len(tree.targets) == 1

    report = supervisor.stop(prefix)
    assert report.ok
    assert handle.pid in report.stopped + report.alreadyExited
    assert handle.poll() is not None


@pytest.mark.posix
def test_foreign_process_in_prefix_is_stopped(supervisor, prefix):
    foreign = subprocess.Popen(
        [sys.executable, "-c", SLEEPER],
        env={**os.environ, "WINEPREFIX": str(prefix.path)},
    )
    try:
        assert waitFor(lambda: foreign.pid in supervisor.processTree(prefix))

        report = supervisor.stop(prefix.path)

        assert report.ok
        assert foreign.pid in report.stopped
        assert not psutil.pid_exists(foreign.pid) or psutil.Process(foreign.pid).status() == psutil.STATUS_ZOMBIE
    finally:
        if foreign.poll() is None:
            foreign.kill()
            foreign.wait()


@pytest.mark.posix
def test_environment_scan_can_be_disabled(prefix):
    foreign = subprocess.Popen(
        [sys.executable, "-c", SLEEPER],
        env={**os.environ, "WINEPREFIX": str(prefix.path)},
    )
    try:
        scanning = ProcessSupervisor()
        assert waitFor(lambda: foreign.pid in scanning.processTree(prefix))
        assert foreign.pid not in ProcessSupervisor(scanEnvironment=False).processTree(prefix)
    finally:
        foreign.kill()
        foreign.wait()


HOST_SCRIPT = """
import os
from wincompat.supervisor.supervisor import ProcessSupervisor
tree = ProcessSupervisor().processTree(os.environ["WINEPREFIX"])
print(os.getppid() in tree, os.getpid() in tree)
"""


@pytest.mark.posix
def test_host_ancestors_sharing_the_prefix_are_out_of_scope(prefix):
    # The shell exports WINEPREFIX and stays alive as the host's parent
    repoRoot = Path(__file__).resolve().parents[3]
    env = {**os.environ, "WINEPREFIX": str(prefix.path), "PYTHONPATH": str(repoRoot), "HOST_PY": sys.executable}
    out = subprocess.run(
        ["sh", "-c", '"$HOST_PY" -c "$0"; true', HOST_SCRIPT],
        env=env,
        capture_output=True,
        text=True,
        timeout=60,
        check=True,
    )
    assert out.stdout.split() == ["False", "False"], out.stderr


def test_spawn_error_for_missing_binary(supervisor, prefix, tmp_path):
    wine = Wine.fromBinary(tmp_path / "no-such-wine").withPrefix(prefix)
    with pytest.raises(SpawnError) as excInfo:
        supervisor.run(wine, "game.exe")
    assert excInfo.value.command[0] == str(tmp_path / "no-such-wine")
    assert len(supervisor.registry) == 0


def test_run_requires_prefix(supervisor):
    with pytest.raises(WincompatError):
        supervisor.run(Wine(), "game.exe")


def test_settings_provide_defaults(isolatedSettings):
    isolatedSettings.write_text(
        "{ supervisor: { stopGraceSeconds: 1.5, coordinatorNames: ['wineserver', 'winedevice.exe'] } }",
        encoding="utf-8",
    )
    from wincompat.app.settings import reloadSettings
    reloadSettings()

    sup = ProcessSupervisor()
    assert sup.graceSeconds == 1.5
    assert sup.coordinatorNames == {"wineserver", "winedevice.exe"}
    assert sup.scanEnvironment is True
    assert ProcessSupervisor(graceSeconds=0).graceSeconds == 0.0


# ---------------------------------------------------------------------- #
# Stop ordering with stand-in processes
# ---------------------------------------------------------------------- #

class FakeProcess:
    def __init__(self, pid, log, *, ignoresTerm=False, survivesKill=False, gone=False, denied=False):
        self.pid = pid
        self.log = log
        self.ignoresTerm = ignoresTerm
        self.survivesKill = survivesKill
        self.gone = gone
        self.denied = denied
        self.dead = gone
        self.returncode = None

    def _signal(self, kind, dies):
        if self.gone:
            raise psutil.NoSuchProcess(self.pid)
        if self.denied:
            raise psutil.AccessDenied(self.pid)
        self.log.append((kind, self.pid))
        if dies:
            self.dead = True

    def terminate(self):
        self._signal("term", not self.ignoresTerm)

    def kill(self):
        self._signal("kill", not self.survivesKill)

    def wait(self, timeout=None):
        if self.dead:
            return -9
        raise psutil.TimeoutExpired(timeout or 0, self.pid)

    def is_running(self):
        return not self.dead


@pytest.fixture
def fakeTree(monkeypatch, tmp_path):
    monkeypatch.setattr(supervisorModule, "KILL_WAIT_SECONDS", 0.05)
    sup = ProcessSupervisor(graceSeconds=0.05, scanEnvironment=False)
    log = []

    def install(targets=(), coordinators=()):
        tree = ProcessTree(prefix=Prefix(tmp_path), targets=list(targets), coordinators=list(coordinators))
        monkeypatch.setattr(sup, "processTree", lambda prefix: tree)
        return sup

    return install, log


def test_targets_stop_before_coordinators(fakeTree, tmp_path):
    install, log = fakeTree
    sup = install(
        targets=[FakeProcess(1, log), FakeProcess(2, log)],
        coordinators=[FakeProcess(99, log)],
    )

    report = sup.stop(tmp_path)

    assert log == [("term", 1), ("term", 2), ("term", 99)]
    assert sorted(report.terminated) == [1, 2, 99]
    assert report.killed == []


def test_force_skips_terminate(fakeTree, tmp_path):
    install, log = fakeTree
    sup = install(targets=[FakeProcess(1, log)], coordinators=[FakeProcess(99, log)])

    report = sup.stop(tmp_path, force=True)

    assert log == [("kill", 1), ("kill", 99)]
    assert report.killed == [1, 99]


def test_survivors_of_grace_period_are_killed(fakeTree, tmp_path):
    install, log = fakeTree
    sup = install(targets=[FakeProcess(1, log, ignoresTerm=True)])

    report = sup.stop(tmp_path)

    assert log == [("term", 1), ("kill", 1)]
    assert report.killed == [1]
    assert report.terminated == []


def test_already_exited_processes_count_as_stopped(fakeTree, tmp_path):
    install, log = fakeTree
    sup = install(targets=[FakeProcess(1, log, gone=True), FakeProcess(2, log)])

    report = sup.stop(tmp_path)

    assert report.ok
    assert report.alreadyExited == [1]
    assert report.terminated == [2]


def test_unstoppable_processes_raise_with_report(fakeTree, tmp_path):
    install, log = fakeTree
    sup = install(
        targets=[FakeProcess(1, log, denied=True), FakeProcess(2, log, ignoresTerm=True, survivesKill=True)],
        coordinators=[FakeProcess(99, log)],
    )

    with pytest.raises(ProcessControlError) as excInfo:
        sup.stop(tmp_path)

    report = excInfo.value.report
    assert not report.ok
    assert report.failed[1].startswith("access denied")
    assert report.failed[2] == "survived SIGKILL"
    # Coordinators are still attempted
    assert report.terminated == [99]
