import os

from wincompat.prefix.prefix import Prefix
from wincompat.supervisor.handle import ProcessHandle
from wincompat.supervisor.registry import ScopeRegistry, scopeKey


class FakePopen:
    def __init__(self, pid: int, returncode: int | None = None) -> None:
        self.pid = pid
        self.returncode = returncode

    def poll(self) -> int | None:
        return self.returncode


def _handle(prefix, pid, returncode=None):
    return ProcessHandle(process=FakePopen(pid, returncode), prefix=prefix, command=["wine", "game.exe"])  # type: ignore[arg-type]


def test_scopeKey_resolves_links(tmp_path):
    real = tmp_path / "real-pfx"
    real.mkdir()
    link = tmp_path / "link-pfx"
    os.symlink(real, link)

    assert scopeKey(link) == scopeKey(real) == scopeKey(Prefix(real))
    assert scopeKey(str(tmp_path / "real-pfx" / ".." / "real-pfx")) == str(real.resolve())


def test_handles_are_grouped_by_scope(tmp_path):
    registry = ScopeRegistry()
    first = Prefix(tmp_path / "a")
    second = Prefix(tmp_path / "b")
    h1, h2, h3 = _handle(first, 1), _handle(first, 2), _handle(second, 3)
    for handle in (h1, h2, h3):
        registry.add(handle)

    assert len(registry) == 3
    assert registry.handles(first) == [h1, h2]
    assert registry.handles(tmp_path / "b") == [h3]
    assert sorted(registry.scopes()) == sorted([scopeKey(first), scopeKey(second)])

    registry.discard(h3)
    registry.discard(h3)
    assert registry.handles(second) == []
    assert scopeKey(second) not in registry.scopes()


def test_prune_drops_exited_handles(tmp_path):
    registry = ScopeRegistry()
    prefix = Prefix(tmp_path)
    running, exited = _handle(prefix, 10), _handle(prefix, 11, returncode=0)
    registry.add(running)
    registry.add(exited)

    assert registry.prune(prefix) == [exited]
    assert registry.handles(prefix) == [running]

    running.process.returncode = -15
    assert registry.prune(prefix) == [running]
    assert len(registry) == 0
    assert registry.scopes() == []


def test_handle_state(tmp_path):
    handle = _handle(Prefix(tmp_path), 42)
    assert handle.isRunning()
    assert handle.returncode is None
    assert "pid=42" in repr(handle)

    handle.process.returncode = 1
    assert not handle.isRunning()
    assert handle.poll() == 1
