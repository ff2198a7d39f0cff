# wincompat/supervisor/registry.py
from __future__ import annotations
import os
import threading

from wincompat.prefix.prefix import Prefix
from wincompat.supervisor.handle import ProcessHandle

__all__ = ["ScopeRegistry", "scopeKey"]



def scopeKey(prefix: Prefix | str | os.PathLike[str]) -> str:
    """Registry key for a prefix: its fully resolved path."""
    path = prefix.path if isinstance(prefix, Prefix) else prefix
    return os.path.realpath(os.path.expanduser(str(path)))



class ScopeRegistry:
    """Handles spawned by the supervisor, grouped by prefix scope. Thread-safe."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: dict[str, list[ProcessHandle]] = {}

    def add(self, handle: ProcessHandle) -> None:
        with self._lock:
            self._handles.setdefault(scopeKey(handle.prefix), []).append(handle)

    def discard(self, handle: ProcessHandle) -> None:
        key = scopeKey(handle.prefix)
        with self._lock:
            handles = self._handles.get(key)
            if not handles:
                return
            self._handles[key] = [item for item in handles if item is not handle]
            if not self._handles[key]:
                del self._handles[key]

    def handles(self, prefix: Prefix | str | os.PathLike[str]) -> list[ProcessHandle]:
        with self._lock:
            return list(self._handles.get(scopeKey(prefix), ()))

    def scopes(self) -> list[str]:
        with self._lock:
            return list(self._handles)

    def prune(self, prefix: Prefix | str | os.PathLike[str]) -> list[ProcessHandle]:
        """Drop handles whose process has exited. Returns the dropped handles."""
        key = scopeKey(prefix)
        with self._lock:
            handles = self._handles.get(key, [])
            exited = [handle for handle in handles if handle.poll() is not None]
            remaining = [handle for handle in handles if handle not in exited]
            if remaining:
                self._handles[key] = remaining
            else:
                self._handles.pop(key, None)
            return exited

    def __len__(self) -> int:
        with self._lock:
            return sum(len(handles) for handles in self._handles.values())
