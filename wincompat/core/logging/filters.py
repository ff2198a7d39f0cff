# wincompat/core/logging/filters.py
from __future__ import annotations
import logging
import re
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

from wincompat.core.redaction import redactText

__all__ = ["RecurringSuppressFilter"]

MAX_SHAPE_LEN = 512

_NUMBER_RE = re.compile(r"\d+")



@dataclass
class _Seen:
    stamps: deque[float] = field(default_factory=deque)
    dropped: int = 0



class RecurringSuppressFilter(logging.Filter):
    """
    Passes at most `maxPerWindow` records of the same shape per `windowSeconds`.
    The first record let through after some were dropped is preceded by a
    "Suppressed N repeated logs" line.

    A shape is the logger name, the level and the redacted message with numbers
    folded to "#", so "pid 4121: access denied" and "pid 4187: access denied"
    from one process-table scan count together.
    """

    SKIP_ATTR = "_wincompatNoSuppress"

    def __init__(
            self,
            *,
            windowSeconds: float = 60,
            maxPerWindow: int = 5,
            summaryLevel: int = logging.INFO,
            clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__()
        self.windowSeconds = max(0.001, float(windowSeconds))
        self.maxPerWindow = max(1, int(maxPerWindow))
        self.summaryLevel = int(summaryLevel)
        self._clock = clock
        self._seen: dict[tuple[str, int, str], _Seen] = {}
        self._lock = threading.Lock()

    @staticmethod
    def shapeOf(record: logging.LogRecord) -> str:
        text = " ".join(redactText(record.getMessage()).split())
        text = _NUMBER_RE.sub("#", text)
        return text if len(text) <= MAX_SHAPE_LEN else text[:MAX_SHAPE_LEN] + "..."

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, self.SKIP_ATTR, False):
            return True

        key = (record.name, record.levelno, self.shapeOf(record))
        now = self._clock()
        with self._lock:
            seen = self._seen.setdefault(key, _Seen())
            while seen.stamps and seen.stamps[0] < now - self.windowSeconds:
                seen.stamps.popleft()
            seen.stamps.append(now)
            if len(seen.stamps) > self.maxPerWindow:
                seen.dropped += 1
                return False
            dropped, seen.dropped = seen.dropped, 0

        # Logged outside the lock; the summary comes back through filter()
        if dropped:
            logging.getLogger(record.name).log(
                self.summaryLevel,
                "Suppressed %d repeated logs: %s",
                dropped,
                key[2],
                extra={self.SKIP_ATTR: True},
            )
        return True
