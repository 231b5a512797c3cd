"""Entity identifier allocation."""

from __future__ import annotations

import secrets
import threading
import time
from collections.abc import Callable

IdAllocator = Callable[[str], str]

_SUFFIX_SPACE = 10_000


class _SuffixTracker:
    """Suffixes already handed out in the current millisecond."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ms = -1
        self._used: set[int] = set()

    def draw(self, now_ms: int) -> int:
        with self._lock:
            if now_ms != self._ms:
                self._ms = now_ms
                self._used = set()
            if len(self._used) >= _SUFFIX_SPACE:
                # Exhausted; fall back to plain random draws.
                return secrets.randbelow(_SUFFIX_SPACE)
            while True:
                suffix = secrets.randbelow(_SUFFIX_SPACE)
                if suffix not in self._used:
                    self._used.add(suffix)
                    return suffix


_tracker = _SuffixTracker()


def allocate_id(prefix: str, *, now_ms: int | None = None) -> str:
    """Return ``prefix + unix millis + random 0..9999``.

    Within one process a suffix is not reused in the same millisecond.
    Across processes uniqueness is practical, not guaranteed: two clients
    writing in the same millisecond can draw the same suffix. Callers only
    rely on getting a string back, so this can become a UUID without
    changing any call site.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{prefix}{now_ms}{_tracker.draw(now_ms)}"
