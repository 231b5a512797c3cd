"""In-process realtime database with the same semantics as the REST transport.

Selected with ``database_url="memory://"``. Every write fans out a full
``put`` of each overlapping subscribed path, including to the writer's own
subscriptions, exactly like the hosted service echoes local writes.
"""

from __future__ import annotations

import asyncio
import base64
import copy
import hashlib
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from fleetsync._stream import StreamEvent, get_at, set_at, split_path
from fleetsync.exceptions import ConflictError

_logger = logging.getLogger(__name__)


def compute_revision(value: Any) -> str:
    """Content hash used as the revision tag for conditional writes."""
    canonical = json.dumps(value, sort_keys=True, separators=(",", ":"))
    return base64.b64encode(hashlib.sha1(canonical.encode("utf-8")).digest()).decode("ascii")


@dataclass
class _Channel:
    segments: list[str]
    queue: asyncio.Queue[StreamEvent | BaseException] = field(default_factory=asyncio.Queue)


def _overlaps(a: list[str], b: list[str]) -> bool:
    shortest = min(len(a), len(b))
    return a[:shortest] == b[:shortest]


class InMemoryTransport:
    """Dictionary-backed tree implementing the ``Transport`` protocol."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._root: Any = copy.deepcopy(initial) if initial else None
        self._channels: list[_Channel] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._channels)

    def snapshot(self, path: str = "/") -> Any:
        """Synchronous deep copy of the value at *path*."""
        return copy.deepcopy(get_at(self._root, split_path(path)))

    def _write(self, path: str, value: Any) -> None:
        segments = split_path(path)
        self._root = set_at(self._root, segments, copy.deepcopy(value))
        self._notify(segments)

    def _notify(self, *written: list[str]) -> None:
        for channel in self._channels:
            if any(_overlaps(segments, channel.segments) for segments in written):
                current = copy.deepcopy(get_at(self._root, channel.segments))
                channel.queue.put_nowait(StreamEvent(event="put", path="/", data=current))

    async def get(self, path: str) -> Any:
        return self.snapshot(path)

    async def get_with_revision(self, path: str) -> tuple[Any, str]:
        value = self.snapshot(path)
        return value, compute_revision(value)

    async def put(self, path: str, value: Any, *, if_match: str | None = None) -> None:
        if if_match is not None and if_match != compute_revision(self.snapshot(path)):
            raise ConflictError(f"PUT {path} rejected: revision changed", path=path, status_code=412)
        self._write(path, value)

    async def patch(self, path: str, value: dict[str, Any]) -> None:
        base = split_path(path)
        for key, child in value.items():
            self._root = set_at(self._root, base + split_path(key), copy.deepcopy(child))
        self._notify(base)

    async def patch_many(self, updates: dict[str, Any]) -> None:
        written = [split_path(path) for path in updates]
        for segments, value in zip(written, updates.values(), strict=True):
            self._root = set_at(self._root, segments, copy.deepcopy(value))
        self._notify(*written)

    async def delete(self, path: str) -> None:
        self._write(path, None)

    def inject(self, path: str, item: StreamEvent | BaseException) -> None:
        """Push a raw event (or an error to raise) to every stream on *path*."""
        segments = split_path(path)
        for channel in self._channels:
            if channel.segments == segments:
                channel.queue.put_nowait(item)

    async def stream(self, path: str) -> AsyncIterator[StreamEvent]:
        channel = _Channel(segments=split_path(path))
        self._channels.append(channel)
        _logger.debug("STREAM memory://%s (%d open)", path, len(self._channels))
        try:
            yield StreamEvent(event="put", path="/", data=self.snapshot(path))
            while True:
                item = await channel.queue.get()
                if isinstance(item, BaseException):
                    raise item
                yield item
        finally:
            self._channels.remove(channel)
