"""Live, deduplicated entity lists backed by a collection subscription."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_snake

from fleetsync.exceptions import SubscriptionError
from fleetsync.models._base import parse_timestamp
from fleetsync.sync.dedupe import dedupe, duplicate_ids, log_removed

if TYPE_CHECKING:
    from fleetsync.store import RemoteCollectionStore, Subscription

_logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[["EntityListSynchronizer[Any]"], None]


class SyncState(StrEnum):
    UNINITIALIZED = "uninitialized"
    SUBSCRIBING = "subscribing"
    LIVE = "live"
    UNSUBSCRIBED = "unsubscribed"


def _sort_value(item: Any, field: str) -> datetime | None:
    if isinstance(item, Mapping):
        raw = item.get(field)
    else:
        raw = getattr(item, to_snake(field), None)
    return parse_timestamp(raw)


def newest_first(items: list[T], field: str) -> list[T]:
    """Stable sort by a timestamp field, newest first; undated items last."""
    dated = [(value, item) for item in items if (value := _sort_value(item, field)) is not None]
    undated = [item for item in items if _sort_value(item, field) is None]
    dated.sort(key=lambda pair: pair[0], reverse=True)
    return [item for _, item in dated] + undated


class EntityListSynchronizer(Generic[T]):
    """Mirror of one remote collection as a local list.

    Every snapshot replaces the list wholesale after duplicate removal;
    entities absent from a snapshot disappear locally. Subscription errors
    are recorded in :attr:`error` and never raised, and they leave the last
    good list in place.

    Construction subscribes immediately, so it must happen inside a running
    event loop unless ``start=False``.
    """

    def __init__(
        self,
        store: RemoteCollectionStore,
        *,
        parse: Callable[[dict[str, Any]], T] | None = None,
        sort_field: str | None = None,
        start: bool = True,
    ) -> None:
        self._store = store
        self._parse = parse
        self._sort_field = sort_field if sort_field is not None else store.spec.sort_field
        self._items: list[Any] = []
        self._error: str | None = None
        self._last_exception: SubscriptionError | None = None
        self._loading = True
        self._has_data = False
        self._alive = False
        self._state = SyncState.UNINITIALIZED
        self._subscription: Subscription | None = None
        self._settled = asyncio.Event()
        self._listeners: list[Listener] = []
        if start:
            self.start()

    @property
    def key(self) -> str:
        return self._store.key

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def items(self) -> list[T]:
        return list(self._items)

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def last_exception(self) -> SubscriptionError | None:
        return self._last_exception

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def listening(self) -> bool:
        """Whether the underlying subscription is still delivering."""
        return self._subscription is not None and self._subscription.active

    def __len__(self) -> int:
        return len(self._items)

    def start(self) -> None:
        if self._state is not SyncState.UNINITIALIZED:
            return
        self._alive = True
        self._state = SyncState.SUBSCRIBING
        self._subscription = self._store.subscribe(self._on_snapshot, self._on_error)

    def close(self) -> None:
        """Unregister synchronously; in-flight snapshots are discarded."""
        self._alive = False
        self._state = SyncState.UNSUBSCRIBED
        if self._subscription is not None:
            self._subscription.cancel()
        self._settled.set()

    async def aclose(self) -> None:
        self.close()
        if self._subscription is not None:
            await self._subscription.wait_closed()

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* after every state change; returns a remover."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def wait_live(self, timeout: float | None = None) -> None:
        """Wait until the first snapshot or error has been recorded."""
        await asyncio.wait_for(self._settled.wait(), timeout)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                _logger.debug("Listener for %s failed", self.key, exc_info=True)

    def _on_snapshot(self, snapshot: list[dict[str, Any]]) -> None:
        if not self._alive:
            return
        unique, removed = dedupe(snapshot)
        if removed:
            log_removed(self.key, removed, duplicate_ids(snapshot))

        items: list[Any] = unique
        if self._parse is not None:
            try:
                items = [self._parse(entity) for entity in unique]
            except (PydanticValidationError, ValueError, TypeError) as exc:
                self._on_error(SubscriptionError(f"Malformed data in {self.key}: {exc}", path=self.key))
                return
        if self._sort_field:
            items = newest_first(items, self._sort_field)

        self._items = items
        self._has_data = True
        self._error = None
        self._last_exception = None
        self._loading = False
        self._state = SyncState.LIVE
        self._settled.set()
        self._notify()

    def _on_error(self, error: SubscriptionError) -> None:
        if not self._alive:
            return
        self._error = str(error) or type(error).__name__
        self._last_exception = error
        if not self._has_data:
            self._items = []
        self._loading = False
        self._settled.set()
        self._notify()
