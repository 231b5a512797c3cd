from __future__ import annotations

import logging
from typing import Any

import pytest

from fleetsync.exceptions import SubscriptionError
from fleetsync.models import Vehicle
from fleetsync.registry import CollectionSpec
from fleetsync.sync.synchronizer import EntityListSynchronizer, SyncState, newest_first


class _FakeSubscription:
    def __init__(self) -> None:
        self.active = True

    def cancel(self) -> None:
        self.active = False

    async def wait_closed(self) -> None:
        return None


class _FakeStore:
    """Captures the callbacks so tests can drive snapshots by hand."""

    def __init__(self, key: str = "vehicles", sort_field: str | None = None) -> None:
        self.spec = CollectionSpec(key, sort_field=sort_field)
        self.key = key
        self.subscribe_calls = 0
        self.subscription = _FakeSubscription()
        self.on_snapshot: Any = None
        self.on_error: Any = None

    def subscribe(self, on_snapshot: Any, on_error: Any = None) -> _FakeSubscription:
        self.subscribe_calls += 1
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        return self.subscription


def _sync(store: _FakeStore, **kwargs: Any) -> EntityListSynchronizer[Any]:
    return EntityListSynchronizer(store, **kwargs)  # type: ignore[arg-type]


def test_subscribes_on_construction() -> None:
    store = _FakeStore()

    sync = _sync(store)

    assert store.subscribe_calls == 1
    assert sync.state is SyncState.SUBSCRIBING
    assert sync.loading
    assert sync.items == []


def test_first_snapshot_goes_live() -> None:
    store = _FakeStore()
    sync = _sync(store)

    store.on_snapshot([{"id": 1}])

    assert sync.state is SyncState.LIVE
    assert not sync.loading
    assert sync.items == [{"id": 1}]


def test_snapshot_replaces_instead_of_merging() -> None:
    store = _FakeStore()
    sync = _sync(store)

    store.on_snapshot([{"id": 1}, {"id": 2}])
    store.on_snapshot([{"id": 1}])

    assert sync.items == [{"id": 1}]


def test_snapshots_are_deduplicated_and_logged(caplog: pytest.LogCaptureFixture) -> None:
    store = _FakeStore()
    sync = _sync(store)

    with caplog.at_level(logging.WARNING, logger="fleetsync.sync.dedupe"):
        store.on_snapshot([{"id": "a", "v": 1}, {"id": "b", "v": 2}, {"id": "a", "v": 3}])

    assert sync.items == [{"id": "a", "v": 1}, {"id": "b", "v": 2}]
    assert "Removed 1 duplicate" in caplog.text


def test_error_preserves_last_good_list() -> None:
    store = _FakeStore()
    sync = _sync(store)
    store.on_snapshot([{"id": 1}])

    store.on_error(SubscriptionError("permission revoked", path="vehicles"))

    assert sync.items == [{"id": 1}]
    assert sync.error == "permission revoked"
    assert isinstance(sync.last_exception, SubscriptionError)


def test_error_before_any_data_leaves_empty_list() -> None:
    store = _FakeStore()
    sync = _sync(store)

    store.on_error(SubscriptionError("permission denied"))

    assert sync.items == []
    assert sync.error == "permission denied"
    assert not sync.loading


def test_next_snapshot_clears_error() -> None:
    store = _FakeStore()
    sync = _sync(store)
    store.on_error(SubscriptionError("blip"))

    store.on_snapshot([{"id": 3}])

    assert sync.error is None
    assert sync.items == [{"id": 3}]


def test_snapshots_after_close_are_discarded() -> None:
    store = _FakeStore()
    sync = _sync(store)
    store.on_snapshot([{"id": 1}])

    sync.close()
    store.on_snapshot([{"id": 2}])
    store.on_error(SubscriptionError("late"))

    assert sync.state is SyncState.UNSUBSCRIBED
    assert not store.subscription.active
    assert sync.items == [{"id": 1}]
    assert sync.error is None


def test_parse_failure_is_recorded_as_malformed_data() -> None:
    store = _FakeStore()
    sync = _sync(store, parse=Vehicle.model_validate)
    store.on_snapshot([{"id": "V1", "driver": "A"}])

    store.on_snapshot([{"id": "V1", "driver": {"name": "A"}}])

    assert len(sync.items) == 1
    assert isinstance(sync.items[0], Vehicle)
    assert sync.error is not None
    assert "Malformed data" in sync.error


def test_listeners_run_on_every_change_and_can_be_removed() -> None:
    store = _FakeStore()
    sync = _sync(store)
    seen: list[int] = []

    remove = sync.add_listener(lambda s: seen.append(len(s)))
    store.on_snapshot([{"id": 1}, {"id": 2}])
    remove()
    store.on_snapshot([{"id": 1}])

    assert seen == [2]


def test_sort_field_orders_newest_first() -> None:
    store = _FakeStore("notifications", sort_field="timestamp")
    sync = _sync(store)

    store.on_snapshot(
        [
            {"id": "n1", "timestamp": "2026-01-01T10:00:00.000Z"},
            {"id": "n2"},
            {"id": "n3", "timestamp": "2026-01-02T10:00:00.000Z"},
        ]
    )

    assert [item["id"] for item in sync.items] == ["n3", "n1", "n2"]


def test_newest_first_reads_model_attributes() -> None:
    early = Vehicle(id="a", created_at="2026-01-01T00:00:00Z")
    late = Vehicle(id="b", created_at="2026-02-01T00:00:00Z")

    assert newest_first([early, late], "createdAt") == [late, early]


@pytest.mark.asyncio
async def test_wait_live_returns_after_first_snapshot() -> None:
    store = _FakeStore()
    sync = _sync(store)
    store.on_snapshot([])

    await sync.wait_live(0.1)

    assert sync.state is SyncState.LIVE
