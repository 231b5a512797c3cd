from __future__ import annotations

import logging
import random
import re
from types import SimpleNamespace

import pytest

from fleetsync.sync.dedupe import dedupe, duplicate_ids, log_removed
from fleetsync.sync.ids import allocate_id


def test_dedupe_keeps_first_occurrence() -> None:
    items = [{"id": "a", "v": 1}, {"id": "b", "v": 2}, {"id": "a", "v": 3}]

    unique, removed = dedupe(items)

    assert unique == [{"id": "a", "v": 1}, {"id": "b", "v": 2}]
    assert removed == 1


def test_dedupe_is_idempotent_and_order_preserving() -> None:
    rng = random.Random(7)
    for _ in range(50):
        items = [{"id": rng.randint(0, 9), "n": n} for n in range(rng.randint(0, 30))]

        once, _ = dedupe(items)
        twice, removed_again = dedupe(once)

        assert twice == once
        assert removed_again == 0
        first_seen: list[int] = []
        for item in items:
            if item["id"] not in first_seen:
                first_seen.append(item["id"])
        assert [item["id"] for item in once] == first_seen


def test_dedupe_accepts_attribute_entities_and_custom_key() -> None:
    items = [SimpleNamespace(id="x"), SimpleNamespace(id="x"), SimpleNamespace(id="y")]
    unique, removed = dedupe(items)
    assert [item.id for item in unique] == ["x", "y"]
    assert removed == 1

    by_plate, removed = dedupe([{"plate": "KA01"}, {"plate": "KA01"}], key=lambda item: item["plate"])
    assert by_plate == [{"plate": "KA01"}]
    assert removed == 1


def test_duplicate_ids_lists_each_repeated_id_once() -> None:
    items = [{"id": "a"}, {"id": "a"}, {"id": "b"}, {"id": "a"}, {"id": "b"}]
    assert duplicate_ids(items) == ["a", "b"]


def test_log_removed_is_quiet_when_nothing_removed(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING):
        log_removed("vehicles", 0, [])
    assert caplog.records == []


def test_log_removed_summarizes_large_corruption(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING):
        log_removed("partsInventory", 250, [f"PI{n}" for n in range(120)])
    assert "needs cleanup" in caplog.text
    assert "PI119" not in caplog.text


def test_allocate_id_format() -> None:
    assert re.fullmatch(r"VEH\d{13,}\d{1,4}", allocate_id("VEH"))
    assert allocate_id("TRIP-", now_ms=1700000000000).startswith("TRIP-1700000000000")


def test_allocate_id_has_no_collisions_in_practice() -> None:
    ids = {allocate_id("VEH") for _ in range(1000)}
    assert len(ids) == 1000
