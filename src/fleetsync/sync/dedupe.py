"""Client-side duplicate removal for collection snapshots.

The database keys entities by id, so a healthy collection never repeats
one. Repeats only appear in collections corrupted by older builds that
stored an ``id`` field diverging from the map key; a non-zero removal
count therefore signals bad remote data rather than normal operation.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Iterable, Mapping
from typing import Any, TypeVar

_logger = logging.getLogger(__name__)

T = TypeVar("T")

# Listing more ids than this in one warning is noise.
_MAX_LOGGED_IDS = 20


def entity_id(item: Any) -> Hashable:
    """Identifier of a dict-shaped or attribute-shaped entity."""
    if isinstance(item, Mapping):
        return item.get("id")
    return getattr(item, "id", None)


def dedupe(items: Iterable[T], *, key: Callable[[T], Hashable] = entity_id) -> tuple[list[T], int]:
    """Keep the first entity for each id, preserving order.

    Returns ``(unique_items, removed_count)``.
    """
    seen: set[Hashable] = set()
    unique: list[T] = []
    removed = 0
    for item in items:
        ident = key(item)
        if ident in seen:
            removed += 1
            continue
        seen.add(ident)
        unique.append(item)
    return unique, removed


def duplicate_ids(items: Iterable[T], *, key: Callable[[T], Hashable] = entity_id) -> list[Hashable]:
    """Distinct ids that occur more than once, in first-repeat order."""
    seen: set[Hashable] = set()
    repeated: dict[Hashable, None] = {}
    for item in items:
        ident = key(item)
        if ident in seen:
            repeated.setdefault(ident, None)
        seen.add(ident)
    return list(repeated)


def log_removed(collection: str, removed: int, ids: list[Hashable]) -> None:
    if removed <= 0:
        return
    if len(ids) > _MAX_LOGGED_IDS:
        _logger.warning(
            "Removed %d duplicate(s) from %s across %d ids; the collection needs cleanup",
            removed,
            collection,
            len(ids),
        )
        return
    _logger.warning("Removed %d duplicate(s) from %s: %s", removed, collection, ids)
