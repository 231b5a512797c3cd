"""Event-stream decoding and collection tree reconstruction.

The realtime database pushes changes on a ``text/event-stream`` channel.
The first ``put`` carries the whole value at the subscribed path; later
``put``/``patch`` events carry a sub-path relative to it. Subscribers
only ever see full collections, so this module folds the events back into
a tree and flattens it into an entity list.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass
from typing import Any

from fleetsync.exceptions import SubscriptionError

_logger = logging.getLogger(__name__)

#: Events that change the tree.
DATA_EVENTS = frozenset({"put", "patch"})
#: Events after which the server closes the channel for good.
TERMINAL_EVENTS = frozenset({"cancel", "auth_revoked"})


@dataclass(frozen=True)
class StreamEvent:
    """One decoded server-sent event."""

    event: str
    path: str = "/"
    data: Any = None


def decode_event(name: str, raw: str) -> StreamEvent:
    """Decode the ``data:`` payload of a named server event."""
    if name not in DATA_EVENTS:
        # keep-alive carries "null"; cancel/auth_revoked carry a reason string.
        return StreamEvent(event=name, data=raw or None)
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SubscriptionError(f"Malformed {name} event: {raw[:64]}") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("path"), str):
        raise SubscriptionError(f"{name} event without a path: {raw[:64]}")
    return StreamEvent(event=name, path=payload["path"], data=payload.get("data"))


class EventStreamParser:
    """Incremental ``text/event-stream`` line decoder."""

    def __init__(self) -> None:
        self._event = ""
        self._data: list[str] = []

    def feed_line(self, line: str) -> StreamEvent | None:
        """Consume one line; return an event when a blank line completes one."""
        line = line.rstrip("\r\n")
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        return None

    def _dispatch(self) -> StreamEvent | None:
        if not self._event and not self._data:
            return None
        name = self._event or "message"
        raw = "\n".join(self._data)
        self._event = ""
        self._data = []
        return decode_event(name, raw)


def split_path(path: str) -> list[str]:
    return [segment for segment in path.split("/") if segment]


def _as_mapping(node: Any) -> dict[str, Any]:
    if isinstance(node, dict):
        return node
    if isinstance(node, list):
        # The database serves sequential integer keys as JSON arrays.
        return {str(index): value for index, value in enumerate(node) if value is not None}
    return {}


def set_at(node: Any, segments: list[str], value: Any) -> Any:
    """Write *value* below *node* and return the new node.

    ``None`` deletes; containers left empty disappear, as they do remotely.
    Mutates dict containers in place.
    """
    if not segments:
        return value
    head, *rest = segments
    container = _as_mapping(node)
    child = set_at(container.get(head), rest, value)
    if child is None:
        container.pop(head, None)
    else:
        container[head] = child
    return container or None


def get_at(node: Any, segments: list[str]) -> Any:
    for segment in segments:
        node = _as_mapping(node).get(segment)
        if node is None:
            return None
    return node


def apply_event(root: Any, event: StreamEvent) -> Any:
    """Fold *event* into the collection tree *root* and return the new root."""
    if event.event == "put":
        return set_at(root, split_path(event.path), copy.deepcopy(event.data))
    if event.event == "patch":
        if not isinstance(event.data, dict):
            raise SubscriptionError(f"patch event at {event.path} is not an object")
        base = split_path(event.path)
        for key, value in event.data.items():
            root = set_at(root, base + split_path(key), copy.deepcopy(value))
        return root
    return root


def collection_items(value: Any, *, collection: str = "") -> list[dict[str, Any]]:
    """Flatten a collection value into a list of entity dicts.

    Each entity keeps its own ``id`` when it has one; otherwise the map key
    is used. The key is never allowed to override a stored ``id``, which is
    how historically corrupted collections end up with duplicate ids.
    """
    if value is None:
        return []
    if not isinstance(value, (dict, list)):
        raise SubscriptionError(f"Collection {collection or '?'} is not an object", path=collection)
    items: list[dict[str, Any]] = []
    for key, entity in _as_mapping(value).items():
        if not isinstance(entity, dict):
            _logger.warning("Skipping non-object entry %s/%s", collection, key)
            continue
        item = dict(entity)
        if item.get("id") in (None, ""):
            item["id"] = key
        items.append(item)
    return items
