"""Collection-scoped CRUD and live subscriptions against the realtime database.

A :class:`RemoteCollectionStore` owns exactly one collection path. Writes
are plain path-addressed requests (full replace on create, shallow merge
on update) with no concurrency control unless the caller opts into a
conditional update with ``if_match``. Subscriptions deliver the whole
collection on every change, including echoes of this client's own writes.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from fleetsync._constants import FORBIDDEN_KEY_CHARS
from fleetsync._redact import redact_for_log
from fleetsync._stream import DATA_EVENTS, TERMINAL_EVENTS, apply_event, collection_items
from fleetsync._transport import Transport
from fleetsync.exceptions import (
    ConflictError,
    EntityValidationError,
    RemoteReadError,
    RemoteStoreError,
    RemoteTimeoutError,
    RemoteWriteError,
    SubscriptionError,
)
from fleetsync.models._base import iso_timestamp, parse_timestamp
from fleetsync.registry import CollectionSpec, get_collection
from fleetsync.sync.ids import IdAllocator, allocate_id

_logger = logging.getLogger(__name__)

T = TypeVar("T")

SnapshotCallback = Callable[[list[dict[str, Any]]], None]
ErrorCallback = Callable[[SubscriptionError], None]

# Server-managed fields a partial update may not touch.
_PROTECTED_FIELDS = frozenset({"createdAt", "updatedAt"})

# Stored timestamps have millisecond precision.
_TICK = timedelta(milliseconds=1)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def validate_key(value: Any, *, field: str = "id") -> str:
    """Reject ids the database cannot use as a path segment."""
    if not isinstance(value, str) or not value.strip():
        raise EntityValidationError(f"{field} must be a non-empty string", field=field)
    bad = sorted(set(value) & FORBIDDEN_KEY_CHARS)
    if bad:
        raise EntityValidationError(f"{field} {value!r} contains forbidden characters {bad}", field=field)
    return value


def _first_error(exc: PydanticValidationError) -> tuple[str, str]:
    errors = exc.errors()
    if not errors:
        return "", str(exc)
    loc = ".".join(str(part) for part in errors[0].get("loc", ()))
    return loc, f"{loc}: {errors[0].get('msg', 'invalid value')}"


class Subscription:
    """Handle for a live collection listener.

    Calling the handle (or :meth:`cancel`) unregisters synchronously; no
    snapshot callback runs afterwards.
    """

    def __init__(self, collection: str) -> None:
        self.collection = collection
        self._active = True
        self._task: asyncio.Task[None] | None = None

    @property
    def active(self) -> bool:
        return self._active

    def _attach(self, task: asyncio.Task[None]) -> None:
        self._task = task

    def _mark_closed(self) -> None:
        self._active = False

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def __call__(self) -> None:
        self.cancel()

    async def wait_closed(self) -> None:
        """Wait until the background listener task has finished."""
        if self._task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await self._task


class RemoteCollectionStore:
    """CRUD and subscriptions for one collection of the remote tree."""

    def __init__(
        self,
        transport: Transport,
        collection: str | CollectionSpec,
        *,
        timeout: float = 20.0,
        reconnect_delay: float = 5.0,
        clock: Callable[[], datetime] = _utcnow,
        allocator: IdAllocator = allocate_id,
    ) -> None:
        self._transport = transport
        self._spec = collection if isinstance(collection, CollectionSpec) else get_collection(collection)
        self._timeout = timeout
        self._reconnect_delay = reconnect_delay
        self._clock = clock
        self._allocator = allocator

    @property
    def key(self) -> str:
        return self._spec.key

    @property
    def spec(self) -> CollectionSpec:
        return self._spec

    def _path(self, entity_id: str) -> str:
        return f"{self._spec.key}/{entity_id}"

    def _now(self) -> str:
        return iso_timestamp(self._clock())

    def _stamp_after(self, existing: Mapping[str, Any]) -> str:
        """``updatedAt`` for a write over *existing*, strictly after its stored stamps."""
        moment = parse_timestamp(self._clock()) or _utcnow()
        for key in ("createdAt", "updatedAt"):
            stored = parse_timestamp(existing.get(key))
            if stored is not None:
                moment = max(moment, stored + _TICK)
        return iso_timestamp(moment)

    async def _bounded(self, op: str, path: str, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, self._timeout)
        except TimeoutError as exc:
            raise RemoteTimeoutError(f"{op} {path} exceeded {self._timeout:g}s", path=path) from exc

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def prepare_create(self, entity: Mapping[str, Any] | BaseModel) -> dict[str, Any]:
        """Build the JSON body written by :meth:`create`.

        Raises :class:`EntityValidationError` without touching the network.
        """
        if isinstance(entity, BaseModel):
            payload = entity.model_dump(mode="json", by_alias=True, exclude_none=True)
        elif isinstance(entity, Mapping):
            payload = dict(entity)
        else:
            raise EntityValidationError(f"Cannot store {type(entity).__name__} in {self.key}")

        raw_id = payload.get("id")
        if raw_id is None or raw_id == "":
            entity_id = self._allocator(self._spec.id_prefix)
        else:
            entity_id = validate_key(raw_id)

        now = self._now()
        payload["id"] = entity_id
        if self._spec.on_create is not None:
            payload = self._spec.on_create(payload, now)
        payload["createdAt"] = now
        payload["updatedAt"] = now

        if self._spec.model is not None:
            try:
                self._spec.model.model_validate(payload)
            except PydanticValidationError as exc:
                field, message = _first_error(exc)
                raise EntityValidationError(f"Invalid {self.key} entity: {message}", field=field) from exc
        return payload

    def prepare_update(self, entity_id: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Build the shallow-merge body written by :meth:`update`."""
        if not isinstance(fields, Mapping) or not fields:
            raise EntityValidationError("update needs at least one field")
        changes = dict(fields)
        if "id" in changes:
            if changes["id"] != entity_id:
                raise EntityValidationError("id is immutable", field="id")
            del changes["id"]
        for key in changes:
            validate_key(key, field="field name")
            if key in _PROTECTED_FIELDS:
                raise EntityValidationError(f"{key} is managed by the store", field=key)
        if self._spec.on_update is not None:
            changes = self._spec.on_update(changes)
        changes["updatedAt"] = self._now()
        return changes

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create(self, entity: Mapping[str, Any] | BaseModel) -> str:
        """Write *entity* at ``collection/id``, overwriting whatever is there."""
        payload = self.prepare_create(entity)
        path = self._path(payload["id"])
        await self._bounded("PUT", path, self._transport.put(path, payload))
        _logger.debug("Created %s: %s", path, redact_for_log(payload))
        return str(payload["id"])

    async def update(
        self,
        entity_id: str,
        fields: Mapping[str, Any],
        *,
        if_match: str | None = None,
    ) -> None:
        """Shallow-merge *fields* into an existing entity.

        Nested objects in *fields* replace the stored ones. With *if_match*
        (a tag from :meth:`read_revision`) the merge only lands if nobody
        wrote the entity in between, otherwise :class:`ConflictError`.
        """
        entity_id = validate_key(entity_id)
        changes = self.prepare_update(entity_id, fields)
        path = self._path(entity_id)

        if if_match is None:
            existing = await self._read_for_write(path)
            if existing is None:
                raise RemoteWriteError(f"{path} does not exist", path=path, status_code=404)
            if isinstance(existing, Mapping):
                changes["updatedAt"] = self._stamp_after(existing)
            await self._bounded("PATCH", path, self._transport.patch(path, changes))
            _logger.debug("Updated %s fields=%s", path, sorted(changes))
            return

        try:
            existing, revision = await self._bounded("GET", path, self._transport.get_with_revision(path))
        except RemoteReadError as exc:
            raise RemoteWriteError(str(exc), path=path, status_code=exc.status_code) from exc
        if existing is None:
            raise RemoteWriteError(f"{path} does not exist", path=path, status_code=404)
        if revision != if_match:
            raise ConflictError(f"{path} changed since revision {if_match}", path=path, status_code=412)
        if not isinstance(existing, dict):
            raise RemoteWriteError(f"{path} does not hold an object", path=path)
        changes["updatedAt"] = self._stamp_after(existing)
        merged = {**existing, **changes}
        await self._bounded("PUT", path, self._transport.put(path, merged, if_match=if_match))
        _logger.debug("Conditionally updated %s fields=%s", path, sorted(changes))

    async def _read_for_write(self, path: str) -> Any:
        try:
            return await self._bounded("GET", path, self._transport.get(path))
        except RemoteReadError as exc:
            raise RemoteWriteError(str(exc), path=path, status_code=exc.status_code) from exc

    async def batch_update(self, updates: Mapping[str, Mapping[str, Any]]) -> None:
        """Shallow-merge fields into several entities with one multi-location write.

        *updates* maps entity ids to the fields to merge. Every entity must
        exist; nothing is written if one is missing or any change is invalid.
        """
        if not updates:
            raise EntityValidationError("batch update needs at least one entity")
        prepared = {
            validate_key(entity_id): self.prepare_update(entity_id, fields) for entity_id, fields in updates.items()
        }
        paths = [self._path(entity_id) for entity_id in prepared]
        existing = await asyncio.gather(*(self._read_for_write(path) for path in paths))

        missing = [path for path, value in zip(paths, existing, strict=True) if value is None]
        if missing:
            raise RemoteWriteError(f"{', '.join(missing)} does not exist", path=missing[0], status_code=404)

        locations: dict[str, Any] = {}
        for path, current, changes in zip(paths, existing, prepared.values(), strict=True):
            if isinstance(current, Mapping):
                changes["updatedAt"] = self._stamp_after(current)
            for field, value in changes.items():
                locations[f"{path}/{field}"] = value
        await self._bounded("PATCH", self._spec.key, self._transport.patch_many(locations))
        _logger.debug("Batch updated %d entities in %s", len(prepared), self._spec.key)

    async def delete(self, entity_id: str) -> None:
        """Remove ``collection/id``. Deleting a missing id succeeds."""
        entity_id = validate_key(entity_id)
        path = self._path(entity_id)
        await self._bounded("DELETE", path, self._transport.delete(path))
        _logger.debug("Deleted %s", path)

    async def read(self, entity_id: str) -> dict[str, Any] | None:
        """One-shot fetch of a single entity."""
        entity, _ = await self._read(entity_id, with_revision=False)
        return entity

    async def read_revision(self, entity_id: str) -> tuple[dict[str, Any] | None, str]:
        """Fetch an entity together with the revision tag accepted by ``if_match``."""
        entity, revision = await self._read(entity_id, with_revision=True)
        return entity, revision or ""

    async def _read(self, entity_id: str, *, with_revision: bool) -> tuple[dict[str, Any] | None, str | None]:
        entity_id = validate_key(entity_id)
        path = self._path(entity_id)
        revision: str | None = None
        if with_revision:
            value, revision = await self._bounded("GET", path, self._transport.get_with_revision(path))
        else:
            value = await self._bounded("GET", path, self._transport.get(path))
        if value is None:
            return None, revision
        if not isinstance(value, dict):
            raise RemoteReadError(f"{path} does not hold an object", path=path)
        entity = dict(value)
        entity.setdefault("id", entity_id)
        return entity, revision

    # ------------------------------------------------------------------
    # Live subscription
    # ------------------------------------------------------------------

    def subscribe(
        self,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Start a background listener delivering full snapshots.

        ``on_snapshot`` runs once with the current collection and again
        after every change by any client. ``on_error`` runs on listener
        failures; dropped streams reconnect after ``reconnect_delay`` while
        ``cancel``/``auth_revoked`` and permission errors end the listener.
        Must be called from a running event loop.
        """
        subscription = Subscription(self.key)
        task = asyncio.get_running_loop().create_task(
            self._listen(subscription, on_snapshot, on_error),
            name=f"fleetsync-subscribe-{self.key}",
        )
        subscription._attach(task)  # noqa: SLF001
        return subscription

    async def _listen(
        self,
        subscription: Subscription,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None,
    ) -> None:
        while subscription.active:
            tree: Any = None
            terminal = False
            try:
                async with contextlib.aclosing(self._transport.stream(self.key)) as events:
                    async for event in events:
                        if not subscription.active:
                            return
                        if event.event in TERMINAL_EVENTS:
                            terminal = True
                            raise SubscriptionError(
                                f"Listener on {self.key} ended by server ({event.event}): {event.data}",
                                path=self.key,
                            )
                        if event.event not in DATA_EVENTS:
                            continue
                        tree = apply_event(tree, event)
                        items = collection_items(tree, collection=self.key)
                        if not subscription.active:
                            return
                        try:
                            on_snapshot(items)
                        except Exception:
                            _logger.debug("Snapshot callback for %s failed", self.key, exc_info=True)
                error = SubscriptionError(f"Stream on {self.key} ended", path=self.key)
            except asyncio.CancelledError:
                raise
            except SubscriptionError as exc:
                error = exc
            except RemoteStoreError as exc:
                error = SubscriptionError(str(exc), path=self.key, status_code=exc.status_code)
            except Exception as exc:
                _logger.debug("Unexpected listener failure on %s", self.key, exc_info=True)
                error = SubscriptionError(f"Listener on {self.key} failed: {exc}", path=self.key)

            if not subscription.active:
                return
            _logger.warning("Subscription to %s failed: %s", self.key, error)
            if on_error is not None:
                try:
                    on_error(error)
                except Exception:
                    _logger.debug("Error callback for %s failed", self.key, exc_info=True)
            if terminal or error.status_code in (401, 403) or self._reconnect_delay <= 0:
                subscription._mark_closed()  # noqa: SLF001
                return
            await asyncio.sleep(self._reconnect_delay)
