"""Root object owning every live collection of a fleet dashboard."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import aiohttp

from fleetsync import _constants as c
from fleetsync._memory import InMemoryTransport
from fleetsync._transport import RestTransport, Transport
from fleetsync.config import FleetConfig
from fleetsync.exceptions import FleetError
from fleetsync.otp import OtpRateLimiter
from fleetsync.registry import get_collection
from fleetsync.session import SessionGate
from fleetsync.stats import MaintenanceStats, VehicleStats, maintenance_stats, vehicle_stats
from fleetsync.store import RemoteCollectionStore
from fleetsync.sync.dispatcher import ActionResult, CrudActionDispatcher
from fleetsync.sync.synchronizer import EntityListSynchronizer

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class CollectionBinding:
    """Store, live list and action dispatcher for one tracked collection."""

    store: RemoteCollectionStore
    synchronizer: EntityListSynchronizer[Any]
    dispatcher: CrudActionDispatcher


class FleetDashboard:
    """Async context manager wiring transport, stores and synchronizers.

    Usage::

        async with FleetDashboard(FleetConfig.from_env()) as dashboard:
            await dashboard.wait_until_live()
            result = await dashboard.dispatcher("vehicles").create({"driver": "A"})
            print(dashboard.vehicles.items)

    Each tracked collection gets its own synchronizer; nothing is shared
    through module globals, and leaving the context tears every
    subscription down.
    """

    def __init__(
        self,
        config: FleetConfig | None = None,
        *,
        transport: Transport | None = None,
        http_session: aiohttp.ClientSession | None = None,
        session_gate: SessionGate | None = None,
        collections: Iterable[str] = c.TRACKED_COLLECTIONS,
        parse_models: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config or FleetConfig()
        self._transport = transport
        self._external_transport = transport is not None
        self._http_session = http_session
        self._external_session = http_session is not None
        self._session_gate = session_gate
        self._collection_keys = tuple(collections)
        self._parse_models = parse_models
        self._clock = clock
        self._stores: dict[str, RemoteCollectionStore] = {}
        self._bindings: dict[str, CollectionBinding] = {}

    async def __aenter__(self) -> FleetDashboard:
        if self._transport is None:
            if self._config.is_memory:
                self._transport = InMemoryTransport()
            else:
                if self._http_session is None:
                    self._http_session = aiohttp.ClientSession()
                self._transport = RestTransport(self._config, self._http_session)
        for key in self._collection_keys:
            self._bindings[key] = self._bind(key)
        _logger.debug("Dashboard started with %d collections", len(self._bindings))
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        bindings = list(self._bindings.values())
        self._bindings.clear()
        for binding in bindings:
            binding.synchronizer.close()
        await asyncio.gather(*(binding.synchronizer.aclose() for binding in bindings))
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        if not self._external_transport:
            self._transport = None
        self._stores.clear()

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    @property
    def config(self) -> FleetConfig:
        return self._config

    @property
    def transport(self) -> Transport:
        if self._transport is None:
            raise FleetError("Dashboard is not running; use 'async with FleetDashboard(...)'")
        return self._transport

    @property
    def session_gate(self) -> SessionGate | None:
        return self._session_gate

    def store(self, key: str) -> RemoteCollectionStore:
        """Store for any collection path, tracked or not."""
        spec = get_collection(key)
        store = self._stores.get(spec.key)
        if store is None:
            store = RemoteCollectionStore(
                self.transport,
                spec,
                timeout=self._config.request_timeout,
                reconnect_delay=self._config.stream_retry_delay,
                clock=self._clock,
            )
            self._stores[spec.key] = store
        return store

    def _bind(self, key: str) -> CollectionBinding:
        store = self.store(key)
        model = store.spec.model
        parse = model.model_validate if self._parse_models and model is not None else None
        return CollectionBinding(
            store=store,
            synchronizer=EntityListSynchronizer(store, parse=parse),
            dispatcher=CrudActionDispatcher(
                store,
                retry_attempts=self._config.retry_attempts,
                retry_backoff=self._config.retry_backoff,
            ),
        )

    def binding(self, key: str) -> CollectionBinding:
        try:
            return self._bindings[key]
        except KeyError:
            raise FleetError(f"Collection {key!r} is not tracked by this dashboard") from None

    def synchronizer(self, key: str) -> EntityListSynchronizer[Any]:
        return self.binding(key).synchronizer

    def dispatcher(self, key: str) -> CrudActionDispatcher:
        return self.binding(key).dispatcher

    async def wait_until_live(self, timeout: float | None = None) -> None:
        """Wait until every tracked collection delivered a snapshot or an error."""
        await asyncio.gather(
            *(binding.synchronizer.wait_live(timeout) for binding in self._bindings.values())
        )

    @property
    def errors(self) -> dict[str, str]:
        """Current subscription errors by collection, for a status banner."""
        return {
            key: binding.synchronizer.error
            for key, binding in self._bindings.items()
            if binding.synchronizer.error is not None
        }

    # ------------------------------------------------------------------
    # Tracked collections
    # ------------------------------------------------------------------

    @property
    def vehicles(self) -> EntityListSynchronizer[Any]:
        return self.synchronizer(c.VEHICLES)

    @property
    def trips(self) -> EntityListSynchronizer[Any]:
        return self.synchronizer(c.TRIPS)

    @property
    def fuel_records(self) -> EntityListSynchronizer[Any]:
        return self.synchronizer(c.FUEL_RECORDS)

    @property
    def fuel_purchases(self) -> EntityListSynchronizer[Any]:
        return self.synchronizer(c.FUEL_PURCHASES)

    @property
    def maintenance_schedule(self) -> EntityListSynchronizer[Any]:
        return self.synchronizer(c.MAINTENANCE_SCHEDULE)

    @property
    def service_history(self) -> EntityListSynchronizer[Any]:
        return self.synchronizer(c.SERVICE_HISTORY)

    @property
    def parts_inventory(self) -> EntityListSynchronizer[Any]:
        return self.synchronizer(c.PARTS_INVENTORY)

    @property
    def notifications(self) -> EntityListSynchronizer[Any]:
        return self.synchronizer(c.NOTIFICATIONS)

    @property
    def transport_history(self) -> EntityListSynchronizer[Any]:
        return self.synchronizer(c.TRANSPORT_HISTORY)

    # ------------------------------------------------------------------
    # Derived views and shortcuts
    # ------------------------------------------------------------------

    def vehicle_stats(self) -> VehicleStats:
        return vehicle_stats(self.vehicles.items)

    def maintenance_stats(self) -> MaintenanceStats:
        return maintenance_stats(self.maintenance_schedule.items)

    def unread_notifications(self) -> list[Any]:
        return [
            item
            for item in self.notifications.items
            if not (item.get("read") if isinstance(item, dict) else getattr(item, "read", False))
        ]

    async def mark_notification_read(self, notification_id: str) -> ActionResult:
        return await self.dispatcher(c.NOTIFICATIONS).update(notification_id, {"read": True})

    async def clear_service_history(self) -> ActionResult:
        """Delete every entry currently listed in the service history."""
        ids = [
            item["id"] if isinstance(item, dict) else item.id
            for item in self.service_history.items
        ]
        return await self.dispatcher(c.SERVICE_HISTORY).delete_many(ids)

    def otp_limiter(self) -> OtpRateLimiter:
        return OtpRateLimiter(
            self.store(c.OTP_ATTEMPTS),
            cooldown=self._config.otp_cooldown,
            max_per_hour=self._config.otp_max_per_hour,
            clock=self._clock,
        )
