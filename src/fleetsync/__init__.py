"""fleetsync - Async realtime-database sync layer for fleet dashboards."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fleetsync")
except PackageNotFoundError:
    __version__ = "0+local"
from fleetsync._memory import InMemoryTransport
from fleetsync._transport import RestTransport, Transport
from fleetsync.config import FleetConfig
from fleetsync.dashboard import CollectionBinding, FleetDashboard
from fleetsync.exceptions import (
    AuthError,
    ConflictError,
    EntityValidationError,
    FleetConfigError,
    FleetError,
    RateLimitError,
    RemoteReadError,
    RemoteStoreError,
    RemoteTimeoutError,
    RemoteWriteError,
    SessionExpiredError,
    SubscriptionError,
)
from fleetsync.otp import OtpRateLimiter
from fleetsync.registry import COLLECTIONS, CollectionSpec, get_collection
from fleetsync.session import (
    FileSessionStorage,
    MemorySessionStorage,
    Pbkdf2CredentialVerifier,
    Session,
    SessionGate,
)
from fleetsync.store import RemoteCollectionStore, Subscription
from fleetsync.sync import (
    ActionResult,
    CrudActionDispatcher,
    EntityListSynchronizer,
    SyncState,
    allocate_id,
    dedupe,
)

__all__ = [
    "COLLECTIONS",
    "ActionResult",
    "AuthError",
    "CollectionBinding",
    "CollectionSpec",
    "ConflictError",
    "CrudActionDispatcher",
    "EntityListSynchronizer",
    "EntityValidationError",
    "FileSessionStorage",
    "FleetConfig",
    "FleetConfigError",
    "FleetDashboard",
    "FleetError",
    "InMemoryTransport",
    "MemorySessionStorage",
    "OtpRateLimiter",
    "Pbkdf2CredentialVerifier",
    "RateLimitError",
    "RemoteCollectionStore",
    "RemoteReadError",
    "RemoteStoreError",
    "RemoteTimeoutError",
    "RemoteWriteError",
    "RestTransport",
    "Session",
    "SessionExpiredError",
    "SessionGate",
    "Subscription",
    "SubscriptionError",
    "SyncState",
    "Transport",
    "__version__",
    "allocate_id",
    "dedupe",
    "get_collection",
]
