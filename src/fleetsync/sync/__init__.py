"""Collection synchronization: dedupe, live entity lists and CRUD actions."""

from fleetsync.sync.dedupe import dedupe, duplicate_ids, entity_id
from fleetsync.sync.dispatcher import ActionResult, CrudActionDispatcher
from fleetsync.sync.ids import IdAllocator, allocate_id
from fleetsync.sync.synchronizer import EntityListSynchronizer, SyncState

__all__ = [
    "ActionResult",
    "CrudActionDispatcher",
    "EntityListSynchronizer",
    "IdAllocator",
    "SyncState",
    "allocate_id",
    "dedupe",
    "duplicate_ids",
    "entity_id",
]
