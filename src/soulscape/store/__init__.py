"""TTL entity store and the snapshot/stroke adapter on top of it."""

from soulscape.store.entity_store import (
    Entity,
    EntityStore,
    EntityStoreError,
    HttpEntityStore,
    InMemoryEntityStore,
)
from soulscape.store.snapshots import SNAPSHOT_TYPE, STROKE_TYPE, SnapshotStore, StoreError

__all__ = [
    "SNAPSHOT_TYPE",
    "STROKE_TYPE",
    "Entity",
    "EntityStore",
    "EntityStoreError",
    "HttpEntityStore",
    "InMemoryEntityStore",
    "SnapshotStore",
    "StoreError",
]
