"""
dualcache
=========

Dual-layer caching for Python applications: an ordered, deduplicated
collection of records held in memory and mirrored to durable storage.

The package provides a small API:

* :class:`dualcache.store.Store` holding records unique by a caller-supplied key
* :class:`dualcache.operation.Operation` chaining mutations into one batch
* :class:`dualcache.invalidation.InvalidationStrategy` evicting records before inserts
* :class:`dualcache.value.StoredValue` persisting one value with a default

Reads are synchronous snapshots; every mutation persists to the storage engine
before the in-memory collection is swapped and observers are notified.
Observers subscribe to full-state snapshots or to transition events and
always receive current state first.

Built-in storage engines:

* ``memory``: in-process, for tests and ephemeral caches
* ``disk``: one file per record with atomic replace
* ``sqlite``: standard library ``sqlite3``
* ``redis``: optional plugin package ``dualcache_redis``

Typical usage::

    from dualcache import DataclassCodec, DiskStorageConfig, DiskStorageEngine, Store, attribute_key

    store = Store.open(
        DiskStorageEngine(DiskStorageConfig(directory="~/.shop/cart")),
        attribute_key("sku"),
        codec=DataclassCodec(CartItem),
    )
    store.add([coat, sweater])
    store.operation().remove_all().add(purse).run()

    with store.state_stream() as updates:
        for items in updates:
            print(items)
"""

from .backends import StorageBackend, available_backends, create_storage, create_store
from .channel import BroadcastChannel, Subscription
from .codec import DataclassCodec, JSONCodec, RecordCodec
from .collection import OrderedKeyedCollection
from .config import DiskStorageConfig, OverflowPolicy, SQLiteStorageConfig, StoreConfig
from .events import EventKind, StoreEvent
from .exceptions import (
    BackendConfigurationError,
    BackendError,
    BackendNotAvailableError,
    DecodingError,
    DualCacheError,
    EncodingError,
    KeyExtractionError,
    OperationStateError,
    StoreClosedError,
    SubscriptionClosedError,
)
from .invalidation import InvalidationStrategy
from .keys import attribute_key, identity_key, item_key, storage_key
from .operation import Operation, OperationAction
from .persistence import DiskStorageEngine
from .sqlite_storage import SQLiteStorageEngine
from .storage import MemoryStorageEngine
from .storage_protocol import StorageEngine
from .store import Store
from .value import StoredValue

__all__ = [
    "BackendConfigurationError",
    "BackendError",
    "BackendNotAvailableError",
    "BroadcastChannel",
    "DataclassCodec",
    "DecodingError",
    "DiskStorageConfig",
    "DiskStorageEngine",
    "DualCacheError",
    "EncodingError",
    "EventKind",
    "InvalidationStrategy",
    "JSONCodec",
    "KeyExtractionError",
    "MemoryStorageEngine",
    "Operation",
    "OperationAction",
    "OperationStateError",
    "OrderedKeyedCollection",
    "OverflowPolicy",
    "RecordCodec",
    "SQLiteStorageConfig",
    "SQLiteStorageEngine",
    "StorageBackend",
    "StorageEngine",
    "Store",
    "StoreClosedError",
    "StoreConfig",
    "StoreEvent",
    "StoredValue",
    "Subscription",
    "SubscriptionClosedError",
    "attribute_key",
    "available_backends",
    "create_storage",
    "create_store",
    "identity_key",
    "item_key",
    "storage_key",
]
