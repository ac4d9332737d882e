"""
Dual-layer store: an ordered keyed collection in memory mirrored to storage.

All mutations go through one locked pipeline:

1. encode and key the incoming records (pre-flight, no state change)
2. evaluate the invalidation strategy against current state
3. persist evictions and writes to the storage engine
4. swap the in-memory collection
5. publish the new state and the transition events

Because persistence precedes the swap, a storage failure leaves the
collection untouched, and readers never observe state that storage does not
hold.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from typing import Any, Generic, TypeVar

from .channel import BroadcastChannel, Subscription
from .codec import JSONCodec, RecordCodec
from .collection import OrderedKeyedCollection, as_batch
from .config import StoreConfig
from .events import StoreEvent
from .exceptions import (
    BackendError,
    DualCacheError,
    EncodingError,
    StoreClosedError,
)
from .invalidation import InvalidationStrategy
from .keys import KeyFunction, extract_key, identity_key, storage_key
from .operation import Operation
from .storage_protocol import StorageEngine

_LOGGER = logging.getLogger(__name__)

RecordT = TypeVar("RecordT")

_STREAMS = ("events", "state")


class Store(Generic[RecordT]):
    """
    In-memory ordered collection of records, durably mirrored to storage.

    Parameters
    ----------
    storage:
        Storage engine the collection is persisted to and hydrated from.
    key_of:
        Function returning the unique string key of a record.
    codec:
        Record serializer; defaults to :class:`dualcache.codec.JSONCodec`.
    config:
        Observer buffering settings.
    hydrate_in_background:
        When true (default) persisted records load on a background thread and
        the store starts out empty; use :meth:`await_loaded` to wait. When
        false, the constructor returns only after hydration and raises
        :class:`BackendError` if storage cannot be read.

    Examples
    --------
    ::

        store = Store.open(DiskStorageEngine(), key_of=attribute_key("sku"),
                           codec=DataclassCodec(Product))
        store.add([coat, sweater])
        with store.state_stream() as updates:
            for items in updates:
                render(items)
    """

    @classmethod
    def open(
        cls,
        storage: StorageEngine,
        key_of: KeyFunction,
        *,
        codec: RecordCodec[RecordT] | None = None,
        config: StoreConfig | None = None,
    ) -> "Store[RecordT]":
        """Build a store and hydrate it before returning."""
        return cls(storage, key_of, codec=codec, config=config, hydrate_in_background=False)

    @classmethod
    def for_identifiable(
        cls,
        storage: StorageEngine,
        *,
        codec: RecordCodec[RecordT] | None = None,
        config: StoreConfig | None = None,
        hydrate_in_background: bool = True,
    ) -> "Store[RecordT]":
        """Build a store keyed by each record's ``id`` attribute."""
        return cls(
            storage,
            identity_key,
            codec=codec,
            config=config,
            hydrate_in_background=hydrate_in_background,
        )

    def __init__(
        self,
        storage: StorageEngine,
        key_of: KeyFunction,
        *,
        codec: RecordCodec[RecordT] | None = None,
        config: StoreConfig | None = None,
        hydrate_in_background: bool = True,
    ) -> None:
        self.config = config or StoreConfig()
        self._storage = storage
        self._key_of = key_of
        self._codec: RecordCodec[RecordT] = codec if codec is not None else JSONCodec()

        self._collection: OrderedKeyedCollection[RecordT] = OrderedKeyedCollection()
        self._mutation_lock = threading.RLock()
        self._closed = False

        # Hydration state
        self._loaded = threading.Event()
        self._hydration_cancel = threading.Event()
        self._hydration_error: BackendError | None = None
        self._hydration_thread: threading.Thread | None = None

        # Observation state
        buffer_size = self.config.effective_buffer_size
        self._state_channel: BroadcastChannel[tuple[RecordT, ...]] = BroadcastChannel(
            (),
            maxsize=buffer_size,
            policy=self.config.overflow_policy,
        )
        self._event_channel: BroadcastChannel[StoreEvent] = BroadcastChannel(
            StoreEvent.initialized(),
            maxsize=buffer_size,
            policy=self.config.overflow_policy,
        )
        self._listener_lock = threading.RLock()
        self._listeners: dict[str, tuple[Subscription[Any], threading.Thread]] = {}

        self._stats_lock = threading.Lock()
        self._stats: dict[str, int] = {}

        if hydrate_in_background:
            self._hydration_thread = threading.Thread(
                target=self._hydrate,
                name="dualcache-hydration",
                daemon=True,
            )
            self._hydration_thread.start()
        else:
            self._hydrate()
            if self._hydration_error is not None:
                raise self._hydration_error

    # ------------------------------------------------------------------ #
    # Read API
    # ------------------------------------------------------------------ #

    @property
    def items(self) -> tuple[RecordT, ...]:
        """Return an immutable snapshot of the records in order."""
        return self._collection.items

    @property
    def count(self) -> int:
        return len(self._collection)

    def contains(self, key: str) -> bool:
        """Return ``True`` when a record with ``key`` is present."""
        return self._collection.contains(key)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the record stored under ``key``, otherwise ``default``."""
        return self._collection.get(key, default)

    def keys(self) -> tuple[str, ...]:
        return self._collection.keys()

    def __len__(self) -> int:
        return len(self._collection)

    def __iter__(self) -> Iterator[RecordT]:
        return iter(self._collection)

    # ------------------------------------------------------------------ #
    # Hydration
    # ------------------------------------------------------------------ #

    @property
    def is_loaded(self) -> bool:
        return self._loaded.is_set()

    @property
    def hydration_error(self) -> BackendError | None:
        """Return the storage error hydration hit, if any."""
        return self._hydration_error

    def await_loaded(self, timeout: float | None = None) -> bool:
        """
        Block until hydration finished.

        Returns ``False`` if ``timeout`` elapsed first. A failed or cancelled
        hydration still counts as finished; the store is then empty.
        """
        return self._loaded.wait(timeout)

    def cancel_hydration(self) -> None:
        """
        Stop an in-progress background hydration.

        Records not yet decoded are discarded and the store stays empty. Has
        no effect once hydration finished.
        """
        self._hydration_cancel.set()

    def _hydrate(self) -> None:
        entries: list[tuple[str, RecordT]] = []
        cancelled = False
        try:
            raw_entries = self._storage.read_all()
        except Exception as exc:  # noqa: BLE001 - recorded and surfaced via hydration_error
            error = BackendError("Storage engine failed while reading persisted records.")
            error.__cause__ = exc
            self._hydration_error = error
            self._inc_stat("backend_failures")
            _LOGGER.error("Hydration failed, starting with an empty store: %s", exc)
            raw_entries = []

        for storage_id, payload in raw_entries:
            if self._hydration_cancel.is_set():
                cancelled = True
                break
            try:
                record = self._codec.decode(payload)
                key = extract_key(self._key_of, record)
            except Exception as exc:  # noqa: BLE001 - custom codecs may raise anything
                self._inc_stat("decode_failures")
                _LOGGER.warning("Skipping unreadable persisted record %s: %s", storage_id, exc)
                continue
            entries.append((key, record))

        if cancelled or self._hydration_cancel.is_set():
            entries = []
            _LOGGER.info("Hydration cancelled before completion.")

        try:
            with self._mutation_lock:
                self._collection = OrderedKeyedCollection(entries)
                self._inc_stat("hydrated_records", delta=len(self._collection))
                self._publish(self._collection, [StoreEvent.loaded(self._collection.items)])
        finally:
            # Waiting mutations must never block on a hydration that died.
            self._loaded.set()
        _LOGGER.debug("Hydrated %d record(s).", len(entries))

    def _wait_until_loaded(self) -> None:
        self._loaded.wait()

    # ------------------------------------------------------------------ #
    # Mutation API
    # ------------------------------------------------------------------ #

    def add(
        self,
        records: RecordT | Iterable[RecordT],
        *,
        invalidation: InvalidationStrategy[RecordT] | None = None,
    ) -> None:
        """
        Insert or update one record or a list of records.

        The batch is deduplicated by key (last occurrence wins). Records whose
        key is present replace the existing record in place; new keys are
        appended. ``invalidation`` evicts existing records from both layers
        before the insertion.

        Raises
        ------
        EncodingError, KeyExtractionError
            Before anything changes, if a record cannot be keyed or encoded.
        BackendError
            If storage fails; the collection is unchanged apart from
            evictions that storage already applied.
        StoreClosedError
            If the store was closed.
        """
        batch = as_batch(records)
        strategy = invalidation if invalidation is not None else InvalidationStrategy.none()

        self._wait_until_loaded()
        with self._mutation_lock:
            self._ensure_open()
            prepared = self._encode_batch(batch)
            current = self._collection

            if strategy.evicts_everything:
                evicted_keys = list(current.keys())
            else:
                evicted_keys = [
                    key
                    for key in dict.fromkeys(
                        extract_key(self._key_of, record) for record in strategy.evicted(current.items)
                    )
                    if current.contains(key)
                ]
            if not prepared and not evicted_keys and not strategy.evicts_everything:
                return

            evicted_state, evicted_records = current.without(evicted_keys)
            if strategy.evicts_everything:
                self._call_storage("remove_all", self._storage.remove_all)
            elif evicted_keys:
                self._call_storage(
                    "remove",
                    self._storage.remove,
                    [storage_key(key) for key in evicted_keys],
                )

            try:
                if prepared:
                    self._call_storage(
                        "write",
                        self._storage.write,
                        [(storage_key(key), payload) for key, (_, payload) in prepared.items()],
                    )
            except BackendError:
                if evicted_records:
                    self._collection = evicted_state
                    self._publish(evicted_state, [StoreEvent.removed(evicted_records)])
                raise

            updated = evicted_state.upserting((key, record) for key, (record, _) in prepared.items())
            self._collection = updated

            events: list[StoreEvent] = []
            stale = tuple(
                record
                for record in evicted_records
                if extract_key(self._key_of, record) not in prepared
            )
            if stale:
                events.append(StoreEvent.removed(stale))
            if prepared:
                events.append(StoreEvent.inserted(tuple(record for record, _ in prepared.values())))
            self._publish(updated, events)

            self._inc_stat("mutations")
            self._inc_stat("records_written", delta=len(prepared))
            self._inc_stat("records_removed", delta=len(stale))
            _LOGGER.debug(
                "Added %d record(s) with %s invalidation, evicted %d.",
                len(prepared),
                strategy.name,
                len(evicted_records),
            )

    def remove(self, records: RecordT | Iterable[RecordT]) -> tuple[RecordT, ...]:
        """
        Remove one record or a list of records, matched by key.

        Returns the records that were actually present; absent keys are
        ignored and removing nothing is not an error.
        """
        batch = as_batch(records)
        keys = [extract_key(self._key_of, record) for record in batch]
        return self._remove_keys(keys)

    def remove_keys(self, keys: str | Iterable[str]) -> tuple[RecordT, ...]:
        """Remove records addressed by key; see :meth:`remove`."""
        if isinstance(keys, str):
            keys = [keys]
        return self._remove_keys([str(key) for key in keys])

    def remove_all(self) -> tuple[RecordT, ...]:
        """
        Remove every record from memory and storage in one bulk operation.

        Always publishes the empty snapshot and a ``removed`` event, whose
        records are empty when the store already was. Returns the records
        that were present.
        """
        self._wait_until_loaded()
        with self._mutation_lock:
            self._ensure_open()
            previous = self._collection
            self._call_storage("remove_all", self._storage.remove_all)
            empty: OrderedKeyedCollection[RecordT] = OrderedKeyedCollection()
            self._collection = empty
            self._publish(empty, [StoreEvent.removed(previous.items)])
            self._inc_stat("mutations")
            self._inc_stat("records_removed", delta=len(previous))
            _LOGGER.debug("Removed all %d record(s).", len(previous))
            return previous.items

    def operation(self) -> Operation:
        """
        Start a chain of mutations that runs as one batch on ``run()``.

        Example: ``store.operation().remove_all().add(fresh).run()``.
        """
        return Operation(self)

    def _remove_keys(self, keys: list[str]) -> tuple[RecordT, ...]:
        self._wait_until_loaded()
        with self._mutation_lock:
            self._ensure_open()
            current = self._collection
            remaining, removed = current.without(keys)
            if not removed:
                return ()
            present = [key for key in dict.fromkeys(keys) if current.contains(key)]
            self._call_storage("remove", self._storage.remove, [storage_key(key) for key in present])
            self._collection = remaining
            self._publish(remaining, [StoreEvent.removed(removed)])
            self._inc_stat("mutations")
            self._inc_stat("records_removed", delta=len(removed))
            _LOGGER.debug("Removed %d record(s).", len(removed))
            return removed

    def _encode_batch(self, batch: list[RecordT]) -> dict[str, tuple[RecordT, bytes]]:
        """
        Key and encode a batch, keeping the last record per key.

        A repeated key keeps the position of its first occurrence.
        """
        prepared: dict[str, tuple[RecordT, bytes]] = {}
        for record in batch:
            key = extract_key(self._key_of, record)
            try:
                payload = self._codec.encode(record)
            except DualCacheError:
                self._inc_stat("encoding_failures")
                raise
            except Exception as exc:  # noqa: BLE001 - custom codecs may raise anything
                self._inc_stat("encoding_failures")
                raise EncodingError(f"Codec failed to encode record {record!r}.") from exc
            prepared[key] = (record, bytes(payload))
        return prepared

    def _call_storage(self, action: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return func(*args)
        except Exception as exc:  # noqa: BLE001 - wrapped into library error
            self._inc_stat("backend_failures")
            _LOGGER.warning("Storage %s failed: %s", action, exc)
            raise BackendError(f"Storage engine failed during {action}.") from exc

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreClosedError("Store is closed. Create a new store to keep mutating.")

    def _publish(
        self,
        state: OrderedKeyedCollection[RecordT],
        events: list[StoreEvent],
    ) -> None:
        snapshot = state.items
        replay = StoreEvent.loaded(snapshot)
        for event in events:
            self._event_channel.publish(event, replay=replay)
        self._state_channel.publish(snapshot)

    # ------------------------------------------------------------------ #
    # Observation API
    # ------------------------------------------------------------------ #

    def state_stream(self) -> Subscription[tuple[RecordT, ...]]:
        """
        Subscribe to full snapshots of ``items`` after every mutation.

        The first delivery is the current snapshot.
        """
        return self._state_channel.subscribe()

    def event_stream(self) -> Subscription[StoreEvent]:
        """
        Subscribe to transition events.

        The first delivery is ``initialized`` while hydration is pending,
        otherwise ``loaded`` carrying the current snapshot.
        """
        return self._event_channel.subscribe()

    def add_listener(
        self,
        callback: Callable[[Any], None],
        *,
        stream: str = "events",
    ) -> str:
        """
        Run ``callback`` for every delivery of ``stream`` on a dedicated thread.

        ``stream`` is ``"events"`` (:class:`StoreEvent` values) or ``"state"``
        (``items`` snapshots). Callback exceptions are logged and never reach
        mutation callers.

        Returns
        -------
        str
            Subscription ID used with :meth:`remove_listener`.
        """
        if stream not in _STREAMS:
            raise ValueError(f"stream must be one of {_STREAMS}, got {stream!r}.")
        channel: BroadcastChannel[Any] = (
            self._event_channel if stream == "events" else self._state_channel
        )
        subscription = channel.subscribe()
        thread = threading.Thread(
            target=self._listener_loop,
            args=(subscription, callback),
            name=f"dualcache-listener-{subscription.subscription_id[:8]}",
            daemon=True,
        )
        with self._listener_lock:
            self._listeners[subscription.subscription_id] = (subscription, thread)
        thread.start()
        return subscription.subscription_id

    def remove_listener(self, subscription_id: str) -> bool:
        """Unregister a listener and wait briefly for its thread to finish."""
        with self._listener_lock:
            entry = self._listeners.pop(subscription_id, None)
        if entry is None:
            return False
        subscription, thread = entry
        subscription.close()
        if thread is not threading.current_thread():
            thread.join(timeout=self.config.listener_join_timeout_seconds)
        return True

    def _listener_loop(self, subscription: Subscription[Any], callback: Callable[[Any], None]) -> None:
        for value in subscription:
            try:
                callback(value)
            except Exception:  # noqa: BLE001 - observer failures stay with the observer
                self._inc_stat("listener_failures")
                _LOGGER.exception("Store listener %s raised.", subscription.subscription_id)

    # ------------------------------------------------------------------ #
    # Lifecycle and diagnostics
    # ------------------------------------------------------------------ #

    @property
    def is_closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """
        Cancel hydration, reject further mutations, and release observers.

        An in-flight mutation finishes first. Storage engines are not closed;
        they belong to the caller.
        """
        self._hydration_cancel.set()
        with self._mutation_lock:
            if self._closed:
                return
            self._closed = True
        with self._listener_lock:
            subscription_ids = list(self._listeners)
        for subscription_id in subscription_ids:
            self.remove_listener(subscription_id)
        self._state_channel.close()
        self._event_channel.close()
        _LOGGER.debug("Store closed.")

    def __enter__(self) -> "Store[RecordT]":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> bool:
        self.close()
        return False

    def stats(self) -> dict[str, Any]:
        """
        Return cumulative counters and live gauges.
        """
        with self._stats_lock:
            payload: dict[str, Any] = dict(self._stats)
        payload["count"] = len(self._collection)
        payload["loaded"] = self.is_loaded
        payload["closed"] = self._closed
        payload["subscribers"] = (
            self._state_channel.subscriber_count + self._event_channel.subscriber_count
        )
        payload["dropped_deliveries"] = (
            self._state_channel.dropped_deliveries() + self._event_channel.dropped_deliveries()
        )
        with self._listener_lock:
            payload["listeners"] = len(self._listeners)
        return payload

    def _inc_stat(self, key: str, *, delta: int = 1) -> None:
        with self._stats_lock:
            self._stats[key] = self._stats.get(key, 0) + delta
