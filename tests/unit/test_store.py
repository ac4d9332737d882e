"""
Unit tests for the store mutation pipeline and hydration lifecycle.
"""

from __future__ import annotations

import threading
import unittest

from dualcache import (
    BackendError,
    DataclassCodec,
    EncodingError,
    InvalidationStrategy,
    KeyExtractionError,
    MemoryStorageEngine,
    Store,
    StoreClosedError,
    attribute_key,
    storage_key,
)

from support import (
    ALL_ITEMS,
    BELT,
    COAT,
    DUPLICATE_BELT,
    GatedStorageEngine,
    PURSE,
    SWEATER,
    UNIQUE_ITEMS,
    BoutiqueItem,
    RecordingStorageEngine,
    make_store,
)


class StoreAddTest(unittest.TestCase):
    """Validates insertion, dedup and in-place update semantics."""

    def setUp(self) -> None:
        self.storage = RecordingStorageEngine()
        self.store = make_store(self.storage)
        self.addCleanup(self.store.close)
        self.storage.reset_calls()

    def test_add_single_record(self) -> None:
        self.store.add(COAT)
        self.assertEqual((COAT,), self.store.items)
        self.assertTrue(self.store.contains("1"))
        self.assertEqual(COAT, self.store.get("1"))

    def test_add_batch_is_unique_by_key(self) -> None:
        self.store.add(ALL_ITEMS)
        self.assertEqual(tuple(UNIQUE_ITEMS), self.store.items)
        self.assertEqual(4, self.store.count)

    def test_duplicate_in_batch_keeps_last_occurrence(self) -> None:
        renamed = BoutiqueItem("4", "Leather Belt")
        self.store.add([BELT, COAT, renamed])
        self.assertEqual((renamed, COAT), self.store.items)
        self.assertEqual([("write", 2)], self.storage.calls)

    def test_repeated_adds_do_not_duplicate(self) -> None:
        self.store.add(COAT)
        self.store.add([SWEATER, SWEATER])
        self.store.add(PURSE)
        self.store.add(BELT)
        self.store.add(DUPLICATE_BELT)
        self.assertEqual((COAT, SWEATER, PURSE, BELT), self.store.items)

    def test_update_replaces_record_in_place(self) -> None:
        self.store.add([COAT, SWEATER, PURSE])
        wool = BoutiqueItem("2", "Wool Sweater")
        self.store.add(wool)
        self.assertEqual((COAT, wool, PURSE), self.store.items)

    def test_empty_batch_is_a_no_op(self) -> None:
        self.store.add([])
        self.assertEqual((), self.store.items)
        self.assertEqual([], self.storage.calls)

    def test_add_persists_under_hashed_keys(self) -> None:
        self.store.add(COAT)
        stored = dict(self.storage.read_all())
        self.assertIn(storage_key("1"), stored)

    def test_encoding_failure_changes_nothing(self) -> None:
        self.store.add(COAT)
        self.storage.reset_calls()
        with self.assertRaises(EncodingError):
            self.store.add([BELT, BoutiqueItem("5", object())])
        self.assertEqual((COAT,), self.store.items)
        self.assertEqual([], self.storage.calls)
        self.assertEqual(1, self.store.stats()["encoding_failures"])

    def test_key_failure_changes_nothing(self) -> None:
        with self.assertRaises(KeyExtractionError):
            self.store.add([BELT, BoutiqueItem("", "Nameless")])
        self.assertEqual((), self.store.items)
        self.assertEqual([], self.storage.calls)

    def test_backend_failure_leaves_memory_untouched(self) -> None:
        self.store.add(COAT)
        self.storage.fail_on.add("write")
        with self.assertRaises(BackendError):
            self.store.add(SWEATER)
        self.assertEqual((COAT,), self.store.items)
        self.assertEqual(1, self.store.stats()["backend_failures"])

        self.storage.fail_on.clear()
        self.store.add(SWEATER)
        self.assertEqual((COAT, SWEATER), self.store.items)

    def test_concurrent_adds_are_serialized(self) -> None:
        workers = 8
        per_worker = 25

        def run(worker_id: int) -> None:
            for index in range(per_worker):
                self.store.add(BoutiqueItem(f"{worker_id}-{index}", "item"))

        threads = [threading.Thread(target=run, args=(worker_id,)) for worker_id in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(workers * per_worker, self.store.count)
        self.assertEqual(workers * per_worker, len(self.storage))


class StoreInvalidationTest(unittest.TestCase):
    """Validates eviction composed with insertion."""

    def setUp(self) -> None:
        self.storage = RecordingStorageEngine()
        self.store = make_store(self.storage)
        self.addCleanup(self.store.close)
        self.store.add([COAT, SWEATER, PURSE])
        self.storage.reset_calls()

    def test_items_strategy_evicts_then_inserts(self) -> None:
        self.store.add(BELT, invalidation=InvalidationStrategy.items([SWEATER]))
        self.assertEqual((COAT, PURSE, BELT), self.store.items)
        self.assertEqual([("remove", 1), ("write", 1)], self.storage.calls)

    def test_all_strategy_clears_storage_in_one_call(self) -> None:
        self.store.add(BELT, invalidation=InvalidationStrategy.all())
        self.assertEqual((BELT,), self.store.items)
        self.assertEqual([("remove_all", 0), ("write", 1)], self.storage.calls)
        self.assertEqual(1, len(self.storage))

    def test_where_strategy_keeps_matching_records(self) -> None:
        self.store.add(
            BELT,
            invalidation=InvalidationStrategy.where(lambda record: record.value != "Purse"),
        )
        self.assertEqual((COAT, SWEATER, BELT), self.store.items)

    def test_evicted_record_that_is_reinserted_moves_to_end(self) -> None:
        wool = BoutiqueItem("1", "Wool Coat")
        self.store.add(wool, invalidation=InvalidationStrategy.items([COAT]))
        self.assertEqual((SWEATER, PURSE, wool), self.store.items)

        reopened = make_store(self.storage)
        self.addCleanup(reopened.close)
        self.assertEqual((SWEATER, PURSE, wool), reopened.items)

    def test_strategy_ignores_absent_records(self) -> None:
        self.store.add(BELT, invalidation=InvalidationStrategy.items([DUPLICATE_BELT]))
        self.assertEqual((COAT, SWEATER, PURSE, BELT), self.store.items)
        self.assertEqual([("write", 1)], self.storage.calls)

    def test_eviction_without_insert_still_applies(self) -> None:
        self.store.add([], invalidation=InvalidationStrategy.items([PURSE]))
        self.assertEqual((COAT, SWEATER), self.store.items)

    def test_write_failure_after_eviction_keeps_eviction(self) -> None:
        self.storage.fail_on.add("write")
        with self.assertRaises(BackendError):
            self.store.add(BELT, invalidation=InvalidationStrategy.items([SWEATER]))
        self.assertEqual((COAT, PURSE), self.store.items)
        self.assertEqual(2, len(self.storage))


class StoreRemoveTest(unittest.TestCase):
    """Validates removal by record, by key and in bulk."""

    def setUp(self) -> None:
        self.storage = RecordingStorageEngine()
        self.store = make_store(self.storage)
        self.addCleanup(self.store.close)
        self.store.add(UNIQUE_ITEMS)
        self.storage.reset_calls()

    def test_remove_single_record(self) -> None:
        removed = self.store.remove(SWEATER)
        self.assertEqual((SWEATER,), removed)
        self.assertEqual((COAT, PURSE, BELT), self.store.items)
        self.assertEqual([("remove", 1)], self.storage.calls)

    def test_remove_matches_by_key(self) -> None:
        removed = self.store.remove(BoutiqueItem("4", "Anything"))
        self.assertEqual((BELT,), removed)

    def test_remove_list_of_records(self) -> None:
        self.store.remove([COAT, PURSE])
        self.assertEqual((SWEATER, BELT), self.store.items)

    def test_remove_absent_record_touches_nothing(self) -> None:
        removed = self.store.remove(BoutiqueItem("99", "Hat"))
        self.assertEqual((), removed)
        self.assertEqual([], self.storage.calls)

    def test_remove_keys(self) -> None:
        self.assertEqual((COAT,), self.store.remove_keys("1"))
        self.assertEqual((PURSE, BELT), self.store.remove_keys(["3", "4", "5"]))
        self.assertEqual((SWEATER,), self.store.items)

    def test_remove_all_is_idempotent(self) -> None:
        removed = self.store.remove_all()
        self.assertEqual(tuple(UNIQUE_ITEMS), removed)
        self.assertEqual((), self.store.items)
        self.assertEqual(0, len(self.storage))

        self.assertEqual((), self.store.remove_all())
        self.assertEqual(2, self.storage.count_calls("remove_all"))

    def test_remove_failure_leaves_memory_untouched(self) -> None:
        self.storage.fail_on.add("remove")
        with self.assertRaises(BackendError):
            self.store.remove(COAT)
        self.assertEqual(tuple(UNIQUE_ITEMS), self.store.items)


class StoreLifecycleTest(unittest.TestCase):
    """Validates hydration, closing and diagnostics."""

    def test_hydrates_persisted_records_in_order(self) -> None:
        storage = MemoryStorageEngine()
        first = make_store(storage)
        first.add([PURSE, COAT, BELT])
        first.close()

        second = make_store(storage)
        self.addCleanup(second.close)
        self.assertTrue(second.is_loaded)
        self.assertEqual((PURSE, COAT, BELT), second.items)

    def test_background_hydration(self) -> None:
        storage = GatedStorageEngine()
        storage.gate.set()
        seeded = make_store(storage)
        seeded.add([COAT, SWEATER])
        seeded.close()

        storage.gate.clear()
        store: Store[BoutiqueItem] = Store(
            storage,
            attribute_key("merchant_id"),
            codec=DataclassCodec(BoutiqueItem),
        )
        self.addCleanup(store.close)
        self.assertFalse(store.is_loaded)
        self.assertEqual((), store.items)

        storage.gate.set()
        self.assertTrue(store.await_loaded(5.0))
        self.assertEqual((COAT, SWEATER), store.items)

    def test_mutation_waits_for_hydration(self) -> None:
        storage = GatedStorageEngine()
        storage.write([(storage_key("1"), DataclassCodec(BoutiqueItem).encode(COAT))])
        store: Store[BoutiqueItem] = Store(
            storage,
            attribute_key("merchant_id"),
            codec=DataclassCodec(BoutiqueItem),
        )
        self.addCleanup(store.close)

        worker = threading.Thread(target=store.add, args=(SWEATER,))
        worker.start()
        storage.gate.set()
        worker.join(5.0)
        self.assertEqual((COAT, SWEATER), store.items)

    def test_cancel_hydration_leaves_store_empty(self) -> None:
        storage = GatedStorageEngine()
        storage.write([(storage_key("1"), DataclassCodec(BoutiqueItem).encode(COAT))])
        store: Store[BoutiqueItem] = Store(
            storage,
            attribute_key("merchant_id"),
            codec=DataclassCodec(BoutiqueItem),
        )
        self.addCleanup(store.close)

        store.cancel_hydration()
        storage.gate.set()
        self.assertTrue(store.await_loaded(5.0))
        self.assertEqual((), store.items)
        store.add(BELT)
        self.assertEqual((BELT,), store.items)

    def test_undecodable_records_are_skipped(self) -> None:
        storage = MemoryStorageEngine()
        storage.write(
            [
                ("broken", b"not json"),
                (storage_key("1"), DataclassCodec(BoutiqueItem).encode(COAT)),
            ]
        )
        store = make_store(storage)
        self.addCleanup(store.close)
        self.assertEqual((COAT,), store.items)
        self.assertEqual(1, store.stats()["decode_failures"])

    def test_codec_failure_during_hydration_is_contained(self) -> None:
        storage = MemoryStorageEngine()
        storage.write([(storage_key("1"), b'{"merchant_id":"1","legacy":true}')])
        store: Store[BoutiqueItem] = Store(
            storage,
            attribute_key("merchant_id"),
            codec=_SchemaCheckingCodec(),
        )
        self.addCleanup(store.close)

        self.assertTrue(store.await_loaded(1.0))
        self.assertEqual((), store.items)
        self.assertEqual(1, store.stats()["decode_failures"])

        worker = threading.Thread(target=store.add, args=(COAT,))
        worker.start()
        worker.join(2.0)
        self.assertFalse(worker.is_alive())
        self.assertEqual((COAT,), store.items)

    def test_open_skips_records_the_codec_rejects(self) -> None:
        storage = MemoryStorageEngine()
        storage.write(
            [
                (storage_key("1"), b'{"merchant_id":"1","legacy":true}'),
                (storage_key("2"), DataclassCodec(BoutiqueItem).encode(SWEATER)),
            ]
        )
        store = Store.open(storage, attribute_key("merchant_id"), codec=_SchemaCheckingCodec())
        self.addCleanup(store.close)
        self.assertEqual((SWEATER,), store.items)

    def test_open_raises_when_storage_unreadable(self) -> None:
        storage = RecordingStorageEngine()
        storage.fail_on.add("read_all")
        with self.assertRaises(BackendError):
            make_store(storage)

    def test_background_hydration_failure_is_reported(self) -> None:
        storage = RecordingStorageEngine()
        storage.fail_on.add("read_all")
        store: Store[BoutiqueItem] = Store(
            storage,
            attribute_key("merchant_id"),
            codec=DataclassCodec(BoutiqueItem),
        )
        self.addCleanup(store.close)
        self.assertTrue(store.await_loaded(5.0))
        self.assertIsInstance(store.hydration_error, BackendError)
        self.assertEqual((), store.items)

    def test_closed_store_rejects_mutations(self) -> None:
        store = make_store()
        store.add(COAT)
        store.close()

        self.assertTrue(store.is_closed)
        with self.assertRaises(StoreClosedError):
            store.add(SWEATER)
        with self.assertRaises(StoreClosedError):
            store.remove_all()
        self.assertEqual((COAT,), store.items)
        store.close()

    def test_context_manager_closes(self) -> None:
        with make_store() as store:
            store.add(COAT)
        self.assertTrue(store.is_closed)

    def test_for_identifiable_uses_id_attribute(self) -> None:
        store = Store.for_identifiable(
            MemoryStorageEngine(),
            codec=_ReprCodec(),
            hydrate_in_background=False,
        )
        self.addCleanup(store.close)

        class Ticket:
            def __init__(self, ident: str) -> None:
                self.id = ident

        ticket = Ticket("t-1")
        store.add(ticket)
        self.assertIs(ticket, store.get("t-1"))

    def test_stats_counts_mutations(self) -> None:
        store = make_store()
        self.addCleanup(store.close)
        store.add([COAT, SWEATER])
        store.remove(COAT)
        store.remove_all()

        stats = store.stats()
        self.assertEqual(3, stats["mutations"])
        self.assertEqual(2, stats["records_written"])
        self.assertEqual(2, stats["records_removed"])
        self.assertEqual(0, stats["count"])
        self.assertTrue(stats["loaded"])
        self.assertFalse(stats["closed"])


class _SchemaCheckingCodec(DataclassCodec[BoutiqueItem]):
    """Dataclass codec that rejects payloads written by an older schema."""

    def __init__(self) -> None:
        super().__init__(BoutiqueItem)

    def decode(self, payload: bytes) -> BoutiqueItem:
        if b"legacy" in payload:
            raise ValueError("schema mismatch")
        return super().decode(payload)


class _ReprCodec:
    def encode(self, record: object) -> bytes:
        return repr(record).encode("utf-8")

    def decode(self, payload: bytes) -> object:
        raise NotImplementedError


if __name__ == "__main__":
    unittest.main()
