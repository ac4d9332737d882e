"""
Unit tests for chained store operations and step fusion.
"""

from __future__ import annotations

import unittest

from dualcache import BackendError, EventKind, OperationStateError

from support import (
    ALL_ITEMS,
    BELT,
    COAT,
    PURSE,
    SWEATER,
    UNIQUE_ITEMS,
    BoutiqueItem,
    RecordingStorageEngine,
    make_store,
)


class OperationTest(unittest.TestCase):
    """Validates deferred execution, fusion and single-run semantics."""

    def setUp(self) -> None:
        self.storage = RecordingStorageEngine()
        self.store = make_store(self.storage)
        self.addCleanup(self.store.close)

    def test_nothing_happens_until_run(self) -> None:
        operation = self.store.operation().add(COAT).add(SWEATER)
        self.assertEqual((), self.store.items)
        self.assertFalse(operation.has_run)

        operation.run()
        self.assertTrue(operation.has_run)
        self.assertEqual((COAT, SWEATER), self.store.items)

    def test_consecutive_adds_are_not_fused(self) -> None:
        operation = self.store.operation().add(COAT).add([SWEATER, PURSE])
        self.assertEqual(("add", "add"), operation.pending_steps)

    def test_remove_all_then_add_fuses_into_one_write(self) -> None:
        self.store.add(ALL_ITEMS)
        self.storage.reset_calls()

        operation = self.store.operation().remove_all().add([COAT, BELT])
        self.assertEqual(("add",), operation.pending_steps)

        with self.store.state_stream() as updates:
            updates.drain()
            operation.run()
            published = updates.drain()

        self.assertEqual((COAT, BELT), self.store.items)
        self.assertEqual([("remove_all", 0), ("write", 2)], self.storage.calls)
        self.assertEqual([(COAT, BELT)], published)

    def test_remove_then_add_fuses_with_items_invalidation(self) -> None:
        self.store.add(UNIQUE_ITEMS)
        self.storage.reset_calls()

        operation = self.store.operation().remove([SWEATER, PURSE]).add(BoutiqueItem("5", "Hat"))
        self.assertEqual(("add",), operation.pending_steps)
        operation.run()

        self.assertEqual((COAT, BELT, BoutiqueItem("5", "Hat")), self.store.items)
        self.assertEqual([("remove", 2), ("write", 1)], self.storage.calls)

    def test_remove_keys_then_add_fuses(self) -> None:
        self.store.add(UNIQUE_ITEMS)
        self.storage.reset_calls()

        self.store.operation().remove_keys("1").add(BoutiqueItem("5", "Hat")).run()
        self.assertEqual((SWEATER, PURSE, BELT, BoutiqueItem("5", "Hat")), self.store.items)
        self.assertEqual(1, self.storage.count_calls("write"))

    def test_fused_add_publishes_removal_and_insertion(self) -> None:
        self.store.add([COAT, SWEATER])

        with self.store.event_stream() as events:
            events.drain()
            self.store.operation().remove(COAT).add(BELT).run()
            kinds = [event.kind for event in events.drain()]

        self.assertEqual([EventKind.REMOVED, EventKind.INSERTED], kinds)

    def test_add_then_remove_runs_in_order(self) -> None:
        operation = self.store.operation().add([COAT, SWEATER]).remove(COAT)
        self.assertEqual(("add", "remove_items"), operation.pending_steps)
        operation.run()
        self.assertEqual((SWEATER,), self.store.items)

    def test_remove_all_alone(self) -> None:
        self.store.add(UNIQUE_ITEMS)
        self.store.operation().remove_all().run()
        self.assertEqual((), self.store.items)

    def test_chain_of_mixed_steps(self) -> None:
        self.store.add([COAT, SWEATER])
        (
            self.store.operation()
            .add(PURSE)
            .remove(COAT)
            .add(BELT)
            .remove_all()
            .add([SWEATER, COAT])
            .run()
        )
        self.assertEqual((SWEATER, COAT), self.store.items)

    def test_run_twice_is_a_no_op(self) -> None:
        operation = self.store.operation().add(COAT)
        operation.run()
        self.storage.reset_calls()
        self.store.remove_all()
        self.storage.reset_calls()

        operation.run()
        self.assertEqual((), self.store.items)
        self.assertEqual([], self.storage.calls)

    def test_adding_steps_after_run_raises(self) -> None:
        operation = self.store.operation().add(COAT)
        operation.run()
        with self.assertRaises(OperationStateError):
            operation.add(SWEATER)
        with self.assertRaises(OperationStateError):
            operation.remove_all()

    def test_failing_step_aborts_remaining_steps(self) -> None:
        self.storage.fail_on.add("write")
        operation = self.store.operation().add(COAT).remove_all()
        with self.assertRaises(BackendError):
            operation.run()
        self.assertEqual(0, self.storage.count_calls("remove_all"))
        self.assertTrue(operation.has_run)


if __name__ == "__main__":
    unittest.main()
