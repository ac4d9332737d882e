"""
Shared records and storage doubles for unit tests.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass

from dualcache import DataclassCodec, MemoryStorageEngine, Store, attribute_key


@dataclass(frozen=True)
class BoutiqueItem:
    merchant_id: str
    value: str


COAT = BoutiqueItem("1", "Coat")
SWEATER = BoutiqueItem("2", "Sweater")
PURSE = BoutiqueItem("3", "Purse")
BELT = BoutiqueItem("4", "Belt")
DUPLICATE_BELT = BoutiqueItem("4", "Belt")

ALL_ITEMS = [COAT, SWEATER, PURSE, BELT, DUPLICATE_BELT]
UNIQUE_ITEMS = [COAT, SWEATER, PURSE, BELT]


class RecordingStorageEngine(MemoryStorageEngine):
    """
    Memory engine that records calls and can be told to fail.

    ``fail_on`` holds method names (``write``, ``read_all``, ``remove``,
    ``remove_all``) that raise ``OSError`` until removed from the set.
    """

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, int]] = []
        self.fail_on: set[str] = set()

    def _record(self, name: str, size: int = 0) -> None:
        self.calls.append((name, size))
        if name in self.fail_on:
            raise OSError(f"injected {name} failure")

    def write(self, entries: list[tuple[str, bytes]]) -> None:
        self._record("write", len(entries))
        super().write(entries)

    def read_all(self) -> list[tuple[str, bytes]]:
        self._record("read_all")
        return super().read_all()

    def remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        self._record("remove", len(keys))
        super().remove(keys)

    def remove_all(self) -> None:
        self._record("remove_all")
        super().remove_all()

    def count_calls(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    def reset_calls(self) -> None:
        self.calls.clear()


def make_store(storage=None, **kwargs) -> Store[BoutiqueItem]:
    """Build a hydrated store of :class:`BoutiqueItem` keyed by merchant ID."""
    return Store.open(
        storage if storage is not None else MemoryStorageEngine(),
        attribute_key("merchant_id"),
        codec=DataclassCodec(BoutiqueItem),
        **kwargs,
    )


class GatedStorageEngine(MemoryStorageEngine):
    """Memory engine whose ``read_all`` blocks until ``gate`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = threading.Event()

    def read_all(self) -> list[tuple[str, bytes]]:
        self.gate.wait(5.0)
        return super().read_all()
