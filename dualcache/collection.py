"""
Immutable ordered collection of records unique by key.

Every mutation returns a new collection, so a store can swap its current
collection with one attribute assignment and readers on other threads always
observe a complete snapshot.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any, Generic, TypeVar

RecordT = TypeVar("RecordT")


class OrderedKeyedCollection(Generic[RecordT]):
    """
    Insertion-ordered records with key-indexed lookup.

    Parameters
    ----------
    entries:
        ``(key, record)`` pairs. A repeated key replaces the earlier record at
        the earlier record's position.
    """

    __slots__ = ("_keys", "_records", "_index")

    def __init__(self, entries: Iterable[tuple[str, RecordT]] = ()) -> None:
        merged: dict[str, RecordT] = {}
        for key, record in entries:
            merged[key] = record
        self._keys: tuple[str, ...] = tuple(merged)
        self._records: tuple[RecordT, ...] = tuple(merged.values())
        self._index: dict[str, int] = {key: position for position, key in enumerate(self._keys)}

    @property
    def items(self) -> tuple[RecordT, ...]:
        """Return records in order."""
        return self._records

    def keys(self) -> tuple[str, ...]:
        """Return keys in record order."""
        return self._keys

    def contains(self, key: str) -> bool:
        return key in self._index

    def get(self, key: str, default: Any = None) -> Any:
        position = self._index.get(key)
        if position is None:
            return default
        return self._records[position]

    def entries(self) -> Iterator[tuple[str, RecordT]]:
        return zip(self._keys, self._records)

    def upserting(
        self,
        entries: Iterable[tuple[str, RecordT]],
    ) -> "OrderedKeyedCollection[RecordT]":
        """
        Return a copy with ``entries`` replaced in place or appended.
        """
        return OrderedKeyedCollection([*self.entries(), *entries])

    def without(
        self,
        keys: Iterable[str],
    ) -> tuple["OrderedKeyedCollection[RecordT]", tuple[RecordT, ...]]:
        """
        Return a copy without ``keys`` plus the records that were removed.

        Keys that are not present are ignored.
        """
        targets = {key for key in keys if key in self._index}
        if not targets:
            return self, ()
        removed = tuple(record for key, record in self.entries() if key in targets)
        kept = OrderedKeyedCollection(
            (key, record) for key, record in self.entries() if key not in targets
        )
        return kept, removed

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[RecordT]:
        return iter(self._records)

    def __repr__(self) -> str:
        return f"OrderedKeyedCollection({list(self._records)!r})"


def as_batch(records: Any) -> list[Any]:
    """
    Normalize a single record or an iterable of records to a list.

    Mappings, strings and bytes count as single records; any other iterable
    (list, tuple, set, generator, dict view, ...) is a batch. Records that are
    themselves iterable must be wrapped in a list.
    """
    if isinstance(records, (Mapping, str, bytes, bytearray)):
        return [records]
    if isinstance(records, Iterable):
        return list(records)
    return [records]
