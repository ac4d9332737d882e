"""
Cache invalidation strategies applied before an insertion.

A strategy maps the store's current records to the records that must be
evicted from both layers before new records are inserted by the same call.
Evaluation happens inside the store's mutation lock, so the input is exactly
the state the insertion will build on.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Generic, TypeVar

RecordT = TypeVar("RecordT")


class InvalidationStrategy(Generic[RecordT]):
    """
    Policy deciding which existing records to evict before an ``add``.

    Eviction always precedes insertion, so a record that is both evicted and
    re-inserted ends up present.

    Examples
    --------
    ::

        store.add(fresh, invalidation=InvalidationStrategy.all())
        store.add(item, invalidation=InvalidationStrategy.where(lambda r: r.in_stock))
    """

    __slots__ = ("_evaluate", "_evicts_everything", "name")

    def __init__(
        self,
        evaluate: Callable[[tuple[RecordT, ...]], Iterable[RecordT]],
        *,
        name: str = "custom",
        evicts_everything: bool = False,
    ) -> None:
        self._evaluate = evaluate
        self._evicts_everything = evicts_everything
        self.name = name

    @property
    def evicts_everything(self) -> bool:
        """
        Return true when every current record is evicted.

        The store uses this to clear storage with one bulk call.
        """
        return self._evicts_everything

    def evicted(self, current: tuple[RecordT, ...]) -> list[RecordT]:
        """Return the records to evict given the current records."""
        if self._evicts_everything:
            return list(current)
        return list(self._evaluate(current))

    @classmethod
    def none(cls) -> "InvalidationStrategy[RecordT]":
        """Evict nothing."""
        return cls(lambda current: (), name="none")

    @classmethod
    def all(cls) -> "InvalidationStrategy[RecordT]":
        """Evict every current record."""
        return cls(lambda current: current, name="all", evicts_everything=True)

    @classmethod
    def items(cls, records: Iterable[RecordT]) -> "InvalidationStrategy[RecordT]":
        """
        Evict the given records.

        Records are matched by key against current state; ones that are not
        present are ignored.
        """
        targets = tuple(records)
        return cls(lambda current: targets, name="items")

    @classmethod
    def where(cls, predicate: Callable[[RecordT], bool]) -> "InvalidationStrategy[RecordT]":
        """Keep records matching ``predicate`` and evict the rest."""
        return cls(
            lambda current: [record for record in current if not predicate(record)],
            name="where",
        )

    def __repr__(self) -> str:
        return f"InvalidationStrategy.{self.name}"
