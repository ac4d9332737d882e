"""
Deferred, fusable chains of store mutations.

An :class:`Operation` queues ``add``/``remove``/``remove_all`` steps and
applies them only when :meth:`Operation.run` is called. Adjacent steps that
would otherwise cost two storage round-trips and two publishes are fused: an
``add`` queued right after a removal becomes one ``add`` carrying the removal
as its invalidation strategy.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .collection import as_batch
from .exceptions import OperationStateError
from .invalidation import InvalidationStrategy
from .keys import extract_key

if TYPE_CHECKING:  # pragma: no cover - typing-only import
    from .store import Store


class OperationAction(str, Enum):
    """Tag describing what one queued step does."""

    ADD = "add"
    REMOVE_ITEMS = "remove_items"
    REMOVE_ALL = "remove_all"


@dataclass(slots=True)
class _Step:
    action: OperationAction
    perform: Callable[["Store[Any]"], Any]
    invalidation: InvalidationStrategy[Any] | None = None


class Operation:
    """
    Builder queuing store mutations until :meth:`run`.

    Builder methods return the operation itself so calls chain::

        store.operation().remove(stale).add(fresh).run()

    Steps never run implicitly; an operation that is dropped without calling
    :meth:`run` changes nothing.
    """

    def __init__(self, store: "Store[Any]") -> None:
        self._store = store
        self._steps: list[_Step] = []
        self._has_run = False
        self._lock = threading.Lock()

    @property
    def has_run(self) -> bool:
        with self._lock:
            return self._has_run

    @property
    def pending_steps(self) -> tuple[str, ...]:
        """Return queued step tags in execution order."""
        with self._lock:
            return tuple(step.action.value for step in self._steps)

    def add(self, records: Any) -> "Operation":
        """
        Queue insertion of one record or a list of records.

        Fuses with an immediately preceding removal step.
        """
        batch = as_batch(records)
        with self._lock:
            self._ensure_pending()
            strategy: InvalidationStrategy[Any] | None = None
            if self._steps and self._steps[-1].action is not OperationAction.ADD:
                strategy = self._steps.pop().invalidation
            self._steps.append(
                _Step(
                    OperationAction.ADD,
                    lambda store: store.add(batch, invalidation=strategy),
                )
            )
        return self

    def remove(self, records: Any) -> "Operation":
        """Queue removal of one record or a list of records."""
        batch = as_batch(records)
        with self._lock:
            self._ensure_pending()
            self._steps.append(
                _Step(
                    OperationAction.REMOVE_ITEMS,
                    lambda store: store.remove(batch),
                    InvalidationStrategy.items(batch),
                )
            )
        return self

    def remove_keys(self, keys: str | Iterable[str]) -> "Operation":
        """Queue removal of records addressed by key."""
        targets = [keys] if isinstance(keys, str) else [str(key) for key in keys]
        key_set = frozenset(targets)
        key_of = self._store._key_of
        strategy: InvalidationStrategy[Any] = InvalidationStrategy(
            lambda current: [
                record for record in current if extract_key(key_of, record) in key_set
            ],
            name="keys",
        )
        with self._lock:
            self._ensure_pending()
            self._steps.append(
                _Step(
                    OperationAction.REMOVE_ITEMS,
                    lambda store: store.remove_keys(targets),
                    strategy,
                )
            )
        return self

    def remove_all(self) -> "Operation":
        """Queue removal of every record."""
        with self._lock:
            self._ensure_pending()
            self._steps.append(
                _Step(
                    OperationAction.REMOVE_ALL,
                    lambda store: store.remove_all(),
                    InvalidationStrategy.all(),
                )
            )
        return self

    def run(self) -> None:
        """
        Apply queued steps in order as one batch.

        The store's mutation lock is held for the whole run, so no other
        mutation interleaves. The first failing step aborts the remaining
        ones and its error propagates. Calling ``run`` again is a no-op.
        """
        with self._lock:
            if self._has_run:
                return
            self._has_run = True
            steps = list(self._steps)
            self._steps.clear()

        store = self._store
        store._wait_until_loaded()
        with store._mutation_lock:
            for step in steps:
                step.perform(store)

    def _ensure_pending(self) -> None:
        if self._has_run:
            raise OperationStateError("Operation has already run; start a new one.")
