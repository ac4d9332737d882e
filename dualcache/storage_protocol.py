"""
Storage engine protocol used by :class:`dualcache.store.Store`.

The store depends on this narrow byte-oriented surface rather than a specific
implementation, enabling file, SQLite, or Redis engines without changing the
cache API. Engines only ever see storage keys (see
:func:`dualcache.keys.storage_key`) and opaque payload bytes.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol


class StorageEngine(Protocol):
    """
    Behavioral contract for durable record storage.

    A store instance is the only writer of its engine, so implementations
    need no cross-call coordination beyond being safe to call from any thread.
    """

    def write(self, entries: list[tuple[str, bytes]]) -> None:
        """
        Insert or overwrite payloads.

        An overwritten key keeps its original position in ``read_all`` order.
        """

    def read_all(self) -> list[tuple[str, bytes]]:
        """Return every stored ``(storage_key, payload)`` in first-write order."""

    def remove(self, keys: Iterable[str]) -> None:
        """Delete payloads for ``keys``; unknown keys are ignored."""

    def remove_all(self) -> None:
        """Delete every payload in one bulk operation."""
