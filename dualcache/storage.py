"""
Thread-safe in-process storage engine.

Useful for tests and for caches that only need the store's ordering, dedup and
observation semantics without surviving a restart.
"""

from __future__ import annotations

from collections.abc import Iterable
from threading import RLock


class MemoryStorageEngine:
    """
    Storage engine keeping payloads in an insertion-ordered dictionary.

    Notes
    -----
    Payloads are ``bytes`` and therefore immutable; snapshots returned by
    :meth:`read_all` can be handed to callers without copying.
    """

    def __init__(self) -> None:
        self._entries: dict[str, bytes] = {}
        self._lock = RLock()

    def write(self, entries: list[tuple[str, bytes]]) -> None:
        with self._lock:
            for key, payload in entries:
                self._entries[str(key)] = bytes(payload)

    def read_all(self) -> list[tuple[str, bytes]]:
        with self._lock:
            return list(self._entries.items())

    def remove(self, keys: Iterable[str]) -> None:
        with self._lock:
            for key in keys:
                self._entries.pop(str(key), None)

    def remove_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
