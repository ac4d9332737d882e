"""
Store transition events delivered on the event stream.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventKind(str, Enum):
    """
    Kind of transition a :class:`StoreEvent` describes.

    INITIALIZED
        The store exists but has not finished hydrating.
    LOADED
        Hydration finished; ``items`` is the full state.
    INSERTED
        Records were added or updated; ``items`` holds only those records.
    REMOVED
        Records were removed or evicted; ``items`` holds only those records.
    """

    INITIALIZED = "initialized"
    LOADED = "loaded"
    INSERTED = "inserted"
    REMOVED = "removed"


@dataclass(frozen=True, slots=True)
class StoreEvent:
    """One transition of a store's collection."""

    kind: EventKind
    items: tuple[Any, ...] = ()
    ts_ms: int = field(default_factory=lambda: int(time.time() * 1000), compare=False)

    @classmethod
    def initialized(cls) -> "StoreEvent":
        return cls(EventKind.INITIALIZED)

    @classmethod
    def loaded(cls, items: tuple[Any, ...]) -> "StoreEvent":
        return cls(EventKind.LOADED, tuple(items))

    @classmethod
    def inserted(cls, items: tuple[Any, ...]) -> "StoreEvent":
        return cls(EventKind.INSERTED, tuple(items))

    @classmethod
    def removed(cls, items: tuple[Any, ...]) -> "StoreEvent":
        return cls(EventKind.REMOVED, tuple(items))

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly view, with records left as they are."""
        return {"event": self.kind.value, "items": list(self.items), "ts_ms": self.ts_ms}
