"""
Configuration models for dual-layer stores and their storage engines.

This module centralizes the tunable runtime settings:

* observer buffering and slow-consumer policy
* listener thread shutdown behavior
* on-disk storage directory and durability
* SQLite database location

The configuration classes are explicit and validated at construction time so
misconfiguration fails fast instead of surfacing during a mutation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class OverflowPolicy(str, Enum):
    """
    Behavior of a subscription buffer that reached its capacity.

    DROP_OLDEST
        Discard the oldest buffered delivery to make room for the new one.
    DROP_NEWEST
        Discard the incoming delivery and keep the buffer as is.
    UNBOUNDED
        Never drop; the buffer grows without limit.
    """

    DROP_OLDEST = "drop_oldest"
    DROP_NEWEST = "drop_newest"
    UNBOUNDED = "unbounded"


@dataclass(slots=True)
class StoreConfig:
    """
    Runtime settings for :class:`dualcache.store.Store`.

    Parameters
    ----------
    subscriber_buffer_size:
        Maximum number of undelivered values held per subscription. Ignored
        when ``overflow_policy`` is ``UNBOUNDED``.
    overflow_policy:
        What to drop once a slow subscriber's buffer is full. Publishing never
        blocks mutation callers.
    listener_join_timeout_seconds:
        How long :meth:`Store.remove_listener` and :meth:`Store.close` wait for
        a listener thread to finish its current callback.
    """

    subscriber_buffer_size: int = 1024
    overflow_policy: OverflowPolicy = OverflowPolicy.DROP_OLDEST
    listener_join_timeout_seconds: float = 1.0

    def __post_init__(self) -> None:
        """Validate buffering settings."""
        self.overflow_policy = OverflowPolicy(self.overflow_policy)
        if self.subscriber_buffer_size <= 0:
            raise ValueError("StoreConfig.subscriber_buffer_size must be >= 1.")
        if self.listener_join_timeout_seconds < 0:
            raise ValueError("StoreConfig.listener_join_timeout_seconds must be >= 0.")

    @property
    def effective_buffer_size(self) -> int:
        """Return the buffer bound, or ``0`` when buffering is unbounded."""
        if self.overflow_policy is OverflowPolicy.UNBOUNDED:
            return 0
        return self.subscriber_buffer_size


@dataclass(slots=True)
class DiskStorageConfig:
    """
    Settings for :class:`dualcache.persistence.DiskStorageEngine`.

    Each record is written to its own file inside ``directory``; an order
    manifest next to them remembers first-write order for hydration.
    """

    directory: str = "dualcache_data"
    fsync: bool = True

    def __post_init__(self) -> None:
        if not str(self.directory).strip():
            raise ValueError("DiskStorageConfig.directory must be non-empty.")


@dataclass(slots=True)
class SQLiteStorageConfig:
    """
    Settings for :class:`dualcache.sqlite_storage.SQLiteStorageEngine`.

    Use ``":memory:"`` as ``path`` for a throwaway database.
    """

    path: str = "dualcache.sqlite3"
    table: str = "records"
    timeout_seconds: float = 5.0

    def __post_init__(self) -> None:
        if not str(self.path).strip():
            raise ValueError("SQLiteStorageConfig.path must be non-empty.")
        if not self.table.isidentifier():
            raise ValueError("SQLiteStorageConfig.table must be a valid identifier.")
        if self.timeout_seconds <= 0:
            raise ValueError("SQLiteStorageConfig.timeout_seconds must be > 0.")
