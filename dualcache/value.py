"""
Single persisted value built on a :class:`dualcache.store.Store`.

The value is boxed into one synthetic record under a constant key, so setting
it is an upsert through the regular store pipeline and resetting it is a
``remove_all``.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from .codec import JSONCodec, RecordCodec
from .config import StoreConfig
from .storage_protocol import StorageEngine
from .store import Store

ValueT = TypeVar("ValueT")

_VALUE_KEY = "stored-value"


@dataclass(frozen=True)
class _Box(Generic[ValueT]):
    value: ValueT


class _BoxCodec(Generic[ValueT]):
    """Encode a box by encoding only its value with the wrapped codec."""

    def __init__(self, inner: RecordCodec[ValueT]) -> None:
        self._inner = inner

    def encode(self, record: _Box[ValueT]) -> bytes:
        return self._inner.encode(record.value)

    def decode(self, payload: bytes) -> _Box[ValueT]:
        return _Box(self._inner.decode(payload))


class StoredValue(Generic[ValueT]):
    """
    A persisted value with a default, observable like a store.

    Parameters
    ----------
    storage:
        Storage engine dedicated to this value.
    default:
        Returned by :attr:`value` while nothing is stored.
    codec:
        Serializer for the value itself; JSON by default.
    hydrate_in_background:
        Same meaning as for :class:`Store`.
    """

    def __init__(
        self,
        storage: StorageEngine,
        default: ValueT,
        *,
        codec: RecordCodec[ValueT] | None = None,
        config: StoreConfig | None = None,
        hydrate_in_background: bool = True,
    ) -> None:
        self._default = default
        self._store: Store[_Box[ValueT]] = Store(
            storage,
            lambda record: _VALUE_KEY,
            codec=_BoxCodec(codec if codec is not None else JSONCodec()),
            config=config,
            hydrate_in_background=hydrate_in_background,
        )

    @property
    def value(self) -> ValueT:
        return self._unbox(self._store.items)

    @property
    def default(self) -> ValueT:
        return self._default

    @property
    def store(self) -> Store[Any]:
        """Return the backing store."""
        return self._store

    def set(self, value: ValueT) -> None:
        """Persist ``value``, replacing the previous one."""
        self._store.add(_Box(value))

    def toggle(self) -> None:
        """Flip a boolean value."""
        self._modify(lambda current: not current)

    def append(self, item: Any) -> None:
        """Persist a copy of a list value with ``item`` appended."""
        self._modify(lambda current: [*current, item])

    def update(self, key: Any, value: Any) -> None:
        """
        Persist a copy of a dict value with ``key`` set to ``value``.

        A ``None`` value removes ``key`` instead.
        """

        def apply(current: Any) -> Any:
            updated = dict(current)
            if value is None:
                updated.pop(key, None)
            else:
                updated[key] = value
            return updated

        self._modify(apply)

    def set_field(self, name: str, value: Any) -> None:
        """
        Persist a copy of the value with one field replaced.

        Dataclass values are copied with ``dataclasses.replace``; mappings are
        copied and ``name`` is assigned as a key.
        """

        def apply(current: Any) -> Any:
            if dataclasses.is_dataclass(current) and not isinstance(current, type):
                return dataclasses.replace(current, **{name: value})
            if isinstance(current, Mapping):
                return {**current, name: value}
            raise TypeError(
                f"set_field needs a dataclass or mapping value, got {type(current).__name__}."
            )

        self._modify(apply)

    def reset(self) -> None:
        """Delete the stored value so :attr:`value` returns the default."""
        self._store.remove_all()

    def stream(self) -> Iterator[ValueT]:
        """
        Yield the current value, then every new value.

        Closing the generator releases the underlying subscription.
        """
        with self._store.state_stream() as subscription:
            for items in subscription:
                yield self._unbox(items)

    def await_loaded(self, timeout: float | None = None) -> bool:
        return self._store.await_loaded(timeout)

    def close(self) -> None:
        self._store.close()

    def _modify(self, change: Callable[[Any], Any]) -> None:
        # Read and write under the store lock so concurrent modifications compose.
        self._store._wait_until_loaded()
        with self._store._mutation_lock:
            self.set(change(self.value))

    def _unbox(self, items: tuple[_Box[ValueT], ...]) -> ValueT:
        if not items:
            return self._default
        return items[0].value
