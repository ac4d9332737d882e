"""
Multi-subscriber broadcast channel with replay of the latest value.

Each subscription owns a bounded buffer. Publishing appends to every buffer
without waiting, so slow consumers never hold up the publisher; once a buffer
is full the subscription's :class:`OverflowPolicy` decides what is dropped.
A new subscription receives the channel's replay value as its first delivery,
and replay-plus-registration is atomic with respect to ``publish`` so no
transition is missed or duplicated.
"""

from __future__ import annotations

import threading
import uuid
from collections import deque
from collections.abc import Iterator
from typing import Generic, TypeVar

from .config import OverflowPolicy
from .exceptions import SubscriptionClosedError

ValueT = TypeVar("ValueT")


class Subscription(Generic[ValueT]):
    """
    One subscriber's ordered view of a :class:`BroadcastChannel`.

    Iterate it (blocking until the next value, ending once closed and
    drained), call :meth:`get` with a timeout, or use it as a context manager
    so :meth:`close` releases the channel registration.
    """

    def __init__(
        self,
        channel: "BroadcastChannel[ValueT]",
        *,
        maxsize: int,
        policy: OverflowPolicy,
    ) -> None:
        self.subscription_id = uuid.uuid4().hex
        self._channel = channel
        self._maxsize = int(maxsize)
        self._policy = OverflowPolicy(policy)
        self._buffer: deque[ValueT] = deque()
        self._condition = threading.Condition()
        self._closed = False
        self._dropped = 0

    @property
    def closed(self) -> bool:
        with self._condition:
            return self._closed

    @property
    def dropped(self) -> int:
        """Return how many deliveries were discarded by the overflow policy."""
        with self._condition:
            return self._dropped

    def pending(self) -> int:
        """Return the number of buffered, undelivered values."""
        with self._condition:
            return len(self._buffer)

    def _push(self, value: ValueT) -> None:
        with self._condition:
            if self._closed:
                return
            if self._maxsize and len(self._buffer) >= self._maxsize:
                if self._policy is OverflowPolicy.DROP_NEWEST:
                    self._dropped += 1
                    return
                if self._policy is OverflowPolicy.DROP_OLDEST:
                    self._buffer.popleft()
                    self._dropped += 1
            self._buffer.append(value)
            self._condition.notify_all()

    def get(self, timeout: float | None = None) -> ValueT:
        """
        Return the next value, waiting up to ``timeout`` seconds.

        Raises
        ------
        TimeoutError
            If nothing arrives in time.
        SubscriptionClosedError
            If the subscription is closed and no buffered value remains.
        """
        with self._condition:
            ready = self._condition.wait_for(
                lambda: bool(self._buffer) or self._closed,
                timeout=timeout,
            )
            if self._buffer:
                return self._buffer.popleft()
            if not ready:
                raise TimeoutError("No value published before timeout.")
            raise SubscriptionClosedError("Subscription is closed.")

    def drain(self) -> list[ValueT]:
        """Return and clear every buffered value without waiting."""
        with self._condition:
            values = list(self._buffer)
            self._buffer.clear()
            return values

    def close(self) -> None:
        """Unregister from the channel and wake any waiting reader."""
        self._channel._unsubscribe(self.subscription_id)
        self._mark_closed()

    def _mark_closed(self) -> None:
        with self._condition:
            self._closed = True
            self._condition.notify_all()

    def __iter__(self) -> Iterator[ValueT]:
        return self

    def __next__(self) -> ValueT:
        try:
            return self.get()
        except SubscriptionClosedError:
            raise StopIteration from None

    def __enter__(self) -> "Subscription[ValueT]":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> bool:
        self.close()
        return False


class BroadcastChannel(Generic[ValueT]):
    """
    Fan values out to every live subscription.

    Parameters
    ----------
    initial:
        Replay value delivered to subscribers before the first publish.
    maxsize:
        Default per-subscription buffer bound, ``0`` for unbounded.
    policy:
        Default overflow policy for new subscriptions.
    """

    def __init__(
        self,
        initial: ValueT,
        *,
        maxsize: int = 0,
        policy: OverflowPolicy = OverflowPolicy.DROP_OLDEST,
    ) -> None:
        self._replay = initial
        self._maxsize = int(maxsize)
        self._policy = OverflowPolicy(policy)
        self._subscriptions: dict[str, Subscription[ValueT]] = {}
        self._lock = threading.RLock()
        self._closed = False
        self._dropped_by_closed = 0

    @property
    def replay_value(self) -> ValueT:
        with self._lock:
            return self._replay

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, value: ValueT, *, replay: ValueT | None = None) -> None:
        """
        Deliver ``value`` to all subscriptions.

        ``replay`` overrides what later subscribers receive first; by default
        it is ``value`` itself.
        """
        with self._lock:
            if self._closed:
                return
            self._replay = value if replay is None else replay
            for subscription in self._subscriptions.values():
                subscription._push(value)

    def set_replay(self, replay: ValueT) -> None:
        """Change the replay value without publishing."""
        with self._lock:
            self._replay = replay

    def subscribe(
        self,
        *,
        maxsize: int | None = None,
        policy: OverflowPolicy | None = None,
    ) -> Subscription[ValueT]:
        """Register a subscription whose first delivery is the replay value."""
        subscription: Subscription[ValueT] = Subscription(
            self,
            maxsize=self._maxsize if maxsize is None else maxsize,
            policy=self._policy if policy is None else policy,
        )
        with self._lock:
            if self._closed:
                subscription._mark_closed()
                return subscription
            subscription._push(self._replay)
            self._subscriptions[subscription.subscription_id] = subscription
        return subscription

    def dropped_deliveries(self) -> int:
        """Return drops across live and already closed subscriptions."""
        with self._lock:
            live = sum(subscription.dropped for subscription in self._subscriptions.values())
            return live + self._dropped_by_closed

    def close(self) -> None:
        """Close every subscription; later publishes are ignored."""
        with self._lock:
            self._closed = True
            subscriptions = list(self._subscriptions.values())
        for subscription in subscriptions:
            subscription.close()

    def _unsubscribe(self, subscription_id: str) -> bool:
        with self._lock:
            subscription = self._subscriptions.pop(subscription_id, None)
            if subscription is None:
                return False
            self._dropped_by_closed += subscription.dropped
            return True
