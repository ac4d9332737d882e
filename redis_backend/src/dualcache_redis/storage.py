"""
Redis-backed storage engine implementation.

The engine implements the core ``StorageEngine`` protocol and can be injected
into :class:`dualcache.store.Store`.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from threading import RLock

from redis import Redis


@dataclass(slots=True)
class RedisStorageConfig:
    """
    Configuration for :class:`RedisStorageEngine`.

    Parameters
    ----------
    redis_url:
        Redis connection URL used when a client is not directly supplied.
    namespace:
        Prefix for all redis keys created by this engine.
    """

    redis_url: str = "redis://127.0.0.1:6379/0"
    namespace: str = "dualcache"

    def __post_init__(self) -> None:
        if not self.namespace:
            raise ValueError("RedisStorageConfig.namespace must be non-empty.")


class RedisStorageEngine:
    """
    Redis-backed implementation of the core storage engine API.

    Data model
    ----------
    * payloads are stored in one Redis hash keyed by storage key
    * first-write order is a sorted set scored by a namespace counter
    * overwriting a payload leaves its score, and therefore its position, alone
    """

    def __init__(
        self,
        *,
        config: RedisStorageConfig | None = None,
        redis_client: Redis | None = None,
    ) -> None:
        self.config = config or RedisStorageConfig()
        self._redis = redis_client or Redis.from_url(self.config.redis_url)
        self._lock = RLock()

    # ------------------------------------------------------------------ #
    # Key helpers
    # ------------------------------------------------------------------ #

    def _key_payloads(self) -> str:
        return f"{self.config.namespace}:payloads"

    def _key_order(self) -> str:
        return f"{self.config.namespace}:order"

    def _key_sequence(self) -> str:
        return f"{self.config.namespace}:seq"

    def _decode_text(self, value: bytes | str) -> str:
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return str(value)

    # ------------------------------------------------------------------ #
    # Storage engine API
    # ------------------------------------------------------------------ #

    def write(self, entries: list[tuple[str, bytes]]) -> None:
        if not entries:
            return
        payloads = {str(key): bytes(payload) for key, payload in entries}
        with self._lock:
            pipe = self._redis.pipeline()
            for key in payloads:
                pipe.zscore(self._key_order(), key)
            scores = pipe.execute()
            new_keys = [key for key, score in zip(payloads, scores) if score is None]

            first_score = 0
            if new_keys:
                last_score = int(self._redis.incrby(self._key_sequence(), len(new_keys)))
                first_score = last_score - len(new_keys) + 1

            pipe = self._redis.pipeline(transaction=True)
            pipe.hset(self._key_payloads(), mapping=payloads)
            if new_keys:
                pipe.zadd(
                    self._key_order(),
                    {key: first_score + offset for offset, key in enumerate(new_keys)},
                )
            pipe.execute()

    def read_all(self) -> list[tuple[str, bytes]]:
        with self._lock:
            keys = [self._decode_text(raw) for raw in self._redis.zrange(self._key_order(), 0, -1)]
            if not keys:
                return []
            values = self._redis.hmget(self._key_payloads(), keys)
        return [
            (key, bytes(value))
            for key, value in zip(keys, values)
            if value is not None
        ]

    def remove(self, keys: Iterable[str]) -> None:
        targets = [str(key) for key in keys]
        if not targets:
            return
        with self._lock:
            pipe = self._redis.pipeline(transaction=True)
            pipe.hdel(self._key_payloads(), *targets)
            pipe.zrem(self._key_order(), *targets)
            pipe.execute()

    def remove_all(self) -> None:
        with self._lock:
            self._redis.delete(self._key_payloads(), self._key_order(), self._key_sequence())
