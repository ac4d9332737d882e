"""
Redis-backed store convenience wrapper.
"""

from __future__ import annotations

from typing import Any

from dualcache.codec import RecordCodec
from dualcache.config import StoreConfig
from dualcache.keys import KeyFunction
from dualcache.store import Store
from redis import Redis

from .storage import RedisStorageConfig, RedisStorageEngine


class RedisStore(Store[Any]):
    """
    :class:`Store` variant that persists records in Redis.

    Parameters
    ----------
    key_of:
        Function returning the unique string key of a record.
    redis_url:
        Redis URL used when ``redis_client`` is not supplied.
    namespace:
        Key prefix namespace for this store's data.
    redis_client:
        Optional preconfigured Redis client instance.
    """

    def __init__(
        self,
        key_of: KeyFunction,
        *,
        redis_url: str = "redis://127.0.0.1:6379/0",
        namespace: str = "dualcache",
        redis_client: Redis | None = None,
        codec: RecordCodec[Any] | None = None,
        config: StoreConfig | None = None,
        hydrate_in_background: bool = True,
    ) -> None:
        self.redis_storage = RedisStorageEngine(
            config=RedisStorageConfig(redis_url=redis_url, namespace=namespace),
            redis_client=redis_client,
        )
        super().__init__(
            self.redis_storage,
            key_of,
            codec=codec,
            config=config,
            hydrate_in_background=hydrate_in_background,
        )
