"""
Redis storage plugin for dualcache.

This package is intentionally separate from the core library so users can opt
into Redis-backed persistence only when needed:

    from dualcache import attribute_key
    from dualcache_redis import RedisStore

    store = RedisStore(
        attribute_key("sku"),
        redis_url="redis://127.0.0.1:6379/0",
        namespace="shop-cart",
    )

Each store needs its own namespace; two live stores sharing one namespace are
not kept coherent with each other.

Users can either import this package directly or use the core factory:

    from dualcache import create_store
    store = create_store(key_of, backend="redis", redis_url="redis://127.0.0.1:6379/0")
"""

from .storage import RedisStorageConfig, RedisStorageEngine
from .store import RedisStore

__all__ = ["RedisStorageConfig", "RedisStorageEngine", "RedisStore"]
