"""
Storage engine factory helpers for easy backend switching.

This module gives application developers a uniform way to pick a storage
engine by name without rewriting store bootstrap logic.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from .codec import RecordCodec
from .config import DiskStorageConfig, SQLiteStorageConfig, StoreConfig
from .exceptions import BackendConfigurationError, BackendNotAvailableError
from .keys import KeyFunction
from .persistence import DiskStorageEngine
from .sqlite_storage import SQLiteStorageEngine
from .storage import MemoryStorageEngine
from .storage_protocol import StorageEngine
from .store import Store


class StorageBackend(str, Enum):
    """
    Built-in storage engine names supported by the factory helpers.

    MEMORY
        In-process engine; nothing survives a restart.
    DISK
        One file per record in a directory.
    SQLITE
        One table in a SQLite database.
    REDIS
        Redis hash plus sorted set, provided by the optional plugin package.
    """

    MEMORY = "memory"
    DISK = "disk"
    SQLITE = "sqlite"
    REDIS = "redis"


def _normalize_backend(backend: str | StorageBackend) -> StorageBackend:
    """
    Normalize backend name into :class:`StorageBackend` enum value.
    """
    if isinstance(backend, StorageBackend):
        return backend
    lowered = str(backend).strip().lower()
    try:
        return StorageBackend(lowered)
    except ValueError as exc:
        valid = ", ".join(item.value for item in StorageBackend)
        raise BackendConfigurationError(
            f"Unknown backend {backend!r}. Supported values: {valid}."
        ) from exc


def _reject_unknown(backend: StorageBackend, options: dict[str, Any]) -> None:
    if options:
        unknown = ", ".join(sorted(str(key) for key in options))
        raise BackendConfigurationError(
            f"Unknown {backend.value} backend options: {unknown}."
        )


def available_backends() -> tuple[str, ...]:
    """
    Return backend names available in the current environment.

    The Redis backend appears only when the optional plugin package is installed.
    """
    backends = [
        StorageBackend.MEMORY.value,
        StorageBackend.DISK.value,
        StorageBackend.SQLITE.value,
    ]
    try:
        __import__("dualcache_redis")
    except Exception:  # noqa: BLE001 - optional dependency probing
        pass
    else:
        backends.append(StorageBackend.REDIS.value)
    return tuple(backends)


def create_storage(backend: str | StorageBackend = StorageBackend.MEMORY, **backend_options: Any) -> StorageEngine:
    """
    Create a storage engine instance from a short backend name.

    Parameters
    ----------
    backend:
        Backend selector string (``"memory"``, ``"disk"``, ``"sqlite"`` or
        ``"redis"``).
    backend_options:
        Backend-specific options.

        Disk options:
            ``directory`` (str), ``fsync`` (bool), or a ready ``config``.
        SQLite options:
            ``path`` (str), ``table`` (str), or a ready ``config``.
        Redis options:
            ``redis_url`` (str), ``namespace`` (str), ``redis_client``
            and optional plugin-native ``config`` object.
    """
    selected = _normalize_backend(backend)
    if selected is StorageBackend.MEMORY:
        _reject_unknown(selected, backend_options)
        return MemoryStorageEngine()
    if selected is StorageBackend.DISK:
        config = backend_options.pop("config", None)
        if config is None:
            config = DiskStorageConfig(
                directory=str(backend_options.pop("directory", "dualcache_data")),
                fsync=bool(backend_options.pop("fsync", True)),
            )
        _reject_unknown(selected, backend_options)
        return DiskStorageEngine(config)
    if selected is StorageBackend.SQLITE:
        config = backend_options.pop("config", None)
        if config is None:
            config = SQLiteStorageConfig(
                path=str(backend_options.pop("path", "dualcache.sqlite3")),
                table=str(backend_options.pop("table", "records")),
            )
        _reject_unknown(selected, backend_options)
        return SQLiteStorageEngine(config)
    if selected is StorageBackend.REDIS:
        try:
            from dualcache_redis import RedisStorageConfig, RedisStorageEngine
        except Exception as exc:  # noqa: BLE001 - optional dependency may be absent
            raise BackendNotAvailableError(
                "Redis backend requires optional package 'dualcache[redis]'."
            ) from exc

        config = backend_options.pop("config", None)
        redis_client = backend_options.pop("redis_client", None)
        if config is None:
            redis_url = str(
                backend_options.pop("redis_url", "redis://127.0.0.1:6379/0")
            )
            namespace = str(backend_options.pop("namespace", "dualcache"))
            config = RedisStorageConfig(redis_url=redis_url, namespace=namespace)
        _reject_unknown(selected, backend_options)
        return RedisStorageEngine(config=config, redis_client=redis_client)
    raise BackendConfigurationError(f"Unhandled backend: {selected!r}")


def create_store(
    key_of: KeyFunction,
    *,
    backend: str | StorageBackend = StorageBackend.MEMORY,
    codec: RecordCodec[Any] | None = None,
    config: StoreConfig | None = None,
    hydrate_in_background: bool = True,
    **backend_options: Any,
) -> Store[Any]:
    """
    Build a :class:`Store` over a named storage engine in one step.

    ``store = create_store(attribute_key("sku"), backend="sqlite", path="shop.db")``
    """
    storage = create_storage(backend=backend, **backend_options)
    return Store(
        storage,
        key_of,
        codec=codec,
        config=config,
        hydrate_in_background=hydrate_in_background,
    )
