"""
FastAPI application exposing a dual-layer product catalog over HTTP.

Run the app, add products, restart it, and read them back: the catalog is
hydrated from the configured storage engine on startup.
"""

from __future__ import annotations

import argparse
import logging
import os
import threading
from collections import deque
from typing import Any

import uvicorn
from dualcache import (
    InvalidationStrategy,
    Store,
    StoreEvent,
    create_store,
    item_key,
)
from dualcache.exceptions import DualCacheError
from fastapi import FastAPI, HTTPException

app = FastAPI(title="dualcache FastAPI example", version="0.1.0")
_LOGGER = logging.getLogger(__name__)

_events_lock = threading.RLock()
_recent_events: deque[dict[str, Any]] = deque(maxlen=200)
_listener_id: str | None = None

_store: Store[Any] | None = None


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, "").strip()
    return value if value else default


def _build_store() -> Store[Any]:
    backend = _get_env("DUALCACHE_BACKEND", "sqlite").lower()
    if backend == "sqlite":
        return create_store(
            item_key("sku"),
            backend="sqlite",
            path=_get_env("DUALCACHE_SQLITE_PATH", "catalog.sqlite3"),
        )
    if backend == "disk":
        return create_store(
            item_key("sku"),
            backend="disk",
            directory=_get_env("DUALCACHE_DIRECTORY", "catalog_data"),
        )
    if backend == "redis":
        return create_store(
            item_key("sku"),
            backend="redis",
            redis_url=_get_env("DUALCACHE_REDIS_URL", "redis://127.0.0.1:6379/0"),
            namespace=_get_env("DUALCACHE_REDIS_NAMESPACE", "dualcache-catalog"),
        )
    if backend != "memory":
        raise RuntimeError("DUALCACHE_BACKEND must be memory, disk, sqlite or redis.")
    return create_store(item_key("sku"), backend="memory")


def _require_store() -> Store[Any]:
    if _store is None:
        raise HTTPException(status_code=503, detail="Store not started.")
    return _store


def _record_event(event: StoreEvent) -> None:
    with _events_lock:
        _recent_events.append(event.as_dict())


def _validate_product(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict) or not isinstance(payload.get("sku"), str) or not payload["sku"]:
        raise HTTPException(status_code=400, detail="Each product must be an object with a 'sku' string.")
    return payload


@app.on_event("startup")
def on_startup() -> None:
    global _store, _listener_id
    if _store is not None:
        return
    _store = _build_store()
    _listener_id = _store.add_listener(_record_event)
    if not _store.await_loaded(timeout=10.0):
        _LOGGER.warning("Catalog is still hydrating; serving an empty catalog for now.")


@app.on_event("shutdown")
def on_shutdown() -> None:
    global _store, _listener_id
    store = _store
    if store is None:
        return
    try:
        store.close()
    finally:
        _store = None
        _listener_id = None


@app.get("/")
def root() -> dict[str, Any]:
    store = _require_store()
    return {
        "message": "dualcache FastAPI example is running.",
        "loaded": store.is_loaded,
        "count": store.count,
    }


@app.get("/stats")
def stats() -> dict[str, Any]:
    return _require_store().stats()


@app.get("/products")
def list_products() -> dict[str, Any]:
    return {"items": list(_require_store().items)}


@app.get("/products/{sku}")
def get_product(sku: str) -> dict[str, Any]:
    product = _require_store().get(sku)
    if product is None:
        raise HTTPException(status_code=404, detail=f"Unknown sku {sku!r}.")
    return product


@app.post("/products")
def add_products(payload: dict[str, Any]) -> dict[str, Any]:
    products = payload.get("items")
    if not isinstance(products, list):
        raise HTTPException(status_code=400, detail="Payload must include list field 'items'.")
    validated = [_validate_product(product) for product in products]
    store = _require_store()
    invalidation = None
    if payload.get("replace", False):
        invalidation = InvalidationStrategy.all()
    try:
        store.add(validated, invalidation=invalidation)
    except DualCacheError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"count": store.count}


@app.delete("/products/{sku}")
def remove_product(sku: str) -> dict[str, Any]:
    try:
        removed = _require_store().remove_keys(sku)
    except DualCacheError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"removed": list(removed)}


@app.delete("/products")
def remove_all_products() -> dict[str, Any]:
    try:
        removed = _require_store().remove_all()
    except DualCacheError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"removed": len(removed)}


@app.get("/events")
def recent_events() -> dict[str, Any]:
    with _events_lock:
        events = list(_recent_events)
    return {"events": events}


def main(port: int) -> int:
    host = _get_env("DUALCACHE_API_HOST", "127.0.0.1")
    uvicorn.run("dualcache_example.fastapi_app:app", host=host, port=port, reload=False)
    return 0


def cli() -> int:
    parser = argparse.ArgumentParser(description="Serve the dualcache catalog example.")
    parser.add_argument("--port", type=int, default=8000, help="The port number to use")
    args = parser.parse_args()
    return main(args.port)


if __name__ == "__main__":
    raise SystemExit(cli())
