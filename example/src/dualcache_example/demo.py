"""
Comprehensive runnable demo for dual-layer stores.

The demo showcases:

* batch insert with dedup by key
* in-place update and removal
* invalidation strategies and chained operations
* event observation
* restart recovery from the chosen storage engine
* a single persisted value

Run after installing this example package:

    dualcache-example --backend sqlite
"""

from __future__ import annotations

import argparse
import json
import sys
import tempfile
import time
import uuid
from pathlib import Path
from typing import Any

from dualcache import (
    InvalidationStrategy,
    Store,
    StoredValue,
    create_storage,
    item_key,
)
from dualcache.exceptions import BackendNotAvailableError


def _wait_until(predicate, *, timeout_seconds: float = 5.0, interval_seconds: float = 0.05) -> bool:
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval_seconds)
    return False


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="dualcache example")
    parser.add_argument("--backend", choices=("memory", "disk", "sqlite", "redis"), default="disk")
    parser.add_argument("--data-dir", default=None, help="Directory for disk/sqlite data (temporary by default)")
    parser.add_argument("--redis-url", default="redis://127.0.0.1:6379/0")
    parser.add_argument("--redis-namespace", default=f"dualcache-example:{uuid.uuid4().hex[:8]}")
    return parser


def _backend_options(args: argparse.Namespace, data_dir: Path, name: str) -> dict[str, Any]:
    if args.backend == "disk":
        return {"directory": str(data_dir / name), "fsync": False}
    if args.backend == "sqlite":
        return {"path": str(data_dir / "demo.sqlite3"), "table": name}
    if args.backend == "redis":
        return {"redis_url": args.redis_url, "namespace": f"{args.redis_namespace}:{name}"}
    return {}


def _print_step(title: str, payload: Any) -> None:
    print(f"\n=== {title} ===")
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def run_demo(args: argparse.Namespace, data_dir: Path) -> int:
    storage = create_storage(args.backend, **_backend_options(args, data_dir, "wardrobe"))
    store = Store.open(storage, item_key("sku"))

    events: list[dict[str, Any]] = []
    store.add_listener(lambda event: events.append(event.as_dict()))

    coat = {"sku": "1", "name": "Coat"}
    sweater = {"sku": "2", "name": "Sweater"}
    purse = {"sku": "3", "name": "Purse"}
    belt = {"sku": "4", "name": "Belt"}

    try:
        store.remove_all()
        store.add([coat, sweater, sweater, purse])
        _print_step("Batch Insert (Sweater deduplicated)", list(store.items))

        store.add({"sku": "2", "name": "Wool Sweater"})
        _print_step("In-place Update", list(store.items))

        store.remove(coat)
        _print_step("Remove", list(store.items))

        store.add(belt, invalidation=InvalidationStrategy.where(lambda item: item["sku"] != "3"))
        _print_step("Insert Evicting Purse", list(store.items))

        store.operation().remove_all().add([coat, purse]).run()
        _print_step("Chained remove_all + add", list(store.items))

        if args.backend != "memory":
            reopened = Store.open(
                create_storage(args.backend, **_backend_options(args, data_dir, "wardrobe")),
                item_key("sku"),
            )
            _print_step("Recovered After Restart", list(reopened.items))
            reopened.close()

        _wait_until(lambda: len(events) >= 6)
        _print_step("Observed Events", events)

        theme = StoredValue(
            create_storage(args.backend, **_backend_options(args, data_dir, "theme")),
            "light",
            hydrate_in_background=False,
        )
        before = theme.value
        theme.set("dark")
        _print_step("Stored Value", {"before": before, "after": theme.value})
        theme.reset()
        theme.close()

        _print_step("Store Stats", store.stats())
        return 0
    finally:
        store.close()


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    try:
        if args.data_dir:
            return run_demo(args, Path(args.data_dir))
        with tempfile.TemporaryDirectory(prefix="dualcache-demo-") as temp_dir:
            return run_demo(args, Path(temp_dir))
    except BackendNotAvailableError as exc:
        print(f"Redis backend not available: {exc}", file=sys.stderr)
        print("Install optional plugin first: pip install 'dualcache[redis]'", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
