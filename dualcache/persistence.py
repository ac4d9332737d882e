"""
File-per-record storage engine for restart recovery.

Persistence is intentionally simple and robust:

* every record payload lives in ``<storage_key>.record`` inside one directory
* first-write order is kept in a JSON manifest next to the payload files
* writes are atomic via ``os.replace`` of a temporary file
* optional ``fsync`` is available for stronger durability semantics
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable
from pathlib import Path
from threading import RLock

from .config import DiskStorageConfig

_LOGGER = logging.getLogger(__name__)

_RECORD_SUFFIX = ".record"
_MANIFEST_NAME = "manifest.json"


class DiskStorageEngine:
    """
    Store each payload as its own file and track order in a manifest.

    Parameters
    ----------
    config:
        Directory and durability settings. The directory is created lazily on
        first write.
    """

    def __init__(self, config: DiskStorageConfig | None = None) -> None:
        self.config = config or DiskStorageConfig()
        self._directory = Path(self.config.directory).expanduser().resolve()
        self._fsync = bool(self.config.fsync)
        self._lock = RLock()

    @property
    def directory(self) -> Path:
        """Return fully resolved storage directory."""
        return self._directory

    @property
    def manifest_path(self) -> Path:
        """Return the path of the order manifest."""
        return self._directory / _MANIFEST_NAME

    def write(self, entries: list[tuple[str, bytes]]) -> None:
        """
        Persist payloads atomically, then append unseen keys to the manifest.

        A crash between the two steps leaves payload files the manifest does
        not know about yet; :meth:`read_all` still returns them.
        """
        if not entries:
            return
        with self._lock:
            self._directory.mkdir(parents=True, exist_ok=True)
            for key, payload in entries:
                self._atomic_write(self._record_path(key), bytes(payload))
            order = self._load_manifest()
            known = set(order)
            for key, _ in entries:
                if key not in known:
                    order.append(key)
                    known.add(key)
            self._save_manifest(order)

    def read_all(self) -> list[tuple[str, bytes]]:
        """
        Load every payload in manifest order.

        Payload files missing from the manifest are appended in modification
        time order; manifest entries without a payload file are skipped.
        """
        with self._lock:
            if not self._directory.exists():
                return []
            order = self._load_manifest()
            on_disk = {
                path.name[: -len(_RECORD_SUFFIX)]: path
                for path in self._directory.glob(f"*{_RECORD_SUFFIX}")
            }
            known = set(order)
            orphans = sorted(
                (key for key in on_disk if key not in known),
                key=lambda key: on_disk[key].stat().st_mtime_ns,
            )
            if orphans:
                _LOGGER.warning(
                    "Recovered %d record file(s) missing from manifest in %s",
                    len(orphans),
                    self._directory,
                )
            entries: list[tuple[str, bytes]] = []
            for key in [*order, *orphans]:
                path = on_disk.get(key)
                if path is None:
                    continue
                entries.append((key, path.read_bytes()))
            return entries

    def remove(self, keys: Iterable[str]) -> None:
        targets = {str(key) for key in keys}
        if not targets:
            return
        with self._lock:
            if not self._directory.exists():
                return
            order = self._load_manifest()
            remaining = [key for key in order if key not in targets]
            if len(remaining) != len(order):
                self._save_manifest(remaining)
            for key in targets:
                self._record_path(key).unlink(missing_ok=True)

    def remove_all(self) -> None:
        """Delete the manifest and every payload file in one pass."""
        with self._lock:
            if not self._directory.exists():
                return
            self.manifest_path.unlink(missing_ok=True)
            for path in self._directory.glob(f"*{_RECORD_SUFFIX}"):
                path.unlink(missing_ok=True)
            self._fsync_directory()

    def _record_path(self, key: str) -> Path:
        return self._directory / f"{key}{_RECORD_SUFFIX}"

    def _load_manifest(self) -> list[str]:
        path = self.manifest_path
        if not path.exists():
            return []
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, list):
            raise ValueError("Manifest file must contain a JSON array.")
        return [str(key) for key in data]

    def _save_manifest(self, order: list[str]) -> None:
        data = json.dumps(order, separators=(",", ":")).encode("utf-8")
        self._atomic_write(self.manifest_path, data)

    def _atomic_write(self, path: Path, data: bytes) -> None:
        """
        Write ``data`` to ``<path>.tmp`` and rename it over ``path``.

        Readers only ever observe either the old file or the complete new one.
        """
        temp_path = path.with_suffix(f"{path.suffix}.tmp")
        with temp_path.open("wb") as handle:
            handle.write(data)
            handle.flush()
            if self._fsync:
                os.fsync(handle.fileno())
        os.replace(temp_path, path)
        self._fsync_directory()

    def _fsync_directory(self) -> None:
        if not self._fsync:
            return
        dir_fd = os.open(str(self._directory), os.O_RDONLY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
