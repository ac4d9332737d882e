"""
Key extraction helpers.

A store identifies records with a caller-supplied function returning a string
key. The helpers below cover the common shapes: an attribute, a mapping item,
or an ``id`` attribute. ``storage_key`` turns a key into the token the storage
engine addresses, which is safe as a filename, SQL value, or Redis field.
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable
from typing import Any

from .exceptions import KeyExtractionError

KeyFunction = Callable[[Any], str]


def attribute_key(name: str) -> KeyFunction:
    """Return a key function reading attribute ``name`` from a record."""

    def key_of(record: Any) -> str:
        return getattr(record, name)

    key_of.__name__ = f"attribute_key_{name}"
    return key_of


def item_key(name: str) -> KeyFunction:
    """Return a key function reading ``record[name]`` from mapping records."""

    def key_of(record: Any) -> str:
        return record[name]

    key_of.__name__ = f"item_key_{name}"
    return key_of


identity_key: KeyFunction = attribute_key("id")


def extract_key(key_of: KeyFunction, record: Any) -> str:
    """
    Apply ``key_of`` and validate the result.

    Raises
    ------
    KeyExtractionError
        If the function fails or does not return a non-empty string.
    """
    try:
        key = key_of(record)
    except Exception as exc:  # noqa: BLE001 - caller code, surfaced as library error
        raise KeyExtractionError(f"Key function failed for record {record!r}.") from exc
    if not isinstance(key, str) or not key:
        raise KeyExtractionError(
            f"Key function must return a non-empty string, got {key!r}."
        )
    return key


def storage_key(key: str) -> str:
    """Return the SHA-256 hex digest used to address ``key`` in storage."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()
