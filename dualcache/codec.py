"""
Record codecs translating records to and from storage bytes.

Codecs are deliberately small: ``encode`` must be pure and raise
:class:`EncodingError` on failure, ``decode`` raises :class:`DecodingError`.
JSON output is compact with sorted keys, matching the rest of the library.
"""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Callable
from typing import Any, Generic, Protocol, TypeVar

from .exceptions import DecodingError, EncodingError

RecordT = TypeVar("RecordT")


class RecordCodec(Protocol[RecordT]):
    """Behavioral contract for record serializers."""

    def encode(self, record: RecordT) -> bytes:
        """Serialize one record."""

    def decode(self, payload: bytes) -> RecordT:
        """Deserialize one record."""


class JSONCodec(Generic[RecordT]):
    """
    JSON codec for records that are (or convert to) JSON-compatible values.

    Parameters
    ----------
    to_json:
        Optional hook converting a record into a JSON-compatible value.
    from_json:
        Optional hook building a record from the decoded JSON value.
    """

    def __init__(
        self,
        *,
        to_json: Callable[[RecordT], Any] | None = None,
        from_json: Callable[[Any], RecordT] | None = None,
    ) -> None:
        self._to_json = to_json
        self._from_json = from_json

    def encode(self, record: RecordT) -> bytes:
        try:
            value = self._to_json(record) if self._to_json is not None else record
            text = json.dumps(value, separators=(",", ":"), sort_keys=True, allow_nan=False)
        except (TypeError, ValueError) as exc:
            raise EncodingError(f"Record is not JSON serializable: {record!r}") from exc
        return text.encode("utf-8")

    def decode(self, payload: bytes) -> RecordT:
        try:
            value = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise DecodingError("Stored payload is not valid JSON.") from exc
        if self._from_json is None:
            return value
        try:
            return self._from_json(value)
        except Exception as exc:  # noqa: BLE001 - caller hook, surfaced as library error
            raise DecodingError(f"Could not build record from {value!r}.") from exc


class DataclassCodec(JSONCodec[RecordT]):
    """
    JSON codec for dataclass records with JSON-compatible fields.

    Records are stored as ``dataclasses.asdict`` output and rebuilt with
    ``record_type(**fields)``.
    """

    def __init__(self, record_type: type[RecordT]) -> None:
        if not dataclasses.is_dataclass(record_type):
            raise TypeError(f"{record_type!r} is not a dataclass type.")
        self.record_type = record_type
        super().__init__(to_json=self._as_fields, from_json=self._from_fields)

    def _as_fields(self, record: RecordT) -> dict[str, Any]:
        if not isinstance(record, self.record_type):
            raise TypeError(f"Expected {self.record_type.__name__}, got {type(record).__name__}.")
        return dataclasses.asdict(record)

    def _from_fields(self, fields: Any) -> RecordT:
        if not isinstance(fields, dict):
            raise TypeError("Dataclass payload must be a JSON object.")
        return self.record_type(**fields)
