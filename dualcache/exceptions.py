"""
Custom exceptions used by the dual-layer cache runtime.

Keeping library-specific errors in one module gives users a predictable
import surface for catching and handling operational edge cases.
"""


class DualCacheError(Exception):
    """Base error type for all library-level exceptions."""


class EncodingError(DualCacheError):
    """
    Raised when a record cannot be serialized by the configured codec.

    Encoding happens before any state change, so the failing call leaves both
    the in-memory collection and the storage engine untouched.
    """


class DecodingError(DualCacheError):
    """
    Raised when persisted bytes cannot be turned back into a record.

    During hydration undecodable records are skipped and logged instead of
    raised, so readers always get a usable collection.
    """


class KeyExtractionError(DualCacheError):
    """
    Raised when the key function returns something other than a non-empty string.
    """


class BackendError(DualCacheError):
    """
    Raised when the storage engine fails to read, write, or remove data.

    The original I/O, permission, or corruption error is chained as
    ``__cause__``. Persistence happens before the in-memory swap, so the
    collection is unchanged for the failing call.
    """


class BackendConfigurationError(DualCacheError):
    """
    Raised when a storage engine factory receives an unknown name or options.
    """


class BackendNotAvailableError(DualCacheError):
    """
    Raised when an optional storage engine package is not installed.
    """


class StoreClosedError(DualCacheError):
    """
    Raised when a mutation is requested after :meth:`Store.close`.
    """


class SubscriptionClosedError(DualCacheError):
    """
    Raised when reading from a subscription that is closed and fully drained.
    """


class OperationStateError(DualCacheError):
    """
    Raised when steps are added to an operation chain that has already run.
    """
