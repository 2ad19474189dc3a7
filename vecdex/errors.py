"""
Exceptions raised by vecdex.
"""


class VecdexError(Exception):
    """Base exception for all vecdex errors."""
    pass


class InvalidEmbeddingError(VecdexError, ValueError):
    """
    Record carries no usable embedding.

    Raised when:
    - The record has no ``embedding`` field
    - The embedding is not a sequence of real numbers
    - The embedding contains NaN or infinite values
    """
    pass


class SchemaMismatchError(VecdexError, ValueError):
    """Record is missing fields the index schema requires."""

    def __init__(self, message: str, missing: list = None):
        super().__init__(message)
        self.missing = missing or []


class NotFoundError(VecdexError, LookupError):
    """No record matched the given filter."""

    def __init__(self, message: str, filter: dict = None):
        super().__init__(message)
        self.filter = filter or {}


class LengthMismatchError(VecdexError, ValueError):
    """Vectors compared for similarity have different lengths."""
    pass


class EmptyIndexError(VecdexError):
    """Attempted to persist an index that holds no records."""
    pass


class StoreError(VecdexError):
    """Base exception for durable store failures."""
    pass


class StoreOpenError(StoreError):
    """
    Opening or upgrading the store failed.

    Raised when:
    - The store file cannot be created or opened (permissions, disk full)
    - A schema upgrade transaction fails and is rolled back
    """
    pass


class NotInitializedError(StoreError):
    """Store operation attempted before ``initialize_db`` succeeded."""
    pass


class CollectionMissingError(StoreError, LookupError):
    """The named collection does not exist in the store."""

    def __init__(self, message: str, collection: str = None):
        super().__init__(message)
        self.collection = collection


class InsertError(StoreError):
    """Writing a record to a collection failed."""
    pass
