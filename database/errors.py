"""Exceptions of the persistence layer.

Only ``ConstraintViolation`` and ``CorruptSnapshot`` ever reach callers of
the facade, and the former only as a failed ``OpResult``.
"""


class StoreError(Exception):
    """Base class for every persistence error."""


class ConstraintViolation(StoreError):
    """Unique / not-null / foreign-key rule refused a write."""


class EngineUnavailable(StoreError):
    """The relational engine could not be built; the fallback takes over."""


class CorruptSnapshot(StoreError):
    """A stored blob could not be decoded or replayed."""


class StorageWriteFailure(StoreError):
    """The durable store refused a snapshot write."""
