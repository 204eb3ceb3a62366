class MsStoreError(Exception):
    """Base class for all errors raised by msstore."""


class IndexRangeError(MsStoreError, IndexError):
    """A logical position lies outside [0, N)."""


class LengthMismatchError(MsStoreError, ValueError):
    """A variable was written with a number of values different from the collection length."""


class ReadOnlyViolationError(MsStoreError, AttributeError):
    """Attempt to write a storage-derived variable or peak data."""


class DataCorruptionError(MsStoreError, ValueError):
    """Persisted peak data disagrees with itself or with the recorded peaks count."""


class StoreCompatibilityError(MsStoreError, TypeError):
    """Collections cannot be combined because their stores are incompatible."""


class StorageIOError(MsStoreError, IOError):
    """The storage connection failed while reading or importing."""


class AlreadyInitializedError(MsStoreError, IOError):
    """create_store was called against a store that already holds data."""


class InvalidArgumentError(MsStoreError, ValueError):
    """An argument has an invalid value (e.g. a non-positive chunk size)."""
