"""Exceptions raised by the retention engine."""


class ConfigurationError(ValueError):
    """Raised when a match spec or retention setting is invalid."""
    pass


class OperationCancelled(Exception):
    """Raised by a cancellation check to stop further destructive work."""
    pass


class StorageError(Exception):
    """Raised when a storage backend operation fails."""
    pass
