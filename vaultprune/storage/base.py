"""
Common interface for storage destinations.

Each backend describes how to read its native listing records (name, size,
modification time) and how to delete and upload a single file. The retention
engine only sees RemoteEntry values and DeleteResult outcomes.
"""

import os
from typing import Any, Callable, Dict, Iterable, List, Optional

from vaultprune.retention.errors import StorageError
from vaultprune.retention.types import DeleteResult, RemoteEntry


__all__ = ['StorageBackend', 'StorageError', 'DeleteResult', 'resolve_secret']


def resolve_secret(config: Dict[str, Any], field: str) -> Optional[str]:
    """
    Read a credential from a destination config.

    The value is taken from config[field], or from the environment variable
    named by config[field + '_env'].

    Raises:
        StorageError: If the referenced environment variable is not set
    """
    value = config.get(field)
    if value:
        return value

    env_name = config.get(f'{field}_env')
    if not env_name:
        return None

    value = os.environ.get(env_name)
    if value is None:
        raise StorageError(f"Environment variable {env_name} for '{field}' is not set")
    return value


class StorageBackend:
    """Base class for destination backends."""

    storage_type = 'base'

    def describe(self) -> str:
        """Human readable locator of the destination."""
        raise NotImplementedError

    def _iter_records(self) -> Iterable[Any]:
        """Yield native listing records of the destination directory."""
        raise NotImplementedError

    def _entry_from_record(self, record: Any) -> Optional[RemoteEntry]:
        """Convert one native record, or return None to skip it."""
        raise NotImplementedError

    def list_entries(self) -> List[RemoteEntry]:
        """
        List the files stored at the destination.

        Returns:
            List of RemoteEntry

        Raises:
            StorageError: If the listing cannot be obtained
        """
        try:
            entries = []
            for record in self._iter_records():
                entry = self._entry_from_record(record)
                if entry is not None:
                    entries.append(entry)
            return entries
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list {self.describe()}: {e}")

    def delete(self, entry: RemoteEntry) -> DeleteResult:
        """
        Delete one listed file.

        Returns:
            DeleteResult.DELETED, or DeleteResult.ALREADY_ABSENT if it was gone

        Raises:
            StorageError: If deletion fails
        """
        raise NotImplementedError

    def upload(self, local_path: str, cancellation_check: Optional[Callable[[], None]] = None) -> str:
        """
        Copy a local archive file to the destination.

        Returns:
            Backend identifier of the stored file

        Raises:
            StorageError: If the transfer fails
        """
        raise NotImplementedError

    def cleanup(self):
        """Release connections. Backends without connections do nothing."""
        pass

    @staticmethod
    def _check_local_file(local_path: str):
        if not os.path.isfile(local_path):
            raise StorageError(f"Local file not found: {local_path}")
