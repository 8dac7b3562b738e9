"""
Local directory or UNC share destination.
"""

import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .base import DeleteResult, StorageBackend, StorageError
from vaultprune.retention.types import RemoteEntry


class LocalStorage(StorageBackend):
    """
    Handler for archives kept in a local (or mounted/UNC) directory.

    Archives are stored flat in base_path; the directory is created on first
    upload.
    """

    storage_type = 'local'

    def __init__(self, base_path: str):
        """
        Initialize local storage handler.

        Args:
            base_path: Destination directory
        """
        self.base_path = Path(base_path)

    def describe(self) -> str:
        return f"local:{self.base_path}"

    def _iter_records(self):
        if not self.base_path.is_dir():
            raise StorageError(f"Destination directory not found: {self.base_path}")
        return self.base_path.iterdir()

    def _entry_from_record(self, path: Path) -> Optional[RemoteEntry]:
        if not path.is_file():
            return None
        stat = path.stat()
        return RemoteEntry(
            name=path.name,
            size=stat.st_size,
            modified_time=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            handle=str(path)
        )

    def delete(self, entry: RemoteEntry) -> DeleteResult:
        full_path = Path(entry.handle)

        try:
            full_path.unlink()
            return DeleteResult.DELETED
        except FileNotFoundError:
            return DeleteResult.ALREADY_ABSENT
        except PermissionError as e:
            raise StorageError(f"Permission denied deleting {full_path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to delete local file {full_path}: {e}")

    def upload(self, local_path: str, cancellation_check: Optional[Callable[[], None]] = None) -> str:
        """
        Copy archive into the destination directory.

        Returns:
            Full path of the stored file
        """
        self._check_local_file(local_path)

        if cancellation_check:
            cancellation_check()

        dest_path = self.base_path / Path(local_path).name

        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
            shutil.copy2(local_path, dest_path)
            return str(dest_path)

        except PermissionError as e:
            raise StorageError(f"Permission denied writing to {dest_path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to store locally: {e}")
