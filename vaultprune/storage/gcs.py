"""
Google Cloud Storage destination.
"""

import os
from typing import Callable, Optional

from google.api_core.exceptions import GoogleAPICallError, NotFound
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage

from .base import DeleteResult, StorageBackend, StorageError
from vaultprune.retention.types import RemoteEntry


class GCSStorage(StorageBackend):
    """
    Handler for archives stored in a GCS bucket.

    Blobs are stored flat under an optional prefix: {prefix}/{filename}.
    Credentials come from a service account JSON file when given, otherwise
    from Application Default Credentials.
    """

    storage_type = 'gcs'

    def __init__(
        self,
        bucket_name: str,
        prefix: str = '',
        project: Optional[str] = None,
        credentials_file: Optional[str] = None
    ):
        """
        Args:
            bucket_name: Bucket name (without gs://)
            prefix: Blob name prefix the archives live under
            project: GCP project (optional, inferred from credentials)
            credentials_file: Path to a service account JSON file
        """
        self.bucket_name = bucket_name
        self.prefix = prefix.strip('/')
        self.project = project
        self.credentials_file = credentials_file
        self._client = None

    def describe(self) -> str:
        return f"gs://{self.bucket_name}/{self.prefix}" if self.prefix else f"gs://{self.bucket_name}"

    def _get_client(self) -> storage.Client:
        if self._client is None:
            try:
                if self.credentials_file:
                    self._client = storage.Client.from_service_account_json(
                        self.credentials_file, project=self.project
                    )
                else:
                    self._client = storage.Client(project=self.project)
            except (GoogleAuthError, OSError, ValueError) as e:
                raise StorageError(f"Failed to initialize GCS client: {e}")
        return self._client

    def _bucket(self):
        return self._get_client().bucket(self.bucket_name)

    def _blob_name(self, filename: str) -> str:
        return f"{self.prefix}/{filename}" if self.prefix else filename

    def _iter_records(self):
        list_prefix = f"{self.prefix}/" if self.prefix else None
        try:
            for blob in self._get_client().list_blobs(self.bucket_name, prefix=list_prefix, delimiter='/'):
                yield blob
        except NotFound as e:
            raise StorageError(f"GCS bucket not found: {self.bucket_name} ({e.message})")
        except (GoogleAPICallError, GoogleAuthError) as e:
            raise StorageError(f"GCS list failed: {e}")

    def _entry_from_record(self, blob) -> Optional[RemoteEntry]:
        list_prefix = f"{self.prefix}/" if self.prefix else ''
        name = blob.name[len(list_prefix):]

        # Only blobs directly under the prefix
        if not name or '/' in name:
            return None

        return RemoteEntry(
            name=name,
            size=blob.size or 0,
            modified_time=blob.updated,
            handle=blob.name
        )

    def delete(self, entry: RemoteEntry) -> DeleteResult:
        try:
            self._bucket().blob(entry.handle).delete()
            return DeleteResult.DELETED
        except NotFound:
            return DeleteResult.ALREADY_ABSENT
        except (GoogleAPICallError, GoogleAuthError) as e:
            raise StorageError(f"GCS delete failed for {entry.handle}: {e}")

    def upload(self, local_path: str, cancellation_check: Optional[Callable[[], None]] = None) -> str:
        """
        Upload archive to the bucket.

        Returns:
            Blob name of the uploaded file
        """
        self._check_local_file(local_path)

        if cancellation_check:
            cancellation_check()

        blob_name = self._blob_name(os.path.basename(local_path))
        try:
            self._bucket().blob(blob_name).upload_from_filename(local_path)
        except (GoogleAPICallError, GoogleAuthError) as e:
            raise StorageError(f"GCS upload of {blob_name} failed: {e}")
        except OSError as e:
            raise StorageError(f"Failed to read {local_path}: {e}")
        return blob_name

    def cleanup(self):
        if self._client is not None:
            self._client.close()
            self._client = None
