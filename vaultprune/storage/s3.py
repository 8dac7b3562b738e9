"""
S3 and S3-compatible object storage destination.
"""

import os
from typing import Any, Callable, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .base import DeleteResult, StorageBackend, StorageError
from vaultprune.retention.types import RemoteEntry


MULTIPART_THRESHOLD = 100 * 1024 * 1024  # 100MB
MULTIPART_CHUNK_SIZE = 10 * 1024 * 1024  # 10MB


def _error_code(e: ClientError) -> str:
    return e.response.get('Error', {}).get('Code', 'Unknown')


class S3Storage(StorageBackend):
    """
    Handler for archives stored in an S3 bucket.

    Objects are stored flat under an optional prefix: {prefix}/{filename}.
    Setting endpoint_url targets S3-compatible services (MinIO, Wasabi, ...).
    """

    storage_type = 's3'

    def __init__(
        self,
        access_key: Optional[str],
        secret_key: Optional[str],
        bucket_name: str,
        region: str = 'us-east-1',
        prefix: str = '',
        endpoint_url: Optional[str] = None
    ):
        """
        Initialize S3 storage handler.

        Args:
            access_key: Access key ID (None uses the default credential chain)
            secret_key: Secret access key
            bucket_name: Bucket name
            region: Region (default: us-east-1)
            prefix: Key prefix the archives live under
            endpoint_url: Custom endpoint for S3-compatible services
        """
        self.bucket_name = bucket_name
        self.region = region
        self.prefix = prefix.strip('/')
        self.endpoint_url = endpoint_url

        client_kwargs: Dict[str, Any] = {'region_name': region}
        if access_key and secret_key:
            client_kwargs['aws_access_key_id'] = access_key
            client_kwargs['aws_secret_access_key'] = secret_key
        if endpoint_url:
            client_kwargs['endpoint_url'] = endpoint_url

        try:
            self.s3_client = boto3.client('s3', **client_kwargs)
        except (BotoCoreError, ValueError) as e:
            raise StorageError(f"Failed to initialize S3 client: {e}")

    def describe(self) -> str:
        return f"s3://{self.bucket_name}/{self.prefix}" if self.prefix else f"s3://{self.bucket_name}"

    def _key_for(self, filename: str) -> str:
        return f"{self.prefix}/{filename}" if self.prefix else filename

    def _iter_records(self):
        list_prefix = f"{self.prefix}/" if self.prefix else ''
        paginator = self.s3_client.get_paginator('list_objects_v2')

        try:
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=list_prefix):
                for obj in page.get('Contents', []):
                    yield obj
        except ClientError as e:
            raise StorageError(f"S3 list failed ({_error_code(e)}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"S3 list failed: {e}")

    def _entry_from_record(self, obj: Dict[str, Any]) -> Optional[RemoteEntry]:
        key = obj['Key']
        list_prefix = f"{self.prefix}/" if self.prefix else ''
        name = key[len(list_prefix):]

        # Only objects directly under the prefix
        if not name or '/' in name:
            return None

        return RemoteEntry(
            name=name,
            size=obj.get('Size', 0),
            modified_time=obj['LastModified'],
            handle=key
        )

    def delete(self, entry: RemoteEntry) -> DeleteResult:
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=entry.handle)
            return DeleteResult.DELETED
        except ClientError as e:
            error_code = _error_code(e)
            if error_code in ('NoSuchKey', '404', 'NotFound'):
                return DeleteResult.ALREADY_ABSENT
            raise StorageError(f"S3 delete failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"Failed to delete from S3: {e}")

    def upload(self, local_path: str, cancellation_check: Optional[Callable[[], None]] = None) -> str:
        """
        Upload archive to S3.

        Args:
            local_path: Path to local archive file
            cancellation_check: Optional function called between parts; raises to cancel

        Returns:
            S3 key of uploaded file
        """
        self._check_local_file(local_path)

        s3_key = self._key_for(os.path.basename(local_path))

        try:
            file_size = os.path.getsize(local_path)

            if file_size > MULTIPART_THRESHOLD:
                self._multipart_upload(local_path, s3_key, cancellation_check)
            else:
                if cancellation_check:
                    cancellation_check()
                self._simple_upload(local_path, s3_key)

            return s3_key

        except ClientError as e:
            raise StorageError(f"S3 upload failed ({_error_code(e)}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"S3 upload failed: {e}")
        except OSError as e:
            raise StorageError(f"Failed to read {local_path}: {e}")

    def _simple_upload(self, local_path: str, s3_key: str):
        with open(local_path, 'rb') as f:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=s3_key,
                Body=f
            )

    def _multipart_upload(self, local_path: str, s3_key: str, cancellation_check: Optional[Callable[[], None]] = None):
        """
        Upload large file in parts, checking for cancellation before each part.
        The upload is aborted on any error.
        """
        response = self.s3_client.create_multipart_upload(
            Bucket=self.bucket_name,
            Key=s3_key
        )
        upload_id = response['UploadId']

        parts = []

        try:
            with open(local_path, 'rb') as f:
                part_number = 1

                while True:
                    if cancellation_check:
                        cancellation_check()

                    data = f.read(MULTIPART_CHUNK_SIZE)
                    if not data:
                        break

                    response = self.s3_client.upload_part(
                        Bucket=self.bucket_name,
                        Key=s3_key,
                        PartNumber=part_number,
                        UploadId=upload_id,
                        Body=data
                    )

                    parts.append({
                        'PartNumber': part_number,
                        'ETag': response['ETag']
                    })

                    part_number += 1

            self.s3_client.complete_multipart_upload(
                Bucket=self.bucket_name,
                Key=s3_key,
                UploadId=upload_id,
                MultipartUpload={'Parts': parts}
            )

        except BaseException:
            try:
                self.s3_client.abort_multipart_upload(
                    Bucket=self.bucket_name,
                    Key=s3_key,
                    UploadId=upload_id
                )
            except (ClientError, BotoCoreError):
                pass
            raise
