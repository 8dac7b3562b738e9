"""
Storage destinations.

Supports:
- local: local directory or UNC share
- sftp: directory on an SFTP server
- s3: S3 or S3-compatible bucket
- gcs: Google Cloud Storage bucket
- webdav: WebDAV collection
"""

from typing import Any, Dict

from .base import DeleteResult, StorageBackend, StorageError, resolve_secret
from .local import LocalStorage
from .s3 import S3Storage
from .sftp import SFTPStorage
from .gcs import GCSStorage
from .webdav import WebDAVStorage


STORAGE_TYPES = ('local', 'sftp', 's3', 'gcs', 'webdav')

REQUIRED_FIELDS = {
    'local': ('path',),
    'sftp': ('host', 'username', 'remote_path'),
    's3': ('bucket',),
    'gcs': ('bucket',),
    'webdav': ('url',),
}


def validate_storage_config(storage_type: str, config: Dict[str, Any]):
    """
    Check a destination config for missing fields.

    Raises:
        ValueError: If storage_type is unknown or a required field is missing
    """
    if storage_type not in STORAGE_TYPES:
        raise ValueError(f"Invalid storage type: {storage_type}. Valid options: {list(STORAGE_TYPES)}")

    missing = [name for name in REQUIRED_FIELDS[storage_type] if not config.get(name)]
    if missing:
        raise ValueError(f"Missing {storage_type} setting(s): {', '.join(missing)}")


def create_storage(storage_type: str, config: Dict[str, Any]) -> StorageBackend:
    """
    Factory function to create the backend for a destination.

    Args:
        storage_type: One of STORAGE_TYPES
        config: Destination configuration dict

    Returns:
        StorageBackend instance

    Raises:
        ValueError: If storage_type is invalid or config is incomplete
        StorageError: If a referenced secret cannot be resolved
    """
    validate_storage_config(storage_type, config)

    if storage_type == 'local':
        return LocalStorage(config['path'])
    elif storage_type == 'sftp':
        return SFTPStorage(
            host=config['host'],
            remote_path=config['remote_path'],
            username=config['username'],
            port=int(config.get('port', 22)),
            password=resolve_secret(config, 'password'),
            private_key=config.get('private_key')
        )
    elif storage_type == 's3':
        return S3Storage(
            access_key=resolve_secret(config, 'access_key'),
            secret_key=resolve_secret(config, 'secret_key'),
            bucket_name=config['bucket'],
            region=config.get('region', 'us-east-1'),
            prefix=config.get('prefix', ''),
            endpoint_url=config.get('endpoint_url')
        )
    elif storage_type == 'gcs':
        return GCSStorage(
            bucket_name=config['bucket'],
            prefix=config.get('prefix', ''),
            project=config.get('project'),
            credentials_file=config.get('credentials_file')
        )
    else:
        return WebDAVStorage(
            url=config['url'],
            username=config.get('username'),
            password=resolve_secret(config, 'password'),
            verify_tls=config.get('verify_tls', True)
        )


__all__ = [
    'DeleteResult',
    'GCSStorage',
    'LocalStorage',
    'S3Storage',
    'SFTPStorage',
    'STORAGE_TYPES',
    'StorageBackend',
    'StorageError',
    'WebDAVStorage',
    'create_storage',
    'validate_storage_config',
]
