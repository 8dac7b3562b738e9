"""
SFTP destination.
"""

import errno
import os
import posixpath
import stat
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

import paramiko
from paramiko import AutoAddPolicy, SSHClient

from .base import DeleteResult, StorageBackend, StorageError
from vaultprune.retention.types import RemoteEntry


class SFTPStorage(StorageBackend):
    """
    Handler for archives stored in a directory on an SFTP server.

    The SSH connection is opened on first use and closed by cleanup().
    """

    storage_type = 'sftp'

    def __init__(
        self,
        host: str,
        remote_path: str,
        username: str,
        port: int = 22,
        password: Optional[str] = None,
        private_key: Optional[str] = None,
        timeout: int = 30
    ):
        """
        Initialize SFTP storage handler.

        Args:
            host: SSH hostname or IP
            remote_path: Remote directory holding the archives
            username: SSH username
            port: SSH port (default 22)
            password: SSH password (optional if using key)
            private_key: Path to private key file (optional)
            timeout: Connection timeout in seconds
        """
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.private_key_path = private_key
        self.remote_path = remote_path.rstrip('/') or '/'
        self.timeout = timeout

        self.ssh_client = None
        self.sftp_client = None

    def describe(self) -> str:
        return f"sftp://{self.username}@{self.host}:{self.port}{self.remote_path}"

    def _connect(self):
        """
        Establish SSH connection if not already connected.

        Raises:
            StorageError: If connection fails
        """
        if self.sftp_client is not None:
            return self.sftp_client

        try:
            self.ssh_client = SSHClient()
            self.ssh_client.set_missing_host_key_policy(AutoAddPolicy())

            connect_kwargs = {
                'hostname': self.host,
                'port': self.port,
                'username': self.username,
                'timeout': self.timeout
            }

            if self.password:
                connect_kwargs['password'] = self.password
            elif self.private_key_path:
                key_path = Path(self.private_key_path).expanduser()
                if not key_path.exists():
                    raise StorageError(f"Private key not found: {self.private_key_path}")
                connect_kwargs['key_filename'] = str(key_path)
            else:
                raise StorageError("Either password or private_key must be provided")

            self.ssh_client.connect(**connect_kwargs)
            self.sftp_client = self.ssh_client.open_sftp()
            return self.sftp_client

        except StorageError:
            self.cleanup()
            raise
        except paramiko.AuthenticationException as e:
            self.cleanup()
            raise StorageError(f"SSH authentication failed: {e}")
        except (paramiko.SSHException, OSError) as e:
            self.cleanup()
            raise StorageError(f"Failed to connect to {self.host}: {e}")

    def _remote_file(self, name: str) -> str:
        return posixpath.join(self.remote_path, name)

    def _iter_records(self):
        sftp = self._connect()
        try:
            return sftp.listdir_attr(self.remote_path)
        except FileNotFoundError:
            raise StorageError(f"Remote directory not found: {self.remote_path}")
        except PermissionError:
            raise StorageError(f"Permission denied listing remote directory: {self.remote_path}")

    def _entry_from_record(self, attr: paramiko.SFTPAttributes) -> Optional[RemoteEntry]:
        if attr.st_mode is not None and not stat.S_ISREG(attr.st_mode):
            return None
        return RemoteEntry(
            name=attr.filename,
            size=attr.st_size or 0,
            modified_time=datetime.fromtimestamp(attr.st_mtime or 0, tz=timezone.utc),
            handle=self._remote_file(attr.filename)
        )

    def delete(self, entry: RemoteEntry) -> DeleteResult:
        sftp = self._connect()
        try:
            sftp.remove(entry.handle)
            return DeleteResult.DELETED
        except FileNotFoundError:
            return DeleteResult.ALREADY_ABSENT
        except IOError as e:
            if getattr(e, 'errno', None) == errno.ENOENT:
                return DeleteResult.ALREADY_ABSENT
            raise StorageError(f"SFTP remove failed for {entry.handle}: {e}")
        except paramiko.SSHException as e:
            raise StorageError(f"SFTP remove failed for {entry.handle}: {e}")
        except EOFError:
            raise StorageError(f"SFTP connection lost while removing {entry.handle}")

    def upload(self, local_path: str, cancellation_check: Optional[Callable[[], None]] = None) -> str:
        self._check_local_file(local_path)

        if cancellation_check:
            cancellation_check()

        sftp = self._connect()
        remote_file = self._remote_file(os.path.basename(local_path))

        try:
            sftp.put(local_path, remote_file)
            return remote_file
        except (IOError, paramiko.SSHException) as e:
            raise StorageError(f"SFTP upload to {remote_file} failed: {e}")

    def cleanup(self):
        """Close SSH/SFTP connections."""
        if self.sftp_client:
            try:
                self.sftp_client.close()
            except (OSError, paramiko.SSHException):
                pass
            self.sftp_client = None

        if self.ssh_client:
            try:
                self.ssh_client.close()
            except (OSError, paramiko.SSHException):
                pass
            self.ssh_client = None
