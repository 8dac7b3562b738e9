"""
Shared pytest fixtures for vaultprune tests.

This module provides fixtures for:
- Flask app, test client and CLI runner
- Database setup with in-memory SQLite
- Backup job and destination fixtures
- An in-memory storage backend for retention tests
- Mock fixtures for external services (S3, SSH, APScheduler)
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
import boto3
from moto import mock_aws

from vaultprune import create_app, db as _db
from vaultprune.models import BackupJob, Destination, TransferHistory
from vaultprune.retention import DeleteResult, RemoteEntry, RunLog, StorageError


BASE_TIME = datetime(2025, 7, 1, 2, 0, tzinfo=timezone.utc)


@pytest.fixture(scope='function')
def app(tmp_path):
    """
    Create Flask app with test configuration.

    Uses in-memory SQLite database for fast, isolated tests.
    """
    app = create_app('testing')

    app.config.update({
        'STAGING_DIR': str(tmp_path / 'staging'),
    })

    yield app


@pytest.fixture(scope='function')
def db(app):
    """
    Create database with all tables.

    Each test gets a fresh database.
    """
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Flask test client for making HTTP requests."""
    return app.test_client()


@pytest.fixture(scope='function')
def runner(app):
    """Flask CLI test runner."""
    return app.test_cli_runner()


@pytest.fixture
def run_log():
    return RunLog(prefix='test')


@pytest.fixture
def make_entry():
    """
    Factory for RemoteEntry values.

    Times are given as hours after BASE_TIME.
    """
    def _make(name, hours=0, size=100):
        return RemoteEntry(name=name, size=size, modified_time=BASE_TIME + timedelta(hours=hours))

    return _make


class InMemoryBackend:
    """
    Storage backend double keeping its files in a dict.

    Names listed in fail_on raise StorageError on delete; names in vanish
    are reported as already absent.
    """

    storage_type = 'memory'

    def __init__(self, entries=None, fail_on=(), vanish=(), list_error=None):
        self.files = {e.name: e for e in (entries or [])}
        self.fail_on = set(fail_on)
        self.vanish = set(vanish)
        self.list_error = list_error
        self.delete_calls = []

    def describe(self):
        return 'memory://test'

    def list_entries(self):
        if self.list_error:
            raise StorageError(self.list_error)
        return list(self.files.values())

    def delete(self, entry):
        self.delete_calls.append(entry.name)
        if entry.name in self.fail_on:
            raise StorageError(f"permission denied: {entry.name}")
        if entry.name in self.vanish:
            self.files.pop(entry.name, None)
            return DeleteResult.ALREADY_ABSENT
        del self.files[entry.name]
        return DeleteResult.DELETED


@pytest.fixture
def memory_backend():
    """Factory for InMemoryBackend instances."""
    return InMemoryBackend


@pytest.fixture(scope='function')
def backup_job(db, tmp_path):
    """
    Create a backup job with one local destination keeping 2 instances.
    """
    staging = tmp_path / 'staging' / 'documents'
    staging.mkdir(parents=True)
    dest_dir = tmp_path / 'dest'
    dest_dir.mkdir()

    job = BackupJob(
        name='documents',
        description='Test documents job',
        enabled=True,
        archive_base_name='Documents',
        archive_extension='.7z',
        archive_date_format='yyyy-MM-dd',
        staging_dir=str(staging),
        schedule_cron='0 3 * * *'  # Daily at 3 AM
    )
    job.destinations.append(Destination(
        name='nas',
        storage_type='local',
        storage_config=json.dumps({'path': str(dest_dir)}),
        keep_count=2
    ))
    db.session.add(job)
    db.session.commit()
    return job


@pytest.fixture(scope='function')
def s3_destination(db, backup_job):
    """Add an S3 destination to backup_job."""
    destination = Destination(
        job=backup_job,
        name='offsite',
        storage_type='s3',
        storage_config=json.dumps({
            'bucket': 'test-bucket',
            'prefix': 'documents',
            'access_key': 'test_access_key',
            'secret_key': 'test_secret_key'
        }),
        keep_count=3
    )
    db.session.add(destination)
    db.session.commit()
    return destination


@pytest.fixture(scope='function')
def transfer_history(db, backup_job):
    """
    Create a finished transfer history record.
    """
    history = TransferHistory(
        job_id=backup_job.id,
        destination_id=backup_job.destinations[0].id,
        destination_name='nas',
        operation='replicate',
        status='success',
        started_at=datetime(2025, 7, 5, 3, 0),
        completed_at=datetime(2025, 7, 5, 3, 1),
        instance_key='Documents [2025-07-05].7z',
        files_transferred=3,
        bytes_transferred=3072,
        retention_deleted=2,
        retention_kept=2,
        logs='[2025-07-05 03:00:00 UTC] INFO Starting replication\n[2025-07-05 03:01:00 UTC] INFO Done'
    )
    db.session.add(history)
    db.session.commit()
    return history


@pytest.fixture
def mock_s3():
    """
    Mock AWS S3 service using moto.

    Creates a test bucket 'test-bucket' in us-east-1 region.
    """
    with mock_aws():
        s3 = boto3.resource('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='test-bucket')

        yield s3


@pytest.fixture
def mock_ssh_client():
    """
    Mock paramiko SSHClient for SFTP testing.

    Returns a MagicMock that simulates SSH connections.
    """
    with patch('vaultprune.storage.sftp.SSHClient') as mock_ssh:
        mock_sftp = MagicMock()
        mock_ssh.return_value.open_sftp.return_value = mock_sftp
        mock_ssh.return_value.connect.return_value = None

        yield mock_ssh


@pytest.fixture(scope='function')
def mock_scheduler():
    """
    Mock APScheduler for testing scheduler functionality.
    """
    with patch('vaultprune.scheduler.BackgroundScheduler') as mock_sched:
        scheduler_instance = MagicMock()
        mock_sched.return_value = scheduler_instance

        scheduler_instance.running = False
        scheduler_instance.state = 0
        scheduler_instance.get_jobs.return_value = []

        yield scheduler_instance
