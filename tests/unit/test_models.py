"""
Unit tests for database models (vaultprune/models.py).

Tests BackupJob, Destination and TransferHistory.
"""

import json

import pytest
from sqlalchemy.exc import IntegrityError

from vaultprune.models import BackupJob, Destination, TransferHistory
from vaultprune.retention import ArchiveMatchSpec, ConfigurationError


class TestBackupJob:
    """Test BackupJob model."""

    def test_create_job(self, db):
        job = BackupJob(name='photos', archive_base_name='Photos', archive_extension='zip')
        db.session.add(job)
        db.session.commit()

        assert job.id is not None
        assert job.enabled is True
        assert job.archive_extension == '.zip'
        assert job.created_at is not None

    def test_default_extension(self, db):
        job = BackupJob(name='photos', archive_base_name='Photos')
        db.session.add(job)
        db.session.commit()

        assert job.archive_extension == '.7z'

    def test_name_unique(self, db, backup_job):
        db.session.add(BackupJob(name='documents', archive_base_name='Other'))

        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    def test_empty_base_name_rejected(self, db):
        with pytest.raises(ValueError, match='base name'):
            BackupJob(name='x', archive_base_name='  ')

    def test_empty_extension_rejected(self, db):
        with pytest.raises(ConfigurationError):
            BackupJob(name='x', archive_base_name='X', archive_extension='')

    def test_match_spec(self, backup_job):
        spec = backup_job.match_spec(include_heuristic=True)

        assert spec == ArchiveMatchSpec('Documents', '.7z', 'yyyy-MM-dd', True)

    def test_to_dict(self, backup_job):
        data = backup_job.to_dict()

        assert data['name'] == 'documents'
        assert data['archive_base_name'] == 'Documents'
        assert data['destination_count'] == 1
        assert data['schedule_cron'] == '0 3 * * *'

    def test_delete_cascades(self, db, backup_job, transfer_history):
        db.session.delete(backup_job)
        db.session.commit()

        assert Destination.query.count() == 0
        assert TransferHistory.query.count() == 0


class TestDestination:
    """Test Destination model."""

    def test_negative_keep_count_rejected(self, backup_job):
        with pytest.raises(ConfigurationError):
            Destination(job=backup_job, name='bad', storage_type='local', keep_count=-1)

    def test_invalid_storage_type_rejected(self, backup_job):
        with pytest.raises(ValueError, match='Invalid storage type'):
            Destination(job=backup_job, name='bad', storage_type='ftp')

    def test_name_unique_per_job(self, db, backup_job):
        db.session.add(Destination(job=backup_job, name='nas', storage_type='local',
                                   storage_config='{"path": "/tmp"}'))

        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    def test_retention_settings(self, backup_job):
        settings = backup_job.destinations[0].retention_settings()

        assert settings.keep_count == 2
        assert not settings.unlimited

    def test_to_dict_masks_secrets(self, db, backup_job):
        destination = Destination(
            job=backup_job,
            name='offsite',
            storage_type='s3',
            storage_config=json.dumps({'bucket': 'b', 'access_key': 'AKIA', 'secret_key': 's3cr3t'}),
            keep_count=5
        )
        db.session.add(destination)
        db.session.commit()

        data = destination.to_dict(include_config=True)

        assert data['storage_config'] == {'bucket': 'b', 'access_key': '********', 'secret_key': '********'}
        assert 'storage_config' not in destination.to_dict()


class TestTransferHistory:
    """Test TransferHistory model."""

    def test_defaults(self, db, backup_job):
        record = TransferHistory(job_id=backup_job.id, destination_name='nas', status='running')
        db.session.add(record)
        db.session.commit()

        assert record.operation == 'replicate'
        assert record.dry_run is False
        assert record.cancellation_requested is False
        assert record.retention_deleted == 0

    def test_to_dict(self, transfer_history):
        data = transfer_history.to_dict()

        assert data['job_name'] == 'documents'
        assert data['status'] == 'success'
        assert data['retention_deleted'] == 2
        assert data['started_at'] == '2025-07-05T03:00:00'
        assert 'logs' not in data
        assert 'Starting replication' in transfer_history.to_dict(include_logs=True)['logs']
