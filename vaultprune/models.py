import json
from datetime import datetime, timezone

from sqlalchemy.orm import validates

from vaultprune import db
from vaultprune.retention import ArchiveMatchSpec, RetentionSettings
from vaultprune.storage import STORAGE_TYPES


def utcnow():
    """Naive UTC timestamp for database columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BackupJob(db.Model):
    """Backup job: which archives to replicate and where"""
    __tablename__ = 'backup_jobs'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False)
    description = db.Column(db.Text)
    enabled = db.Column(db.Boolean, default=True, nullable=False)
    archive_base_name = db.Column(db.String(255), nullable=False)  # e.g. 'Documents'
    archive_extension = db.Column(db.String(20), nullable=False, default='.7z')  # primary extension incl. dot
    archive_date_format = db.Column(db.String(50))  # informational, e.g. 'yyyy-MM-dd'
    staging_dir = db.Column(db.String(500))  # where the compressor writes archives
    schedule_cron = db.Column(db.String(100))  # Cron expression
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    destinations = db.relationship('Destination', back_populates='job', cascade='all, delete-orphan',
                                   order_by='Destination.id')
    history = db.relationship('TransferHistory', back_populates='job', cascade='all, delete-orphan', lazy='dynamic')

    @validates('archive_base_name')
    def validate_base_name(self, key, value):
        if not value or not value.strip():
            raise ValueError("Archive base name is required")
        return value

    @validates('archive_extension')
    def validate_extension(self, key, value):
        # Normalises to a leading dot, rejects empty values
        return ArchiveMatchSpec('x', value or '').primary_extension

    def match_spec(self, include_heuristic=False) -> ArchiveMatchSpec:
        return ArchiveMatchSpec(
            base_name=self.archive_base_name,
            primary_extension=self.archive_extension,
            date_format=self.archive_date_format,
            include_heuristic=include_heuristic
        )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'enabled': self.enabled,
            'archive_base_name': self.archive_base_name,
            'archive_extension': self.archive_extension,
            'archive_date_format': self.archive_date_format,
            'staging_dir': self.staging_dir,
            'schedule_cron': self.schedule_cron,
            'destination_count': len(self.destinations),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<BackupJob {self.name} base={self.archive_base_name}{self.archive_extension} enabled={self.enabled}>'


class Destination(db.Model):
    """Storage destination of a job with its retention setting"""
    __tablename__ = 'destinations'

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, db.ForeignKey('backup_jobs.id'), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    storage_type = db.Column(db.String(20), nullable=False)  # local, sftp, s3, gcs, webdav
    storage_config = db.Column(db.Text, nullable=False, default='{}')  # JSON string
    keep_count = db.Column(db.Integer, nullable=False, default=0)  # 0 = keep everything
    enabled = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    job = db.relationship('BackupJob', back_populates='destinations')

    __table_args__ = (db.UniqueConstraint('job_id', 'name', name='uq_destination_job_name'),)

    @validates('keep_count')
    def validate_keep_count(self, key, value):
        return RetentionSettings(value).keep_count

    @validates('storage_type')
    def validate_storage_type(self, key, value):
        if value not in STORAGE_TYPES:
            raise ValueError(f"Invalid storage type: {value}. Valid options: {list(STORAGE_TYPES)}")
        return value

    @property
    def config(self):
        return json.loads(self.storage_config or '{}')

    def retention_settings(self) -> RetentionSettings:
        return RetentionSettings(self.keep_count)

    def to_dict(self, include_config=False):
        data = {
            'id': self.id,
            'job_id': self.job_id,
            'name': self.name,
            'storage_type': self.storage_type,
            'keep_count': self.keep_count,
            'enabled': self.enabled,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
        if include_config:
            data['storage_config'] = {
                k: ('********' if k in ('password', 'secret_key', 'access_key') else v)
                for k, v in self.config.items()
            }
        return data

    def __repr__(self):
        return f'<Destination {self.name} type={self.storage_type} keep={self.keep_count}>'


class TransferHistory(db.Model):
    """Replication and retention history per destination"""
    __tablename__ = 'transfer_history'

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, db.ForeignKey('backup_jobs.id'), nullable=False)
    destination_id = db.Column(db.Integer, db.ForeignKey('destinations.id', ondelete='SET NULL'), nullable=True)
    destination_name = db.Column(db.String(255), nullable=False)
    operation = db.Column(db.String(20), nullable=False, default='replicate')  # replicate, prune
    status = db.Column(db.String(20), nullable=False)  # running, success, partial, failed, cancelled
    dry_run = db.Column(db.Boolean, default=False, nullable=False)
    started_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    completed_at = db.Column(db.DateTime)
    instance_key = db.Column(db.String(500))  # backup instance that was replicated
    files_transferred = db.Column(db.Integer, default=0, nullable=False)
    bytes_transferred = db.Column(db.BigInteger, default=0, nullable=False)
    retention_deleted = db.Column(db.Integer, default=0, nullable=False)
    retention_failed = db.Column(db.Integer, default=0, nullable=False)
    retention_skipped = db.Column(db.Integer, default=0, nullable=False)
    retention_kept = db.Column(db.Integer, default=0, nullable=False)
    error_message = db.Column(db.Text)
    logs = db.Column(db.Text)  # Detailed execution logs
    cancellation_requested = db.Column(db.Boolean, default=False, nullable=False)

    job = db.relationship('BackupJob', back_populates='history')

    def to_dict(self, include_logs=False):
        data = {
            'id': self.id,
            'job_id': self.job_id,
            'job_name': self.job.name if self.job else None,
            'destination_id': self.destination_id,
            'destination_name': self.destination_name,
            'operation': self.operation,
            'status': self.status,
            'dry_run': self.dry_run,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'instance_key': self.instance_key,
            'files_transferred': self.files_transferred,
            'bytes_transferred': self.bytes_transferred,
            'retention_deleted': self.retention_deleted,
            'retention_failed': self.retention_failed,
            'retention_skipped': self.retention_skipped,
            'retention_kept': self.retention_kept,
            'error_message': self.error_message,
            'cancellation_requested': self.cancellation_requested
        }
        if include_logs:
            data['logs'] = self.logs
        return data

    def __repr__(self):
        return f'<TransferHistory job_id={self.job_id} dest={self.destination_name} status={self.status}>'
