"""
Backup jobs routes - job and destination CRUD, replication and retention triggers.
"""

import json
from flask import Blueprint, jsonify, request

from vaultprune import db
from vaultprune import scheduler as job_scheduler
from vaultprune.models import BackupJob, Destination, TransferHistory
from vaultprune.backup.executor import (
    ReplicationError, execute_prune_job, execute_replication_job, preview_retention
)
from vaultprune.storage import STORAGE_TYPES, validate_storage_config


bp = Blueprint('jobs', __name__, url_prefix='/api/jobs')


def _bad_request(message):
    return jsonify({'error': message}), 400


def _apply_job_fields(job, data):
    """Copy editable fields from request data onto a job. Raises ValueError."""
    for field in ('description', 'archive_base_name', 'archive_extension', 'archive_date_format',
                  'staging_dir', 'schedule_cron'):
        if field in data:
            setattr(job, field, data[field])
    if 'enabled' in data:
        job.enabled = bool(data['enabled'])


def _apply_destination_fields(destination, data):
    """Copy editable fields onto a destination. Raises ValueError."""
    if 'name' in data:
        destination.name = data['name']
    if 'storage_type' in data:
        destination.storage_type = data['storage_type']
    if 'storage_config' in data:
        if not isinstance(data['storage_config'], dict):
            raise ValueError('Storage configuration must be an object')
        destination.storage_config = json.dumps(data['storage_config'])
    if 'keep_count' in data:
        destination.keep_count = data['keep_count']
    if 'enabled' in data:
        destination.enabled = bool(data['enabled'])
    validate_storage_config(destination.storage_type, destination.config)


@bp.route('/', methods=['GET'])
def list_jobs():
    """List all backup jobs."""
    jobs = BackupJob.query.order_by(BackupJob.created_at.desc()).all()
    return jsonify([job.to_dict() for job in jobs])


@bp.route('/<int:job_id>', methods=['GET'])
def get_job(job_id):
    """Get a job with its destinations."""
    job = db.get_or_404(BackupJob, job_id)
    data = job.to_dict()
    data['destinations'] = [d.to_dict(include_config=True) for d in job.destinations]
    return jsonify(data)


@bp.route('/', methods=['POST'])
def create_job():
    """
    Create a new backup job.

    Request body:
        - name: Job name (required)
        - archive_base_name: Archive name prefix (required)
        - archive_extension: Primary extension, e.g. '.7z' (default: .7z)
        - archive_date_format, staging_dir, schedule_cron, description, enabled (optional)
        - destinations: List of destination objects (optional)

    Returns:
        JSON with created job id
    """
    data = request.get_json(silent=True) or {}

    if not data.get('name'):
        return _bad_request('Job name is required')

    if not data.get('archive_base_name'):
        return _bad_request('Archive base name is required')

    if BackupJob.query.filter_by(name=data['name']).first():
        return _bad_request('Job name already exists')

    try:
        job = BackupJob(name=data['name'], archive_extension=data.get('archive_extension', '.7z'))
        _apply_job_fields(job, data)

        for dest_data in data.get('destinations', []):
            destination = Destination(
                name=dest_data.get('name'),
                storage_type=dest_data.get('storage_type'),
                keep_count=dest_data.get('keep_count', 0)
            )
            _apply_destination_fields(destination, dest_data)
            if not destination.name:
                raise ValueError('Destination name is required')
            job.destinations.append(destination)
    except ValueError as e:
        db.session.rollback()
        return _bad_request(str(e))

    db.session.add(job)
    db.session.commit()

    job_scheduler.sync_replication_jobs()

    return jsonify({
        'id': job.id,
        'message': 'Backup job created successfully'
    }), 201


@bp.route('/<int:job_id>', methods=['PUT'])
def update_job(job_id):
    """Update an existing backup job (all fields optional)."""
    job = db.get_or_404(BackupJob, job_id)
    data = request.get_json(silent=True) or {}

    if 'name' in data and data['name'] != job.name:
        if BackupJob.query.filter_by(name=data['name']).first():
            return _bad_request('Job name already exists')
        job.name = data['name']

    try:
        _apply_job_fields(job, data)
    except ValueError as e:
        db.session.rollback()
        return _bad_request(str(e))

    db.session.commit()
    job_scheduler.sync_replication_jobs()

    return jsonify({'message': 'Backup job updated successfully'})


@bp.route('/<int:job_id>', methods=['DELETE'])
def delete_job(job_id):
    """Delete a backup job with its destinations and history."""
    job = db.get_or_404(BackupJob, job_id)

    db.session.delete(job)
    db.session.commit()

    job_scheduler.sync_replication_jobs()

    return jsonify({'message': 'Backup job deleted successfully'})


@bp.route('/<int:job_id>/toggle', methods=['POST'])
def toggle_job(job_id):
    """Toggle a job's enabled status."""
    job = db.get_or_404(BackupJob, job_id)

    job.enabled = not job.enabled
    db.session.commit()

    job_scheduler.sync_replication_jobs()

    return jsonify({
        'enabled': job.enabled,
        'message': f"Job {'enabled' if job.enabled else 'disabled'} successfully"
    })


@bp.route('/<int:job_id>/destinations', methods=['GET'])
def list_destinations(job_id):
    job = db.get_or_404(BackupJob, job_id)
    return jsonify([d.to_dict(include_config=True) for d in job.destinations])


@bp.route('/<int:job_id>/destinations', methods=['POST'])
def create_destination(job_id):
    """
    Add a destination to a job.

    Request body:
        - name: Destination name (required, unique per job)
        - storage_type: local, sftp, s3, gcs or webdav (required)
        - storage_config: Backend settings object (required)
        - keep_count: Instances to keep, 0 keeps all (default: 0)
        - enabled: default true
    """
    job = db.get_or_404(BackupJob, job_id)
    data = request.get_json(silent=True) or {}

    if not data.get('name'):
        return _bad_request('Destination name is required')

    if data.get('storage_type') not in STORAGE_TYPES:
        return _bad_request(f'Storage type must be one of {list(STORAGE_TYPES)}')

    if any(d.name == data['name'] for d in job.destinations):
        return _bad_request('Destination name already exists for this job')

    try:
        destination = Destination(job=job, storage_type=data['storage_type'], keep_count=0)
        _apply_destination_fields(destination, data)
    except ValueError as e:
        db.session.rollback()
        return _bad_request(str(e))

    db.session.add(destination)
    db.session.commit()

    return jsonify({'id': destination.id, 'message': 'Destination created successfully'}), 201


@bp.route('/<int:job_id>/destinations/<int:destination_id>', methods=['PUT'])
def update_destination(job_id, destination_id):
    destination = Destination.query.filter_by(id=destination_id, job_id=job_id).first_or_404()
    data = request.get_json(silent=True) or {}

    try:
        _apply_destination_fields(destination, data)
    except ValueError as e:
        db.session.rollback()
        return _bad_request(str(e))

    db.session.commit()
    return jsonify({'message': 'Destination updated successfully'})


@bp.route('/<int:job_id>/destinations/<int:destination_id>', methods=['DELETE'])
def delete_destination(job_id, destination_id):
    destination = Destination.query.filter_by(id=destination_id, job_id=job_id).first_or_404()

    db.session.delete(destination)
    db.session.commit()

    return jsonify({'message': 'Destination deleted successfully'})


@bp.route('/<int:job_id>/run', methods=['POST'])
def run_job_now(job_id):
    """
    Replicate a job now.

    Request body (optional):
        - dry_run: Simulate uploads and deletions

    Queued on the scheduler when it runs in this process, otherwise executed
    synchronously and the transfer records are returned.
    """
    job = db.get_or_404(BackupJob, job_id)
    data = request.get_json(silent=True) or {}
    dry_run = data.get('dry_run')

    if job_scheduler.scheduler is not None:
        try:
            job_scheduler.trigger_replication_now(job_id, dry_run=dry_run)
        except (RuntimeError, ValueError) as e:
            return jsonify({'error': str(e)}), 500
        return jsonify({
            'message': f"Replication job '{job.name}' has been queued for immediate execution"
        }), 202

    try:
        records = execute_replication_job(job_id, allow_disabled=True, dry_run=dry_run)
    except ReplicationError as e:
        return _bad_request(str(e))

    return jsonify({
        'message': f"Replication job '{job.name}' finished",
        'transfers': [r.to_dict() for r in records]
    })


@bp.route('/<int:job_id>/prune', methods=['POST'])
def prune_job_now(job_id):
    """Apply retention at every destination of a job without uploading."""
    job = db.get_or_404(BackupJob, job_id)
    data = request.get_json(silent=True) or {}

    records = execute_prune_job(job.id, allow_disabled=True, dry_run=data.get('dry_run'))

    return jsonify({
        'message': f"Retention for '{job.name}' finished",
        'transfers': [r.to_dict() for r in records]
    })


@bp.route('/<int:job_id>/retention/preview', methods=['POST'])
def retention_preview(job_id):
    """Show which instances retention would delete, per destination."""
    job = db.get_or_404(BackupJob, job_id)
    return jsonify(preview_retention(job))


@bp.route('/<int:job_id>/history', methods=['GET'])
def get_job_history(job_id):
    """
    Get transfer history for a specific job.

    Query params:
        - limit: Max number of records (default: 50, max: 200)
    """
    db.get_or_404(BackupJob, job_id)

    limit = min(request.args.get('limit', 50, type=int), 200)

    history = TransferHistory.query.filter_by(job_id=job_id).order_by(
        TransferHistory.started_at.desc()
    ).limit(limit).all()

    return jsonify([record.to_dict() for record in history])


@bp.route('/schedule', methods=['GET'])
def scheduled_jobs():
    return jsonify(job_scheduler.get_scheduled_jobs())
