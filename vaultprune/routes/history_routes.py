"""
Transfer history routes - view replication/retention runs and cancel running ones.
"""

from datetime import timedelta
from flask import Blueprint, jsonify, request

from vaultprune import db
from vaultprune.models import TransferHistory, utcnow
from vaultprune.backup.executor import cancel_transfer


bp = Blueprint('history', __name__, url_prefix='/api/history')

VALID_STATUSES = ['running', 'success', 'partial', 'failed', 'cancelled']


@bp.route('/', methods=['GET'])
def list_history():
    """
    Get transfer history with filtering and pagination.

    Query params:
        - status: Filter by status (running/success/partial/failed/cancelled)
        - job_id: Filter by job ID
        - operation: Filter by operation (replicate/prune)
        - days: Only show runs from last N days
        - limit: Max number of records (default: 50, max: 200)
        - offset: Number of records to skip (default: 0)

    Returns:
        JSON with history records and metadata
    """
    status_filter = request.args.get('status')
    job_id_filter = request.args.get('job_id', type=int)
    operation_filter = request.args.get('operation')
    days_filter = request.args.get('days', type=int)
    limit = min(request.args.get('limit', 50, type=int), 200)
    offset = max(request.args.get('offset', 0, type=int), 0)

    query = TransferHistory.query

    if status_filter:
        if status_filter not in VALID_STATUSES:
            return jsonify({'error': 'Invalid status filter'}), 400
        query = query.filter(TransferHistory.status == status_filter)

    if job_id_filter:
        query = query.filter(TransferHistory.job_id == job_id_filter)

    if operation_filter:
        query = query.filter(TransferHistory.operation == operation_filter)

    if days_filter and days_filter > 0:
        query = query.filter(TransferHistory.started_at >= utcnow() - timedelta(days=days_filter))

    total_count = query.count()

    records = query.order_by(
        TransferHistory.started_at.desc(), TransferHistory.id.desc()
    ).limit(limit).offset(offset).all()

    return jsonify({
        'history': [record.to_dict() for record in records],
        'total': total_count,
        'limit': limit,
        'offset': offset
    })


@bp.route('/<int:history_id>', methods=['GET'])
def get_history(history_id):
    """Get one history record including its logs."""
    record = db.get_or_404(TransferHistory, history_id)
    return jsonify(record.to_dict(include_logs=True))


@bp.route('/<int:history_id>/cancel', methods=['POST'])
def cancel_history(history_id):
    """Request cancellation of a running transfer."""
    db.get_or_404(TransferHistory, history_id)

    try:
        cancel_transfer(history_id)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({'message': 'Cancellation requested'})


@bp.route('/<int:history_id>', methods=['DELETE'])
def delete_history(history_id):
    """Delete a finished history record."""
    record = db.get_or_404(TransferHistory, history_id)

    if record.status == 'running':
        return jsonify({'error': 'Cannot delete a running transfer'}), 400

    db.session.delete(record)
    db.session.commit()

    return jsonify({'message': 'History record deleted'})
