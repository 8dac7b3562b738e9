"""
Backup module for vaultprune.

This module handles replication of finished backup runs:
- Locating the newest local backup instance
- Uploading it to every destination of a job
- Applying each destination's retention policy
"""

from .executor import (
    ReplicationError,
    ReplicationExecutor,
    cancel_transfer,
    execute_prune_job,
    execute_replication_job,
    find_latest_instance,
    preview_retention,
)

__all__ = [
    'ReplicationError',
    'ReplicationExecutor',
    'cancel_transfer',
    'execute_prune_job',
    'execute_replication_job',
    'find_latest_instance',
    'preview_retention',
]
