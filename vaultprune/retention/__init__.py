"""
Backup instance retention engine.

Groups the files of a destination into backup instances (primary archive,
split volumes, checksum manifests), orders them by age and removes the
instances beyond a destination's keep count.
"""

from .errors import ConfigurationError, OperationCancelled, StorageError
from .types import (
    ArchiveMatchSpec,
    Classification,
    DeleteResult,
    DeletionOutcome,
    DeletionStatus,
    Instance,
    RemoteEntry,
    RetentionPlan,
    RetentionResult,
    RetentionSettings,
    RetentionStage,
    Role,
    SkipReason,
    TransferResult,
)
from .runlog import LogLevel, RunLog
from .classifier import classify, classify_name
from .aggregator import aggregate
from .selector import select
from .deletion import DeletionExecutor, auto_confirm
from .orchestrator import RetentionOrchestrator, apply_retention

__all__ = [
    'ArchiveMatchSpec',
    'Classification',
    'ConfigurationError',
    'DeleteResult',
    'DeletionExecutor',
    'DeletionOutcome',
    'DeletionStatus',
    'Instance',
    'LogLevel',
    'OperationCancelled',
    'RemoteEntry',
    'RetentionOrchestrator',
    'RetentionPlan',
    'RetentionResult',
    'RetentionSettings',
    'RetentionStage',
    'Role',
    'RunLog',
    'SkipReason',
    'StorageError',
    'TransferResult',
    'aggregate',
    'apply_retention',
    'auto_confirm',
    'classify',
    'classify_name',
    'select',
]
