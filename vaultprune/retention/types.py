"""
Data model for the backup instance retention engine.

A destination listing is a flat list of RemoteEntry values. The classifier
maps each entry to an instance key, the aggregator folds entries into
Instance values, the selector turns those into a RetentionPlan and the
deletion executor produces one DeletionOutcome per file.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import ConfigurationError


InstanceKey = str


def to_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime (naive values are assumed UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class RemoteEntry:
    """One file or object as reported by a destination listing."""

    name: str
    size: int
    modified_time: datetime
    handle: Optional[str] = None

    def __post_init__(self):
        if self.size < 0:
            raise ValueError(f"Negative size for {self.name}: {self.size}")
        object.__setattr__(self, 'modified_time', to_utc(self.modified_time))
        if self.handle is None:
            object.__setattr__(self, 'handle', self.name)


@dataclass(frozen=True)
class ArchiveMatchSpec:
    """
    Describes which remote names belong to a job's backup instances.

    Attributes:
        base_name: Name prefix shared by every archive of the job
        primary_extension: Archive extension including the dot (e.g. '.7z')
        date_format: Date format of the stamp in archive names (display only)
        include_heuristic: Group names that only match the prefix fallback
    """

    base_name: str
    primary_extension: str
    date_format: Optional[str] = None
    include_heuristic: bool = False

    def __post_init__(self):
        if not self.base_name:
            raise ConfigurationError("Archive base name must not be empty")
        ext = (self.primary_extension or '').strip()
        if not ext or ext == '.':
            raise ConfigurationError("Archive extension must not be empty")
        if not ext.startswith('.'):
            ext = '.' + ext
        object.__setattr__(self, 'primary_extension', ext)


@dataclass(frozen=True)
class RetentionSettings:
    """Per-destination retention configuration. keep_count 0 keeps everything."""

    keep_count: int = 0

    def __post_init__(self):
        if isinstance(self.keep_count, bool) or not isinstance(self.keep_count, int):
            raise ConfigurationError(f"Keep count must be an integer, got {self.keep_count!r}")
        if self.keep_count < 0:
            raise ConfigurationError(f"Keep count must not be negative, got {self.keep_count}")

    @property
    def unlimited(self) -> bool:
        return self.keep_count == 0


class Role(Enum):
    PRIMARY = 'primary'
    VOLUME = 'volume'
    MANIFEST = 'manifest'
    SFX = 'sfx'
    HEURISTIC = 'heuristic'


@dataclass(frozen=True)
class Classification:
    key: InstanceKey
    role: Role
    part: Optional[str] = None


@dataclass
class Instance:
    """All remote files of one backup run."""

    key: InstanceKey
    files: List[RemoteEntry] = field(default_factory=list)
    representative_time: Optional[datetime] = None
    roles: Dict[str, Classification] = field(default_factory=dict)

    @property
    def total_size(self) -> int:
        return sum(f.size for f in self.files)


@dataclass
class StagedInstance:
    instance: Instance
    reason: str


@dataclass
class RetentionPlan:
    """Instances selected for deletion plus the ones retained."""

    stale: List[StagedInstance] = field(default_factory=list)
    kept: List[Instance] = field(default_factory=list)
    kept_count: int = 0
    total_instances: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.stale


class DeleteResult(Enum):
    """Successful outcomes of a backend delete primitive."""

    DELETED = 'deleted'
    ALREADY_ABSENT = 'already_absent'


class DeletionStatus(Enum):
    DELETED = 'deleted'
    ALREADY_ABSENT = 'already_absent'
    SKIPPED = 'skipped'
    FAILED = 'failed'


class SkipReason(Enum):
    SIMULATED = 'simulated'
    USER_DECLINED = 'user_declined'
    CANCELLED = 'cancelled'


@dataclass
class DeletionOutcome:
    entry: RemoteEntry
    instance_key: InstanceKey
    status: DeletionStatus
    skip_reason: Optional[SkipReason] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.entry.name,
            'instance': self.instance_key,
            'status': self.status.value,
            'skip_reason': self.skip_reason.value if self.skip_reason else None,
            'error': self.error
        }


class RetentionStage(Enum):
    LISTING = 'listing'
    CLASSIFYING = 'classifying'
    AGGREGATING = 'aggregating'
    SELECTING = 'selecting'
    DELETING = 'deleting'
    DONE = 'done'


@dataclass
class RetentionResult:
    """Outcome of one retention pass against one destination."""

    destination: str
    stage: RetentionStage = RetentionStage.LISTING
    deleted_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    absent_count: int = 0
    kept_count: int = 0
    instances_found: int = 0
    dry_run: bool = False
    cancelled: bool = False
    listing_error: Optional[str] = None
    plan: Optional[RetentionPlan] = None
    outcomes: List[DeletionOutcome] = field(default_factory=list)
    per_instance_log: Dict[InstanceKey, List[str]] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.listing_error is None and self.failed_count == 0 and not self.cancelled

    @property
    def errors(self) -> List[str]:
        return [
            f"{o.entry.name}: {o.error}"
            for o in self.outcomes
            if o.status is DeletionStatus.FAILED
        ]

    @property
    def error_summary(self) -> Optional[str]:
        """All retention problems joined into a single message, or None."""
        messages = []
        if self.listing_error:
            messages.append(f"Retention skipped for {self.destination}: {self.listing_error}")
        failures = self.errors
        if failures:
            messages.append(
                f"Retention failed to delete {len(failures)} file(s) on {self.destination}: "
                + '; '.join(failures)
            )
        if self.cancelled:
            messages.append(f"Retention cancelled on {self.destination}")
        return ' | '.join(messages) if messages else None

    def tally(self, outcome: DeletionOutcome):
        self.outcomes.append(outcome)
        if outcome.status is DeletionStatus.DELETED:
            self.deleted_count += 1
        elif outcome.status is DeletionStatus.ALREADY_ABSENT:
            self.absent_count += 1
        elif outcome.status is DeletionStatus.SKIPPED:
            self.skipped_count += 1
        else:
            self.failed_count += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'destination': self.destination,
            'stage': self.stage.value,
            'deleted_count': self.deleted_count,
            'failed_count': self.failed_count,
            'skipped_count': self.skipped_count,
            'absent_count': self.absent_count,
            'kept_count': self.kept_count,
            'instances_found': self.instances_found,
            'dry_run': self.dry_run,
            'cancelled': self.cancelled,
            'listing_error': self.listing_error,
            'stale_instances': [
                {
                    'key': s.instance.key,
                    'reason': s.reason,
                    'files': [f.name for f in s.instance.files],
                    'size': s.instance.total_size
                }
                for s in (self.plan.stale if self.plan else [])
            ],
            'outcomes': [o.to_dict() for o in self.outcomes],
            'per_instance_log': self.per_instance_log,
            'error_summary': self.error_summary
        }


@dataclass
class TransferResult:
    """Per-destination result of replicating one backup run."""

    destination: str
    success: bool = True
    files_transferred: int = 0
    bytes_transferred: int = 0
    error_message: Optional[str] = None
    retention: Optional[RetentionResult] = None

    def add_error(self, message: str):
        self.error_message = f"{self.error_message}; {message}" if self.error_message else message

    def merge_retention(self, result: RetentionResult):
        """
        Attach a retention result.

        Retention problems are appended to error_message but never mark the
        already completed transfer as failed.
        """
        self.retention = result
        summary = result.error_summary
        if summary:
            self.add_error(summary)
