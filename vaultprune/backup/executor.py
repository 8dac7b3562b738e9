"""
Replication executor - copies a backup run to every destination of a job and
applies each destination's retention policy.

Workflow per destination:
1. Create TransferHistory record (status: running)
2. Upload every file of the backup instance
3. Apply retention (keep the newest N instances)
4. Update TransferHistory (status: success/partial/failed/cancelled)

Destinations run in parallel (one worker each); inside a destination all
uploads and deletions are sequential. A retention problem never fails the
upload that preceded it: it turns the status into 'partial' and is appended
to the error message.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from flask import current_app

from vaultprune import db
from vaultprune.models import BackupJob, TransferHistory, utcnow
from vaultprune.retention import (
    ArchiveMatchSpec, OperationCancelled, RetentionSettings, RunLog, StorageError, TransferResult, aggregate,
    apply_retention, classify_name
)
from vaultprune.retention.deletion import ConfirmPredicate
from vaultprune.retention.selector import order_instances
from vaultprune.storage import LocalStorage, create_storage


logger = logging.getLogger(__name__)


class ReplicationError(Exception):
    """Raised when a job cannot be replicated at all."""
    pass


@dataclass
class DestinationTask:
    """Plain snapshot of a destination; worker threads never touch ORM objects."""
    history_id: int
    destination_id: int
    name: str
    storage_type: str
    config: Dict[str, Any]
    retention: RetentionSettings


@dataclass
class DestinationOutcome:
    task: DestinationTask
    transfer: TransferResult
    status: str
    logs: List[str]


def find_latest_instance(staging_dir: str, spec: ArchiveMatchSpec, run_log: Optional[RunLog] = None) -> List[str]:
    """
    Locate the newest backup instance in a staging directory.

    Returns:
        Full paths of every file of that instance (volumes, manifest, ...)

    Raises:
        ReplicationError: If the directory is missing or holds no instance
    """
    try:
        entries = LocalStorage(staging_dir).list_entries()
    except StorageError as e:
        raise ReplicationError(f"Cannot read staging directory: {e}")

    instances = aggregate(entries, spec, run_log)
    if not instances:
        raise ReplicationError(
            f"No archive matching '{spec.base_name}*{spec.primary_extension}' found in {staging_dir}"
        )

    newest = order_instances(instances)[0]
    if run_log:
        run_log.info(f"Latest local instance: '{newest.key}' ({len(newest.files)} file(s))")
    return [f.handle for f in newest.files]


class ReplicationExecutor:
    """
    Replicates a job's latest backup run and prunes old runs at every
    enabled destination.

    Args:
        job: BackupJob to run
        dry_run: Simulate uploads and deletions (default: RETENTION_DRY_RUN)
        confirm: Confirmation predicate for each deletion (default: auto-confirm)
        max_workers: Parallel destinations (default: RETENTION_MAX_WORKERS)
    """

    def __init__(
        self,
        job: BackupJob,
        dry_run: Optional[bool] = None,
        confirm: Optional[ConfirmPredicate] = None,
        max_workers: Optional[int] = None
    ):
        self.job = job
        self.job_name = job.name
        self.app = current_app._get_current_object()
        self.dry_run = self.app.config.get('RETENTION_DRY_RUN', False) if dry_run is None else dry_run
        self.confirm = confirm
        self.max_workers = max_workers or self.app.config.get('RETENTION_MAX_WORKERS', 4)
        self.spec = job.match_spec(include_heuristic=self.app.config.get('RETENTION_INCLUDE_HEURISTIC', False))
        self.run_log = RunLog(logger, prefix=job.name)

    def execute(self, archive_paths: Optional[List[str]] = None) -> List[TransferHistory]:
        """
        Upload a backup run to every destination, then apply retention.

        Args:
            archive_paths: Files of the run; defaults to the newest instance
                in the job's staging directory

        Returns:
            TransferHistory records, one per destination

        Raises:
            ReplicationError: If there is nothing to replicate
        """
        self.run_log.info(f"Starting replication for job: {self.job.name}" + (" (dry run)" if self.dry_run else ""))

        if archive_paths is None:
            archive_paths = find_latest_instance(self._staging_dir(), self.spec, self.run_log)

        missing = [p for p in archive_paths if not os.path.isfile(p)]
        if missing:
            raise ReplicationError(f"Archive file(s) not found: {', '.join(missing)}")

        instance_key = self._instance_key(archive_paths)
        return self._run('replicate', archive_paths, instance_key)

    def prune(self) -> List[TransferHistory]:
        """Apply retention at every destination without uploading."""
        self.run_log.info(f"Starting retention for job: {self.job.name}" + (" (dry run)" if self.dry_run else ""))
        return self._run('prune', [], None)

    def _staging_dir(self) -> str:
        return self.job.staging_dir or os.path.join(self.app.config['STAGING_DIR'], self.job.name)

    def _instance_key(self, archive_paths: List[str]) -> Optional[str]:
        for path in archive_paths:
            classification = classify_name(os.path.basename(path), self.spec)
            if classification is not None:
                return classification.key
        return None

    def _run(self, operation: str, archive_paths: List[str], instance_key: Optional[str]) -> List[TransferHistory]:
        destinations = [d for d in self.job.destinations if d.enabled]
        if not destinations:
            self.run_log.warning("No enabled destinations configured, nothing to do")
            return []

        tasks = []
        records = {}
        for destination in destinations:
            record = TransferHistory(
                job_id=self.job.id,
                destination_id=destination.id,
                destination_name=destination.name,
                operation=operation,
                status='running',
                dry_run=self.dry_run,
                instance_key=instance_key,
                started_at=utcnow()
            )
            db.session.add(record)
            db.session.flush()
            records[record.id] = record
            tasks.append(DestinationTask(
                history_id=record.id,
                destination_id=destination.id,
                name=destination.name,
                storage_type=destination.storage_type,
                config=destination.config,
                retention=destination.retention_settings()
            ))
        db.session.commit()

        preamble = self.run_log.lines()
        workers = max(1, min(self.max_workers, len(tasks)))
        outcomes = []

        try:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='vaultprune-dest') as pool:
                futures = [(task, pool.submit(self._process_destination, task, archive_paths)) for task in tasks]
                for task, future in futures:
                    try:
                        outcomes.append(future.result())
                    except Exception as e:
                        logger.exception(f"Worker for destination {task.name} crashed")
                        outcomes.append(self._failed_outcome(task, e))
        finally:
            self._finalize(records, outcomes, preamble)

        summary = ', '.join(f"{o.task.name}={o.status}" for o in outcomes)
        self.run_log.info(f"Job {self.job_name} finished: {summary}")

        return [records[o.task.history_id] for o in outcomes]

    def _failed_outcome(self, task: DestinationTask, error: Exception) -> DestinationOutcome:
        transfer = TransferResult(destination=task.name, success=False)
        transfer.add_error(str(error) or error.__class__.__name__)
        return DestinationOutcome(task=task, transfer=transfer, status='failed', logs=[])

    def _finalize(self, records: Dict[int, TransferHistory], outcomes: List[DestinationOutcome], preamble: List[str]):
        """Write outcomes to the history rows; rows without an outcome are marked failed."""
        finished = set()
        for outcome in outcomes:
            record = records[outcome.task.history_id]
            transfer = outcome.transfer
            record.status = outcome.status
            record.completed_at = utcnow()
            record.files_transferred = transfer.files_transferred
            record.bytes_transferred = transfer.bytes_transferred
            record.error_message = transfer.error_message
            if transfer.retention is not None:
                record.retention_deleted = transfer.retention.deleted_count
                record.retention_failed = transfer.retention.failed_count
                record.retention_skipped = transfer.retention.skipped_count
                record.retention_kept = transfer.retention.kept_count
            record.logs = '\n'.join(preamble + outcome.logs)
            finished.add(outcome.task.history_id)

        for history_id, record in records.items():
            if history_id not in finished:
                record.status = 'failed'
                record.completed_at = utcnow()
                record.error_message = record.error_message or 'Replication aborted'
                record.logs = '\n'.join(preamble)
        db.session.commit()

    def _process_destination(self, task: DestinationTask, archive_paths: List[str]) -> DestinationOutcome:
        run_log = RunLog(logger, prefix=f"{self.job_name}/{task.name}")
        transfer = TransferResult(destination=task.name)
        cancellation_check = self._cancellation_check(task.history_id)
        backend = None

        try:
            backend = create_storage(task.storage_type, task.config)

            for path in archive_paths:
                if self.dry_run:
                    run_log.simulate(f"Would upload {os.path.basename(path)} to {backend.describe()}")
                    continue
                run_log.info(f"Uploading {os.path.basename(path)} to {backend.describe()}")
                stored = backend.upload(path, cancellation_check=cancellation_check)
                transfer.files_transferred += 1
                transfer.bytes_transferred += os.path.getsize(path)
                run_log.success(f"Stored {stored}")

            if task.retention.unlimited:
                run_log.debug(f"Keep count of {task.name} is 0, every instance is kept")
            result = apply_retention(
                backend,
                self.spec,
                task.retention.keep_count,
                dry_run=self.dry_run,
                confirm=self.confirm,
                cancellation_check=cancellation_check,
                run_log=run_log
            )
            transfer.merge_retention(result)

            if result.cancelled:
                status = 'cancelled'
            elif result.error_summary:
                status = 'partial'
            else:
                status = 'success'

        except OperationCancelled as e:
            run_log.warning(f"Cancelled: {e}")
            transfer.success = False
            transfer.add_error(f"Cancelled: {e}")
            status = 'cancelled'
        except (StorageError, ValueError) as e:
            run_log.error(f"Transfer to {task.name} failed: {e}")
            transfer.success = False
            transfer.add_error(str(e))
            status = 'failed'
        except Exception as e:
            run_log.error(f"Unexpected error while transferring to {task.name}: {e.__class__.__name__}: {e}")
            logger.exception(f"Transfer to {task.name} failed")
            transfer.success = False
            transfer.add_error(f"{e.__class__.__name__}: {e}")
            status = 'failed'
        finally:
            if backend is not None:
                backend.cleanup()

        return DestinationOutcome(task=task, transfer=transfer, status=status, logs=run_log.lines())

    def _cancellation_check(self, history_id: int) -> Callable[[], None]:
        app = self.app

        def check():
            with app.app_context():
                requested = db.session.query(TransferHistory.cancellation_requested).filter_by(
                    id=history_id
                ).scalar()
            if requested:
                raise OperationCancelled("cancellation requested by user")

        return check


def _load_job(job_id: int, allow_disabled: bool) -> BackupJob:
    job = db.session.get(BackupJob, job_id)

    if not job:
        raise ValueError(f"Backup job not found: {job_id}")

    if not job.enabled and not allow_disabled:
        raise ValueError(f"Backup job is disabled: {job.name}")

    return job


def execute_replication_job(
    job_id: int,
    allow_disabled: bool = False,
    dry_run: Optional[bool] = None,
    archive_paths: Optional[List[str]] = None
) -> List[TransferHistory]:
    """
    Replicate a job by ID.

    Raises:
        ValueError: If job not found, or if disabled and not allowed
        ReplicationError: If there is no archive to replicate
    """
    job = _load_job(job_id, allow_disabled)
    return ReplicationExecutor(job, dry_run=dry_run).execute(archive_paths)


def execute_prune_job(
    job_id: int,
    allow_disabled: bool = False,
    dry_run: Optional[bool] = None,
    confirm: Optional[ConfirmPredicate] = None
) -> List[TransferHistory]:
    """Apply retention for a job by ID without uploading."""
    job = _load_job(job_id, allow_disabled)
    return ReplicationExecutor(job, dry_run=dry_run, confirm=confirm).prune()


def preview_retention(job: BackupJob) -> List[Dict[str, Any]]:
    """
    Compute what retention would delete at each destination, without
    deleting anything or writing history.

    Returns:
        List of RetentionResult dicts, one per enabled destination
    """
    app = current_app._get_current_object()
    spec = job.match_spec(include_heuristic=app.config.get('RETENTION_INCLUDE_HEURISTIC', False))
    previews = []

    for destination in job.destinations:
        if not destination.enabled:
            continue
        run_log = RunLog(logger, prefix=f"{job.name}/{destination.name}")
        try:
            settings = destination.retention_settings()
            backend = create_storage(destination.storage_type, destination.config)
        except (StorageError, ValueError) as e:
            previews.append({'destination': destination.name, 'error': str(e)})
            continue
        try:
            result = apply_retention(backend, spec, settings.keep_count, dry_run=True, run_log=run_log)
        finally:
            backend.cleanup()
        data = result.to_dict()
        data['destination'] = destination.name
        previews.append(data)

    return previews


def cancel_transfer(history_id: int) -> TransferHistory:
    """
    Request cancellation of a running transfer.

    Raises:
        ValueError: If the record does not exist or is not running
    """
    record = db.session.get(TransferHistory, history_id)
    if not record:
        raise ValueError(f"Transfer not found: {history_id}")
    if record.status != 'running':
        raise ValueError(f"Transfer {history_id} is not running (status: {record.status})")

    record.cancellation_requested = True
    db.session.commit()
    return record
