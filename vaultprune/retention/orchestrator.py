"""
Retention orchestrator.

Runs one retention pass against one destination:

    LISTING -> CLASSIFYING -> AGGREGATING -> SELECTING -> DELETING -> DONE

Only a listing failure ends the pass early. Every later stage is best effort
and the pass always finishes in DONE, with per-file failures reported in the
result rather than raised.
"""

import logging
from typing import Callable, Optional

from .aggregator import aggregate
from .deletion import ConfirmPredicate, DeletionExecutor
from .errors import StorageError
from .runlog import RunLog
from .selector import select
from .types import ArchiveMatchSpec, RetentionResult, RetentionStage


logger = logging.getLogger(__name__)


class RetentionOrchestrator:
    """
    Applies a keep-count policy to one destination.

    Args:
        backend: Storage backend providing list_entries(), delete(entry)
            and describe()
        spec: Archive match spec of the job
        keep_count: Number of newest instances to keep (0 keeps all)
        run_log: Run log shared with the caller
    """

    def __init__(self, backend, spec: ArchiveMatchSpec, keep_count: int, run_log: Optional[RunLog] = None):
        self.backend = backend
        self.spec = spec
        self.keep_count = keep_count
        self.run_log = run_log or RunLog(logger)

    def apply(
        self,
        dry_run: bool = False,
        confirm: Optional[ConfirmPredicate] = None,
        cancellation_check: Optional[Callable[[], None]] = None
    ) -> RetentionResult:
        destination = self.backend.describe()
        result = RetentionResult(destination=destination, dry_run=dry_run)
        log_start = len(self.run_log)

        if self.keep_count <= 0:
            self.run_log.info(f"Retention on {destination}: unlimited (keep count {self.keep_count})")
        else:
            self.run_log.info(
                f"Applying retention on {destination}: keep {self.keep_count} newest "
                f"instance(s) of '{self.spec.base_name}*{self.spec.primary_extension}'"
                + (" (dry run)" if dry_run else "")
            )

        try:
            entries = self.backend.list_entries()
        except StorageError as e:
            result.listing_error = str(e)
            self.run_log.warning(f"Could not list {destination}, skipping retention this run: {e}")
            return self._finish(result, log_start)

        result.stage = RetentionStage.CLASSIFYING
        self.run_log.debug(f"Listed {len(entries)} entries on {destination}")

        result.stage = RetentionStage.AGGREGATING
        instances = aggregate(entries, self.spec, self.run_log)
        result.instances_found = len(instances)

        result.stage = RetentionStage.SELECTING
        plan = select(instances, self.keep_count)
        result.plan = plan
        result.kept_count = plan.kept_count
        self.run_log.info(
            f"Found {plan.total_instances} instance(s); keeping {plan.kept_count}, "
            f"{len(plan.stale)} stale"
        )

        result.stage = RetentionStage.DELETING
        if not plan.is_empty:
            executor = DeletionExecutor(
                self.backend.delete,
                self.run_log,
                dry_run=dry_run,
                confirm=confirm,
                cancellation_check=cancellation_check
            )
            for outcome in executor.execute(plan):
                result.tally(outcome)
            result.cancelled = executor.cancelled

        result.stage = RetentionStage.DONE
        if result.failed_count:
            self.run_log.warning(
                f"Retention on {destination} finished with {result.failed_count} failed deletion(s)"
            )
        else:
            self.run_log.info(
                f"Retention on {destination} finished: {result.deleted_count} deleted, "
                f"{result.skipped_count} skipped, {result.absent_count} already absent"
            )

        return self._finish(result, log_start)

    def _finish(self, result: RetentionResult, log_start: int) -> RetentionResult:
        result.logs = self.run_log.lines(log_start)
        result.per_instance_log = self.run_log.by_instance(log_start)
        return result


def apply_retention(
    backend,
    spec: ArchiveMatchSpec,
    keep_count: int,
    dry_run: bool = False,
    confirm: Optional[ConfirmPredicate] = None,
    cancellation_check: Optional[Callable[[], None]] = None,
    run_log: Optional[RunLog] = None
) -> RetentionResult:
    """
    Apply retention to a single destination.

    Returns:
        RetentionResult; never raises for listing or deletion failures
    """
    orchestrator = RetentionOrchestrator(backend, spec, keep_count, run_log)
    return orchestrator.apply(dry_run=dry_run, confirm=confirm, cancellation_check=cancellation_check)
