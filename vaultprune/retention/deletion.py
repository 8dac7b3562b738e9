"""
Deletion executor.

Deletes every file of every stale instance, one at a time, in plan order.
A failed delete is recorded and logged but never stops the batch: the
remaining parts of the same instance and all other stale instances are
still attempted.
"""

from typing import Callable, List, Optional

from .errors import OperationCancelled, StorageError
from .runlog import RunLog
from .types import (
    DeleteResult, DeletionOutcome, DeletionStatus, RemoteEntry, RetentionPlan, SkipReason
)


DeletePrimitive = Callable[[RemoteEntry], DeleteResult]
ConfirmPredicate = Callable[[str, str], bool]


def auto_confirm(described_action: str, resource_id: str) -> bool:
    """Confirmation policy for unattended runs."""
    return True


class DeletionExecutor:
    """
    Executes a retention plan against one destination.

    Args:
        delete_primitive: Backend delete call; returns a DeleteResult. Any
            exception it raises is recorded as a FAILED outcome
        run_log: Run log for this destination
        dry_run: Only report what would be deleted
        confirm: Called as confirm(action, resource_id) before each delete
        cancellation_check: Called before each delete; raises
            OperationCancelled to stop the batch
    """

    def __init__(
        self,
        delete_primitive: DeletePrimitive,
        run_log: RunLog,
        dry_run: bool = False,
        confirm: Optional[ConfirmPredicate] = None,
        cancellation_check: Optional[Callable[[], None]] = None
    ):
        self.delete_primitive = delete_primitive
        self.run_log = run_log
        self.dry_run = dry_run
        self.confirm = confirm or auto_confirm
        self.cancellation_check = cancellation_check
        self.cancelled = False

    def execute(self, plan: RetentionPlan) -> List[DeletionOutcome]:
        outcomes = []

        for staged in plan.stale:
            key = staged.instance.key
            self.run_log.info(
                f"Removing instance '{key}' ({len(staged.instance.files)} file(s)): {staged.reason}",
                instance_key=key
            )

            instance_outcomes = [self._process(entry, key) for entry in staged.instance.files]
            outcomes.extend(instance_outcomes)

            declined = [o for o in instance_outcomes if o.skip_reason is SkipReason.USER_DECLINED]
            if declined and len(declined) < len(instance_outcomes):
                self.run_log.warning(
                    f"Instance '{key}' was only partially removed: "
                    f"{len(declined)} file(s) kept at user request",
                    instance_key=key
                )

        return outcomes

    def _process(self, entry: RemoteEntry, key: str) -> DeletionOutcome:
        if self.dry_run:
            self.run_log.simulate(f"Would delete '{entry.name}'", instance_key=key)
            return DeletionOutcome(entry, key, DeletionStatus.SKIPPED, SkipReason.SIMULATED)

        if not self.cancelled and self.cancellation_check:
            try:
                self.cancellation_check()
            except OperationCancelled:
                self.cancelled = True
                self.run_log.warning("Retention cancelled; remaining files left untouched", instance_key=key)

        if self.cancelled:
            return DeletionOutcome(entry, key, DeletionStatus.SKIPPED, SkipReason.CANCELLED)

        if not self.confirm(f"Delete old backup file '{entry.name}'", entry.handle):
            self.run_log.warning(f"Deletion of '{entry.name}' declined by user", instance_key=key)
            return DeletionOutcome(entry, key, DeletionStatus.SKIPPED, SkipReason.USER_DECLINED)

        try:
            result = self.delete_primitive(entry)
        except StorageError as e:
            self.run_log.error(f"Failed to delete '{entry.name}': {e}", instance_key=key)
            return DeletionOutcome(entry, key, DeletionStatus.FAILED, error=str(e))
        except Exception as e:
            # Backend libraries raise their own errors (paramiko EOFError on a dropped connection)
            error = f"{e.__class__.__name__}: {e}" if str(e) else e.__class__.__name__
            self.run_log.error(f"Failed to delete '{entry.name}': {error}", instance_key=key)
            return DeletionOutcome(entry, key, DeletionStatus.FAILED, error=error)

        if result is DeleteResult.ALREADY_ABSENT:
            self.run_log.info(f"'{entry.name}' was already gone", instance_key=key)
            return DeletionOutcome(entry, key, DeletionStatus.ALREADY_ABSENT)

        self.run_log.success(f"Deleted '{entry.name}'", instance_key=key)
        return DeletionOutcome(entry, key, DeletionStatus.DELETED)
