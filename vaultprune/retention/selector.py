"""Retention selector: picks the instances beyond the keep count."""

from typing import Dict

from .types import Instance, InstanceKey, RetentionPlan, StagedInstance


def order_instances(instances: Dict[InstanceKey, Instance]):
    """Newest first; equal representative times ordered by key ascending."""
    by_key = sorted(instances.values(), key=lambda i: i.key)
    return sorted(by_key, key=lambda i: i.representative_time, reverse=True)


def select(instances: Dict[InstanceKey, Instance], keep_count: int) -> RetentionPlan:
    """
    Build a retention plan.

    Args:
        instances: Aggregated instances of one destination
        keep_count: Number of newest instances to keep; 0 or less keeps all

    Returns:
        RetentionPlan listing stale instances newest first
    """
    ordered = order_instances(instances)
    total = len(ordered)

    if keep_count <= 0:
        return RetentionPlan(stale=[], kept=ordered, kept_count=total, total_instances=total)

    stale = [
        StagedInstance(
            instance=instance,
            reason=f"position {index + 1} of {total} exceeds keep count {keep_count}"
        )
        for index, instance in enumerate(ordered)
        if index >= keep_count
    ]

    return RetentionPlan(
        stale=stale,
        kept=ordered[:keep_count],
        kept_count=min(keep_count, total),
        total_instances=total
    )
