"""
Instance aggregator.

Folds classified entries into instances and computes each instance's
representative time:

1. modification time of the first volume part (.001)
2. else the primary (or SFX) file's modification time
3. else the earliest modification time of any file in the instance

Later volume parts and manifests are written after the first part, and object
stores list in arbitrary order, so the newest timestamp of an instance is
never used.
"""

from datetime import datetime
from typing import Dict, Iterable, Optional

from .classifier import classify, is_first_volume
from .runlog import RunLog
from .types import ArchiveMatchSpec, Instance, InstanceKey, RemoteEntry, Role


def representative_time(instance: Instance) -> Optional[datetime]:
    if not instance.files:
        return None

    first_volumes = [
        f.modified_time for f in instance.files
        if is_first_volume(instance.roles[f.name])
    ]
    if first_volumes:
        return min(first_volumes)

    primaries = [
        f.modified_time for f in instance.files
        if instance.roles[f.name].role in (Role.PRIMARY, Role.SFX)
    ]
    if primaries:
        return min(primaries)

    return min(f.modified_time for f in instance.files)


def aggregate(
    entries: Iterable[RemoteEntry],
    spec: ArchiveMatchSpec,
    run_log: Optional[RunLog] = None
) -> Dict[InstanceKey, Instance]:
    """
    Group listed entries into backup instances.

    Args:
        entries: Normalised destination listing
        spec: Archive match spec of the job
        run_log: Optional run log

    Returns:
        Dict mapping instance key to Instance
    """
    instances: Dict[InstanceKey, Instance] = {}
    ignored = 0

    for entry in entries:
        classification = classify(entry, spec, run_log)

        if classification is None:
            ignored += 1
            continue

        if classification.role is Role.HEURISTIC and not spec.include_heuristic:
            if run_log:
                run_log.warning(
                    f"Ignoring '{entry.name}': name starts with '{spec.base_name}' "
                    f"but matches no known archive naming scheme"
                )
            ignored += 1
            continue

        instance = instances.setdefault(classification.key, Instance(key=classification.key))
        if entry.name in instance.roles:
            # Same name listed twice (e.g. paginated listing overlap)
            continue
        instance.files.append(entry)
        instance.roles[entry.name] = classification

    for instance in instances.values():
        instance.files.sort(key=lambda f: f.name)
        instance.representative_time = representative_time(instance)
        if run_log:
            run_log.debug(
                f"Instance '{instance.key}': {len(instance.files)} file(s), "
                f"representative time {instance.representative_time.isoformat()}",
                instance_key=instance.key
            )

    if run_log:
        run_log.debug(f"Aggregated {len(instances)} instance(s), ignored {ignored} unrelated entries")

    return instances
