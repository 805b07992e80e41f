"""Weighted progress aggregation for tasks, groups and workflows."""

from collections.abc import Iterable

from shellflow.models.status import Group, Status, Task


def task_progress(task: Task) -> tuple[float, float]:
    """Return (current, total) weight for a single task."""
    if task.finished:
        return float(task.weight), float(task.weight)
    fraction = min(max(task.percent, 0.0), 1.0)
    return task.weight * fraction, float(task.weight)


def group_progress(group: Group) -> tuple[float, float]:
    """Return (current, total) for a group and refresh its percent and finished flag."""
    current = 0.0
    total = 0.0
    finished = True
    for task in group.tasks:
        task_current, task_total = task_progress(task)
        current += task_current
        total += task_total
        if not task.finished:
            finished = False

    group.finished = finished
    group.percent = current / total * 100 if total > 0 else 0.0
    return current, total


def workflow_progress(groups: Iterable[Group]) -> tuple[float, float]:
    """Return (current, total) over all non-skipped groups."""
    current = 0.0
    total = 0.0
    for group in groups:
        # Skipped groups count in neither numerator nor denominator
        if group.skip:
            continue
        group_current, group_total = group_progress(group)
        current += group_current
        total += group_total
    return current, total


def workflow_percent(groups: Iterable[Group]) -> int:
    """Workflow completion between 0 and 100, truncated."""
    current, total = workflow_progress(groups)
    if total <= 0:
        return 0
    return int(current / total * 100)


def refresh_progress(status: Status) -> int:
    """Recompute cached percent fields on the status and return the workflow percent."""
    status.percent = workflow_percent(status.groups)
    return status.percent
