"""Models package."""

from shellflow.models.status import Group, RunOutcome, Status, Task

__all__ = [
    "Group",
    "RunOutcome",
    "Status",
    "Task",
]
