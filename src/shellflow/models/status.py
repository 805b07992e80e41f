"""State models for workflow, group and task tracking."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RunOutcome(str, Enum):
    """How a call to Workflow.start() ended."""

    FINISHED = "finished"
    ABORTED = "aborted"
    EXITED = "exited"


class Task(BaseModel):
    """Persistent state of a task.

    ``percent`` is a fraction between 0.0 and 1.0 as reported by the task
    script, unlike the 0-100 scale used by groups and the workflow.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    cmd: str
    weight: int = 1
    exits: bool = False

    started: bool = False
    finished: bool = False
    percent: float = 0.0
    last_message: str = Field(default="", alias="lastMessage")
    error: str | None = None


class Group(BaseModel):
    """Persistent state of a group of tasks."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    tasks: list[Task]
    skip_cmd: str = Field(default="", alias="skipCmd")
    skip: bool = False

    started: bool = False
    finished: bool = False
    percent: float = 0.0
    last_message: str = Field(default="", alias="lastMessage")
    error: str | None = None

    def mark_completed(self) -> None:
        """Mark the group and all its tasks as started and finished."""
        self.started = True
        self.finished = True
        for task in self.tasks:
            task.started = True
            task.finished = True


class Status(BaseModel):
    """Persistent state of a workflow run, the single source of truth."""

    model_config = ConfigDict(populate_by_name=True)

    definition: dict[str, Any] = {}
    vars: dict[str, str] | None = None
    groups: list[Group] = []

    started: bool = False
    finished: bool = False
    percent: int = 0

    last_message: str = Field(default="", alias="lastMessage")
    current_group: str = Field(default="", alias="currentGroup")
    current_task: str = Field(default="", alias="currentTask")

    error: str | None = None

    def to_json(self) -> str:
        """Serialize with the stable camelCase field names."""
        return self.model_dump_json(by_alias=True)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-compatible dict with camelCase field names."""
        return self.model_dump(mode="json", by_alias=True)
