"""Parser for workflow definition files."""

import copy
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from shellflow.models.status import Group, Status, Task


class DefinitionError(Exception):
    """Raised when a workflow definition is invalid."""

    pass


class TaskSchema(BaseModel):
    """Pydantic model for a task in the definition."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(default="", validate_default=True)
    cmd: str = Field(default="", validate_default=True)
    weight: int | None = None
    exits: bool = False

    @field_validator("id")
    @classmethod
    def id_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("task missing id")
        return v

    @field_validator("cmd")
    @classmethod
    def cmd_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("task missing cmd")
        return v

    @field_validator("weight")
    @classmethod
    def weight_positive(cls, v: int | None) -> int | None:
        if v is not None and v < 0:
            raise ValueError("task weight must be positive")
        return v


class GroupSchema(BaseModel):
    """Pydantic model for a group in the definition."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(default="", validate_default=True)
    skip_cmd: str = ""
    tasks: list[TaskSchema] = Field(default_factory=list, validate_default=True)

    @field_validator("id")
    @classmethod
    def id_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("group missing id")
        return v

    @field_validator("skip_cmd", mode="before")
    @classmethod
    def skip_cmd_default(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("tasks")
    @classmethod
    def tasks_not_empty(cls, v: list[TaskSchema]) -> list[TaskSchema]:
        if not v:
            raise ValueError("group missing tasks")
        ids = [task.id for task in v]
        duplicates = sorted({task_id for task_id in ids if ids.count(task_id) > 1})
        if duplicates:
            raise ValueError(f"duplicate task id: {', '.join(duplicates)}")
        return v


class DefinitionSchema(BaseModel):
    """Pydantic model for the definition document."""

    model_config = ConfigDict(extra="allow")

    vars: dict[str, str] = {}
    groups: list[GroupSchema] = Field(default_factory=list, validate_default=True)

    @field_validator("vars", mode="before")
    @classmethod
    def vars_are_commands(cls, v: Any) -> Any:
        if v is None:
            return {}
        if not isinstance(v, dict) or not all(isinstance(c, str) for c in v.values()):
            raise ValueError("invalid variables definition")
        return v

    @field_validator("groups")
    @classmethod
    def groups_not_empty(cls, v: list[GroupSchema]) -> list[GroupSchema]:
        if not v:
            raise ValueError("no group definitions found")
        ids = [group.id for group in v]
        duplicates = sorted({group_id for group_id in ids if ids.count(group_id) > 1})
        if duplicates:
            raise ValueError(f"duplicate group id: {', '.join(duplicates)}")
        return v


def _describe(error: ValidationError) -> str:
    """Condense a pydantic error into 'location: message' parts."""
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"])
        message = item["msg"].removeprefix("Value error, ")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


def build_task(data: dict[str, Any]) -> Task:
    """Create a Task from its declarative map."""
    try:
        schema = TaskSchema.model_validate(data)
    except ValidationError as e:
        raise DefinitionError(f"Invalid task: {_describe(e)}")
    return _task_from_schema(schema)


def build_group(data: dict[str, Any]) -> Group:
    """Create a Group from its declarative map."""
    try:
        schema = GroupSchema.model_validate(data)
    except ValidationError as e:
        raise DefinitionError(f"Invalid group: {_describe(e)}")
    return _group_from_schema(schema)


def _task_from_schema(schema: TaskSchema) -> Task:
    return Task(
        id=schema.id,
        cmd=schema.cmd,
        weight=schema.weight or 1,
        exits=schema.exits,
    )


def _group_from_schema(schema: GroupSchema) -> Group:
    return Group(
        id=schema.id,
        skip_cmd=schema.skip_cmd,
        tasks=[_task_from_schema(task) for task in schema.tasks],
    )


class DefinitionParser:
    """Parses workflow definition files into a fresh Status."""

    def parse_file(self, path: str) -> dict[str, Any]:
        """Parse definition from a YAML or JSON file."""
        if not path:
            raise ValueError("path is required")

        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Definition file not found: {path}")

        with open(file_path, "r", encoding="utf-8") as f:
            return self.parse_yaml(f.read())

    def parse_yaml(self, text: str) -> dict[str, Any]:
        """Parse definition from YAML text."""
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise DefinitionError(f"Invalid YAML: {e}")

        return self.parse_dict(data)

    def parse_dict(self, data: dict[str, Any]) -> dict[str, Any]:
        """Validate a definition document and return it unchanged."""
        if data is None:
            raise DefinitionError("Invalid workflow definition: empty document")
        if not isinstance(data, dict):
            raise DefinitionError("Invalid workflow definition: expected a mapping")

        try:
            DefinitionSchema.model_validate(data)
        except ValidationError as e:
            raise DefinitionError(f"Invalid workflow definition: {_describe(e)}")

        return data

    def create_status(self, definition: dict[str, Any]) -> Status:
        """Build a fresh Status from a definition document.

        Variables are left unresolved; the workflow resolves them on start.
        """
        try:
            schema = DefinitionSchema.model_validate(definition)
        except ValidationError as e:
            raise DefinitionError(f"Invalid workflow definition: {_describe(e)}")

        return Status(
            definition=copy.deepcopy(definition),
            groups=[_group_from_schema(group) for group in schema.groups],
        )
