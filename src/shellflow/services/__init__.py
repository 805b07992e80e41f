# Services package

from shellflow.services.broadcaster import StatusBroadcaster, Subscriber
from shellflow.services.definition_parser import DefinitionError, DefinitionParser
from shellflow.services.executor import TaskError, TaskExecutor
from shellflow.services.ipc import EventKind, TaskEvent, parse_line
from shellflow.services.log_service import SizeAndTimeRotatingHandler, configure_logging
from shellflow.services.runner import EXIT_CODE_CONTINUE, WorkflowRunner
from shellflow.services.shell import VariableResolutionError, resolve_variables, should_skip
from shellflow.services.status_store import (
    FileStatusStore,
    RedisStatusStore,
    StatusNotFoundError,
    StatusStore,
    StatusStoreError,
    create_status_store,
)
from shellflow.services.workflow import Workflow, WorkflowStateError

__all__ = [
    "DefinitionError",
    "DefinitionParser",
    "EXIT_CODE_CONTINUE",
    "EventKind",
    "FileStatusStore",
    "RedisStatusStore",
    "SizeAndTimeRotatingHandler",
    "StatusBroadcaster",
    "StatusNotFoundError",
    "StatusStore",
    "StatusStoreError",
    "Subscriber",
    "TaskError",
    "TaskEvent",
    "TaskExecutor",
    "VariableResolutionError",
    "Workflow",
    "WorkflowRunner",
    "WorkflowStateError",
    "configure_logging",
    "create_status_store",
    "parse_line",
    "resolve_variables",
    "should_skip",
]
