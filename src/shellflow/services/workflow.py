"""Workflow orchestrator driving groups and tasks in order."""

import logging
import os
import threading
from typing import Any

from shellflow.models.status import Group, RunOutcome, Status, Task
from shellflow.services.broadcaster import StatusBroadcaster, Subscriber
from shellflow.services.definition_parser import DefinitionParser
from shellflow.services.executor import TaskError, TaskExecutor
from shellflow.services.ipc import EventKind, TaskEvent
from shellflow.services.shell import resolve_variables, should_skip
from shellflow.services.status_store import (
    StatusNotFoundError,
    StatusStore,
    StatusStoreError,
)

logger = logging.getLogger(__name__)

ABORTED_MESSAGE = "workflow aborted"


class WorkflowStateError(Exception):
    """Raised when an operation is not allowed in the current workflow state."""

    pass


class Workflow:
    """Runs the groups of a workflow definition sequentially.

    On construction the persisted status is loaded if the store has one, which
    makes the next start() resume the previous run. Otherwise a fresh status
    is built from the definition file.
    """

    def __init__(
        self,
        definition_path: str,
        store: StatusStore,
        parser: DefinitionParser | None = None,
    ):
        if not definition_path:
            raise ValueError("definition_path is required")
        if store is None:
            raise ValueError("store is required")

        self._definition_path = definition_path
        self._base_dir = os.path.dirname(os.path.abspath(definition_path))
        self._store = store
        self._parser = parser or DefinitionParser()

        self._lock = threading.RLock()
        self._broadcaster = StatusBroadcaster(store, self._lock)
        self._cancel = threading.Event()
        self._executor: TaskExecutor | None = None
        self._running = False

        status = store.load()
        if status is None:
            definition = self._parser.parse_file(definition_path)
            status = self._parser.create_status(definition)
        else:
            logger.info(
                f"Loaded persisted status, current task {status.current_group}/{status.current_task}"
            )
        self.status: Status = status

    @property
    def base_dir(self) -> str:
        return self._base_dir

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def finished(self) -> bool:
        with self._lock:
            return self.status.finished

    def snapshot(self) -> dict[str, Any]:
        """Return the current status as a JSON-compatible dict."""
        with self._lock:
            return self.status.to_dict()

    def subscribe(self, subscriber: Subscriber) -> str:
        """Attach a live subscriber, which first receives the current snapshot."""
        with self._lock:
            return self._broadcaster.attach(subscriber, self.status)

    def unsubscribe(self, subscriber_id: str) -> None:
        self._broadcaster.detach(subscriber_id)

    def start(self) -> RunOutcome:
        """Run the workflow until it finishes, fails, is aborted or a task exits.

        Raises TaskError when a task fails; the error is recorded on the task,
        its group and the workflow before the workflow is marked finished.
        """
        with self._lock:
            if self._running:
                raise WorkflowStateError("workflow already running")
            if self.status.finished:
                raise WorkflowStateError("workflow already finished, reset it first")
            self._running = True
            self._cancel.clear()

        try:
            return self._execute()
        finally:
            with self._lock:
                self._running = False
                self._executor = None

    def resume(self) -> RunOutcome:
        """Continue a previous run; fails if there is no persisted status."""
        if not self._store.exists():
            raise StatusNotFoundError(self._definition_path)
        return self.start()

    def reset(self) -> None:
        """Discard the run state of a finished workflow."""
        with self._lock:
            if not self.status.finished:
                raise WorkflowStateError("workflow not finished")
            self.status = self._parser.create_status(self.status.definition)
            self._cancel.clear()
        logger.info("Workflow reset")

    def abort(self) -> None:
        """Stop before the next task and terminate the running one."""
        self._cancel.set()
        with self._lock:
            executor = self._executor
        if executor is None:
            return
        try:
            executor.abort()
        except OSError as e:
            logger.error(f"Unable to abort task {executor.task.id}: {e}")

    def _execute(self) -> RunOutcome:
        status = self.status

        if status.vars is None:
            definitions = status.definition.get("vars") or {}
            status.vars = resolve_variables(definitions, self._base_dir)

        # Groups up to the resume point keep the decisions of the previous run
        reached_resume_point = not status.current_task
        for group in status.groups:
            if not reached_resume_point:
                reached_resume_point = group.id == status.current_group
                continue
            if group.skip:
                continue
            if should_skip(group.skip_cmd, status.vars, self._base_dir):
                logger.info(f"Skipping group {group.id}")
                with self._lock:
                    group.skip = True
                    group.mark_completed()

        with self._lock:
            status.started = True
            self._publish()

        outcome: RunOutcome | None = None
        try:
            outcome = self._run_groups()
            return outcome
        finally:
            if outcome is not RunOutcome.EXITED:
                self._finish()

    def _run_groups(self) -> RunOutcome:
        status = self.status
        seeking = bool(status.current_task)
        logger.debug(f"Starting workflow, seeking={seeking}")

        for group in status.groups:
            if group.skip:
                if seeking and group.id == status.current_group:
                    # Nothing left to seek to, run whatever follows
                    seeking = False
                continue

            if seeking and group.id != status.current_group:
                logger.debug(f"Group {group.id} completed in a previous run")
                with self._lock:
                    group.mark_completed()
                continue

            with self._lock:
                status.current_group = group.id
                if not seeking:
                    status.current_task = ""
                group.started = True

            for task in group.tasks:
                if self._cancel.is_set():
                    logger.warning(f"Workflow aborted before task {group.id}/{task.id}")
                    with self._lock:
                        self._record_error(group, task, ABORTED_MESSAGE)
                    return RunOutcome.ABORTED

                if seeking and task.id != status.current_task:
                    with self._lock:
                        task.started = True
                        task.finished = True
                    continue

                if seeking:
                    seeking = False
                    # An exiting task was interrupted by its own side effect
                    if task.exits:
                        logger.info(f"Task {group.id}/{task.id} exited in a previous run")
                        with self._lock:
                            task.started = True
                            task.finished = True
                            self._publish()
                        continue

                outcome = self._run_task(group, task)
                if outcome is not None:
                    return outcome

            with self._lock:
                group.finished = True
                self._publish()
            logger.info(f"Group {group.id} finished")

        return RunOutcome.FINISHED

    def _run_task(self, group: Group, task: Task) -> RunOutcome | None:
        """Run one task; returns an outcome when the run must stop here."""
        executor = TaskExecutor(task, on_event=lambda event: self._handle_event(group, task, event))
        with self._lock:
            self.status.current_task = task.id
            task.started = True
            self._executor = executor
            self._publish()

        logger.info(f"Running task {group.id}/{task.id}")
        try:
            executor.run(self._cancel, self._base_dir, self.status.vars)
        except TaskError as e:
            if self._cancel.is_set():
                logger.warning(f"Task {group.id}/{task.id} aborted")
                with self._lock:
                    self._record_error(group, task, ABORTED_MESSAGE)
                return RunOutcome.ABORTED

            logger.error(f"Task {group.id}/{task.id} failed: {e}")
            with self._lock:
                self._record_error(group, task, str(e))
            raise
        finally:
            with self._lock:
                self._executor = None

        with self._lock:
            if not task.exits:
                task.finished = True
            self._publish()

        if task.exits:
            logger.info(f"Task {group.id}/{task.id} requests process exit")
            return RunOutcome.EXITED
        return None

    def _handle_event(self, group: Group, task: Task, event: TaskEvent) -> None:
        """Apply an event reported by the running task; called from its reader thread."""
        with self._lock:
            if event.kind is EventKind.PROGRESS:
                task.percent = event.value
            elif event.kind is EventKind.OUTPUT:
                task.last_message = event.message
                group.last_message = event.message
                self.status.last_message = event.message
            elif event.kind is EventKind.ERROR:
                self._record_error(group, task, event.message)

            try:
                self._publish()
            except StatusStoreError as e:
                logger.error(f"Unable to write status: {e}")

    def _record_error(self, group: Group, task: Task, message: str) -> None:
        # First non-empty error wins at every level
        if not task.error:
            task.error = message
        if not group.error:
            group.error = message
        if not self.status.error:
            self.status.error = message

    def _publish(self) -> None:
        self._broadcaster.publish(self.status)

    def _finish(self) -> None:
        with self._lock:
            self.status.finished = True
            try:
                self._publish()
            except StatusStoreError as e:
                logger.error(f"Unable to write final status: {e}")
            self._broadcaster.close_all()
            try:
                self._store.delete()
            except StatusStoreError as e:
                logger.error(f"Unable to remove persisted status: {e}")
        logger.info(f"Workflow finished at {self.status.percent}%")
