"""Background runner turning workflow outcomes into process-level actions."""

import logging
import os
import threading
from collections.abc import Callable

from shellflow.models.status import RunOutcome
from shellflow.services.workflow import Workflow, WorkflowStateError

logger = logging.getLogger(__name__)

# Distinguishes "continue on next invocation" from crashes (1) and signals (>128)
EXIT_CODE_CONTINUE = 128


def exit_process(code: int) -> None:
    """Terminate the whole process immediately, flushing logs first."""
    logging.shutdown()
    os._exit(code)


class WorkflowRunner:
    """Runs a workflow on a background thread for the API server."""

    def __init__(
        self,
        workflow: Workflow,
        on_exit: Callable[[int], None] = exit_process,
    ):
        if workflow is None:
            raise ValueError("workflow is required")

        self._workflow = workflow
        self._on_exit = on_exit
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the workflow in the background, resetting it first if it finished."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                raise WorkflowStateError("workflow already running")
            if self._workflow.running:
                raise WorkflowStateError("workflow already running")

            if self._workflow.finished:
                self._workflow.reset()

            self._thread = threading.Thread(
                target=self._run,
                name="shellflow-runner",
                daemon=True,
            )
            self._thread.start()

    def stop(self) -> None:
        """Abort the running workflow."""
        self._workflow.abort()

    def join(self, timeout: float | None = None) -> None:
        """Wait for the background run to end."""
        with self._lock:
            thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def _run(self) -> None:
        try:
            outcome = self._workflow.start()
        except Exception as e:
            logger.error(f"Workflow ended: {e}")
            return

        logger.info(f"Workflow ended: {outcome.value}")
        if outcome is RunOutcome.EXITED:
            self._on_exit(EXIT_CODE_CONTINUE)
