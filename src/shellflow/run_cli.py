"""CLI running a workflow in the foreground."""

import argparse
import logging
import signal
import sys

from shellflow.main import add_workflow_arguments, create_workflow
from shellflow.models.status import RunOutcome
from shellflow.services.definition_parser import DefinitionError
from shellflow.services.executor import TaskError
from shellflow.services.log_service import configure_logging, level_from_name
from shellflow.services.runner import EXIT_CODE_CONTINUE
from shellflow.services.shell import VariableResolutionError
from shellflow.services.status_store import StatusNotFoundError, StatusStoreError
from shellflow.services.workflow import WorkflowStateError

logger = logging.getLogger(__name__)

EXIT_CODE_FAILED = 1
EXIT_CODE_ABORTED = 2

EXIT_CODES = {
    RunOutcome.FINISHED: 0,
    RunOutcome.ABORTED: EXIT_CODE_ABORTED,
    RunOutcome.EXITED: EXIT_CODE_CONTINUE,
}


def main(argv: list[str] | None = None) -> int:
    """Run a workflow until it finishes, fails, is interrupted or a task exits."""
    parser = argparse.ArgumentParser(description="shellflow runner")
    add_workflow_arguments(parser)
    parser.add_argument(
        "--resume",
        action="store_true",
        help="Only continue a persisted run, fail if there is none",
    )
    args = parser.parse_args(argv)

    configure_logging(
        log_dir=args.log_dir,
        log_file="shellflow-run.log",
        level=level_from_name(args.log_level),
    )

    try:
        workflow = create_workflow(args)
    except (DefinitionError, FileNotFoundError, StatusStoreError) as e:
        logger.error(f"Unable to load workflow: {e}")
        return EXIT_CODE_FAILED

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, aborting workflow...")
        workflow.abort()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    try:
        outcome = workflow.resume() if args.resume else workflow.start()
    except TaskError as e:
        logger.error(f"Task {e.task_id} failed: {e}")
        return EXIT_CODE_FAILED
    except (
        VariableResolutionError,
        StatusNotFoundError,
        StatusStoreError,
        WorkflowStateError,
    ) as e:
        logger.error(f"Unable to run workflow: {e}")
        return EXIT_CODE_FAILED

    if outcome is RunOutcome.FINISHED and workflow.status.error:
        logger.error(f"Workflow finished with error: {workflow.status.error}")
        return EXIT_CODE_FAILED

    logger.info(f"Workflow ended: {outcome.value}")
    return EXIT_CODES[outcome]


if __name__ == "__main__":
    sys.exit(main())
