"""Main entry point for the shellflow API server."""

import argparse
import logging
import os
import sys

import uvicorn
from fastapi import FastAPI

from shellflow.api.app import WorkflowAPI
from shellflow.services.definition_parser import DefinitionError, DefinitionParser
from shellflow.services.log_service import LOG_LEVELS, configure_logging, level_from_name
from shellflow.services.runner import WorkflowRunner
from shellflow.services.status_store import (
    DEFAULT_STATUS_KEY,
    StatusStoreError,
    create_status_store,
)
from shellflow.services.workflow import Workflow

logger = logging.getLogger(__name__)


def add_workflow_arguments(parser: argparse.ArgumentParser) -> None:
    """Arguments shared by the server and the foreground runner."""
    parser.add_argument(
        "--definition",
        default=os.environ.get("SHELLFLOW_DEFINITION", "workflow.yaml"),
        help="Workflow definition file (default: workflow.yaml)",
    )
    parser.add_argument(
        "--status-file",
        default=os.environ.get("SHELLFLOW_STATUS_FILE", "status.json"),
        help="Persisted status file (default: status.json)",
    )
    parser.add_argument(
        "--redis-url",
        default=os.environ.get("REDIS_URL"),
        help="Persist status to Redis instead of a file",
    )
    parser.add_argument(
        "--status-key",
        default=os.environ.get("SHELLFLOW_STATUS_KEY", DEFAULT_STATUS_KEY),
        help=f"Redis key for the status (default: {DEFAULT_STATUS_KEY})",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default=os.environ.get("LOG_LEVEL", "info").lower(),
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--log-dir",
        default=os.environ.get("SHELLFLOW_LOG_DIR", "logs"),
        help="Directory for rotated log files, empty to disable (default: logs)",
    )


def create_workflow(args: argparse.Namespace) -> Workflow:
    """Create the workflow, resuming from persisted status when present."""
    store = create_status_store(args.status_file, args.redis_url, args.status_key)
    return Workflow(args.definition, store, DefinitionParser())


def create_app(workflow: Workflow, runner: WorkflowRunner) -> FastAPI:
    """Create FastAPI application for a workflow."""
    api = WorkflowAPI(workflow, runner)
    return api.create_app()


def main() -> int:
    """Run the shellflow API server."""
    parser = argparse.ArgumentParser(description="shellflow API Server")
    add_workflow_arguments(parser)
    parser.add_argument(
        "--host",
        default=os.environ.get("HOST", "0.0.0.0"),
        help="Host to bind to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("PORT", "8080")),
        help="Port to bind to (default: 8080)",
    )
    parser.add_argument(
        "--autostart",
        action="store_true",
        help="Resume a persisted run as soon as the server starts",
    )
    args = parser.parse_args()

    configure_logging(
        log_dir=args.log_dir,
        log_file="shellflow.log",
        level=level_from_name(args.log_level),
    )

    logger.info("Starting shellflow API server")
    logger.info(f"Definition: {args.definition}")

    try:
        workflow = create_workflow(args)
    except (DefinitionError, FileNotFoundError, StatusStoreError) as e:
        logger.error(f"Unable to load workflow: {e}")
        return 1
    runner = WorkflowRunner(workflow)

    if args.autostart and workflow.status.started and not workflow.finished:
        logger.info("Resuming persisted run")
        runner.start()

    app = create_app(workflow, runner)
    try:
        uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)
    finally:
        workflow.abort()
    return 0


if __name__ == "__main__":
    sys.exit(main())
