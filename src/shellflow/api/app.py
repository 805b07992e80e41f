"""FastAPI application exposing workflow status and controls."""

import asyncio
import logging

import anyio
from fastapi import FastAPI, HTTPException, WebSocket
from fastapi.concurrency import run_in_threadpool

from shellflow.api.models import ActionResponse, ErrorResponse, HealthResponse
from shellflow.api.stream import QueueSubscriber, stream_status
from shellflow.services.runner import WorkflowRunner
from shellflow.services.workflow import Workflow, WorkflowStateError

logger = logging.getLogger(__name__)


class WorkflowAPI:
    """REST and WebSocket API for one workflow."""

    def __init__(self, workflow: Workflow, runner: WorkflowRunner):
        if workflow is None:
            raise ValueError("workflow is required")
        if runner is None:
            raise ValueError("runner is required")

        self._workflow = workflow
        self._runner = runner

    def create_app(self) -> FastAPI:
        """Create FastAPI application."""
        app = FastAPI(
            title="shellflow",
            description="Sequential shell task orchestrator",
            version="1.0.0",
        )

        @app.get("/status")
        def get_status() -> dict:
            """Get the current status snapshot."""
            return self._workflow.snapshot()

        @app.post(
            "/start",
            response_model=ActionResponse,
            status_code=202,
            responses={409: {"model": ErrorResponse}},
        )
        def start_workflow() -> ActionResponse:
            """Start the workflow, or run it again once finished."""
            try:
                self._runner.start()
            except WorkflowStateError as e:
                raise HTTPException(status_code=409, detail=str(e))
            return ActionResponse(status="started")

        @app.post("/stop", response_model=ActionResponse)
        def stop_workflow() -> ActionResponse:
            """Abort the running workflow."""
            self._runner.stop()
            return ActionResponse(status="stopping")

        @app.post(
            "/reset",
            response_model=ActionResponse,
            responses={409: {"model": ErrorResponse}},
        )
        def reset_workflow() -> ActionResponse:
            """Reset a finished workflow."""
            try:
                self._workflow.reset()
            except WorkflowStateError as e:
                raise HTTPException(status_code=409, detail=str(e))
            return ActionResponse(status="reset")

        @app.get("/health", response_model=HealthResponse)
        def health_check() -> HealthResponse:
            """Health check endpoint."""
            return HealthResponse(
                status="ok",
                running=self._workflow.running,
                finished=self._workflow.finished,
            )

        @app.websocket("/ws")
        async def status_stream(websocket: WebSocket) -> None:
            """Send the current snapshot, then every update until the stream ends."""
            await websocket.accept()

            queue: asyncio.Queue = asyncio.Queue()
            subscriber = QueueSubscriber(asyncio.get_running_loop(), queue)
            # The status lock may be held across store I/O, keep it off the event loop
            subscriber_id = await run_in_threadpool(self._workflow.subscribe, subscriber)
            try:
                closed_by_workflow = await stream_status(websocket, queue)
            finally:
                with anyio.CancelScope(shield=True):
                    await run_in_threadpool(self._workflow.unsubscribe, subscriber_id)

            if closed_by_workflow:
                await websocket.close()

        return app
