"""Unit tests for REST and WebSocket API."""

import asyncio
import json
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from shellflow.api.app import WorkflowAPI
from shellflow.models.status import Group, Status, Task
from shellflow.services.workflow import WorkflowStateError


def create_snapshot() -> dict:
    """Create a status snapshot as the workflow reports it."""
    status = Status(
        groups=[Group(id="g1", tasks=[Task(id="t1", cmd="true")])],
        started=True,
        percent=40,
        last_message="working",
        current_group="g1",
        current_task="t1",
    )
    return status.to_dict()


@pytest.fixture
def mock_workflow():
    workflow = MagicMock()
    workflow.snapshot.return_value = create_snapshot()
    workflow.running = True
    workflow.finished = False
    workflow.subscribe.return_value = "sub-1"
    return workflow


@pytest.fixture
def mock_runner():
    return MagicMock()


@pytest.fixture
def api(mock_workflow, mock_runner):
    return WorkflowAPI(mock_workflow, mock_runner)


@pytest.fixture
def client(api):
    return TestClient(api.create_app())


class TestWorkflowAPIInit:
    """Tests for WorkflowAPI initialization."""

    def test_init_none_workflow_raises(self, mock_runner):
        """None workflow raises error."""
        with pytest.raises(ValueError, match="workflow is required"):
            WorkflowAPI(None, mock_runner)

    def test_init_none_runner_raises(self, mock_workflow):
        """None runner raises error."""
        with pytest.raises(ValueError, match="runner is required"):
            WorkflowAPI(mock_workflow, None)


class TestGetStatus:
    """Tests for GET /status."""

    def test_returns_snapshot(self, client):
        response = client.get("/status")

        assert response.status_code == 200
        data = response.json()
        assert data["percent"] == 40
        assert data["currentGroup"] == "g1"
        assert data["lastMessage"] == "working"
        assert data["groups"][0]["tasks"][0]["id"] == "t1"


class TestStart:
    """Tests for POST /start."""

    def test_start_accepted(self, client, mock_runner):
        response = client.post("/start")

        assert response.status_code == 202
        assert response.json()["status"] == "started"
        mock_runner.start.assert_called_once()

    def test_start_while_running_conflicts(self, client, mock_runner):
        mock_runner.start.side_effect = WorkflowStateError("workflow already running")

        response = client.post("/start")

        assert response.status_code == 409
        assert response.json()["detail"] == "workflow already running"


class TestStop:
    """Tests for POST /stop."""

    def test_stop(self, client, mock_runner):
        response = client.post("/stop")

        assert response.status_code == 200
        assert response.json()["status"] == "stopping"
        mock_runner.stop.assert_called_once()


class TestReset:
    """Tests for POST /reset."""

    def test_reset(self, client, mock_workflow):
        response = client.post("/reset")

        assert response.status_code == 200
        assert response.json()["status"] == "reset"
        mock_workflow.reset.assert_called_once()

    def test_reset_unfinished_conflicts(self, client, mock_workflow):
        mock_workflow.reset.side_effect = WorkflowStateError("workflow not finished")

        response = client.post("/reset")

        assert response.status_code == 409
        assert "not finished" in response.json()["detail"]


class TestHealthCheck:
    """Tests for GET /health."""

    def test_health_check(self, client):
        """Health check returns ok."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "running": True, "finished": False}


class TestStatusStream:
    """Tests for WS /ws."""

    def test_sends_snapshot_on_connect(self, client, mock_workflow):
        def subscribe(subscriber):
            subscriber.send(json.dumps(create_snapshot()))
            return "sub-1"

        mock_workflow.subscribe.side_effect = subscribe

        with client.websocket_connect("/ws") as websocket:
            data = json.loads(websocket.receive_text())

        assert data["currentTask"] == "t1"
        mock_workflow.unsubscribe.assert_called_once_with("sub-1")

    def test_streams_until_workflow_closes(self, client, mock_workflow):
        def subscribe(subscriber):
            subscriber.send(json.dumps({"percent": 50}))
            subscriber.send(json.dumps({"percent": 100}))
            subscriber.close()
            return "sub-1"

        mock_workflow.subscribe.side_effect = subscribe

        with client.websocket_connect("/ws") as websocket:
            first = json.loads(websocket.receive_text())
            second = json.loads(websocket.receive_text())

        assert [first["percent"], second["percent"]] == [50, 100]
        mock_workflow.unsubscribe.assert_called_once_with("sub-1")

    def test_subscribe_runs_off_the_event_loop(self, client, mock_workflow):
        loops = []

        def subscribe(subscriber):
            try:
                loops.append(asyncio.get_running_loop())
            except RuntimeError:
                loops.append(None)
            subscriber.close()
            return "sub-1"

        mock_workflow.subscribe.side_effect = subscribe

        with client.websocket_connect("/ws"):
            pass

        assert loops == [None]
        mock_workflow.unsubscribe.assert_called_once_with("sub-1")

    def test_reconnecting_client_is_served_again(self, client, mock_workflow):
        def subscribe(subscriber):
            subscriber.send(json.dumps(create_snapshot()))
            return "sub-1"

        mock_workflow.subscribe.side_effect = subscribe

        for _ in range(2):
            with client.websocket_connect("/ws") as websocket:
                assert json.loads(websocket.receive_text())["currentGroup"] == "g1"

        assert mock_workflow.unsubscribe.call_count == 2
