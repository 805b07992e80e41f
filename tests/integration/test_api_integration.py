"""Integration tests for REST and WebSocket API."""

import json
from unittest.mock import MagicMock

import fakeredis
import pytest
import yaml
from fastapi.testclient import TestClient

from shellflow.api.app import WorkflowAPI
from shellflow.services.runner import EXIT_CODE_CONTINUE, WorkflowRunner
from shellflow.services.status_store import RedisStatusStore
from shellflow.services.workflow import Workflow


@pytest.fixture
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def store(redis_client):
    """Create status store."""
    return RedisStatusStore(redis_client)


@pytest.fixture
def definition_path(tmp_path):
    """Write a two group definition with an exiting task."""
    path = tmp_path / "workflow.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "vars": {"TARGET": "echo production"},
                "groups": [
                    {
                        "id": "prepare",
                        "tasks": [
                            {"id": "check", "cmd": 'output "checking $TARGET"\nprogress 1'},
                        ],
                    },
                    {
                        "id": "install",
                        "tasks": [
                            {"id": "packages", "cmd": 'output "installing"', "weight": 3},
                        ],
                    },
                ],
            }
        )
    )
    return str(path)


@pytest.fixture
def on_exit():
    return MagicMock()


@pytest.fixture
def workflow(definition_path, store):
    """Create workflow."""
    return Workflow(definition_path, store)


@pytest.fixture
def runner(workflow, on_exit):
    """Create runner that records exit requests instead of exiting."""
    return WorkflowRunner(workflow, on_exit=on_exit)


@pytest.fixture
def client(workflow, runner):
    """Create test client."""
    app = WorkflowAPI(workflow, runner).create_app()
    return TestClient(app)


class TestWorkflowLifecycle:
    """Integration tests for running a workflow through the API."""

    def test_initial_status(self, client):
        response = client.get("/status")

        assert response.status_code == 200
        data = response.json()
        assert data["started"] is False
        assert data["percent"] == 0
        assert [g["id"] for g in data["groups"]] == ["prepare", "install"]

    def test_start_runs_to_completion(self, client, runner, store, on_exit):
        response = client.post("/start")
        assert response.status_code == 202

        runner.join(timeout=30)

        data = client.get("/status").json()
        assert data["finished"] is True
        assert data["percent"] == 100
        assert data["vars"] == {"TARGET": "production"}
        assert data["groups"][0]["tasks"][0]["lastMessage"] == "checking production"
        assert data["lastMessage"] == "installing"
        assert not store.exists()
        on_exit.assert_not_called()

        health = client.get("/health").json()
        assert health == {"status": "ok", "running": False, "finished": True}

    def test_start_again_after_finish(self, client, runner):
        client.post("/start")
        runner.join(timeout=30)

        response = client.post("/start")
        assert response.status_code == 202
        runner.join(timeout=30)

        assert client.get("/status").json()["finished"] is True

    def test_reset_before_finish_conflicts(self, client):
        response = client.post("/reset")
        assert response.status_code == 409

    def test_reset_after_finish(self, client, runner):
        client.post("/start")
        runner.join(timeout=30)

        response = client.post("/reset")

        assert response.status_code == 200
        data = client.get("/status").json()
        assert data["finished"] is False
        assert data["started"] is False

    def test_stop_when_idle(self, client):
        response = client.post("/stop")
        assert response.status_code == 200


class TestExitingTask:
    """Integration tests for a task that ends the process."""

    def test_exit_requests_continue_code(self, tmp_path, store, on_exit):
        path = tmp_path / "reboot.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "groups": [
                        {
                            "id": "g1",
                            "tasks": [{"id": "reboot", "cmd": "true", "exits": True}],
                        }
                    ]
                }
            )
        )
        workflow = Workflow(str(path), store)
        runner = WorkflowRunner(workflow, on_exit=on_exit)

        runner.start()
        runner.join(timeout=30)

        on_exit.assert_called_once_with(EXIT_CODE_CONTINUE)
        persisted = store.load()
        assert persisted.current_task == "reboot"
        assert persisted.finished is False


class TestStatusStream:
    """Integration tests for the WebSocket status stream."""

    def test_snapshot_on_connect(self, client, workflow):
        with client.websocket_connect("/ws") as websocket:
            data = json.loads(websocket.receive_text())

        assert data["groups"][0]["id"] == "prepare"
        assert data["finished"] is False

    def test_streams_updates_until_finished(self, client, runner):
        received = []
        with client.websocket_connect("/ws") as websocket:
            received.append(json.loads(websocket.receive_text()))
            client.post("/start")

            while not received[-1]["finished"]:
                received.append(json.loads(websocket.receive_text()))

        runner.join(timeout=30)

        assert received[0]["started"] is False
        assert received[-1]["percent"] == 100
        messages = [p["lastMessage"] for p in received]
        assert "checking production" in messages
        assert "installing" in messages
