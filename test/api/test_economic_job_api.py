from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from conftest import DummyLogger, FakeStateRepository
from simnations.api.app import create_app
from simnations.configs.env_config import Env
from simnations.economy.errors import AlreadyRunningError, JobStoppedError, RepositoryError
from simnations.model.economic_job import JobState, JobStatus


def stub_controller(**execute_kwargs):
    controller = MagicMock()
    controller.get_status.return_value = JobStatus(state=JobState.RUNNING, schedule_expression="0 * * * *")
    controller.execute_manual = AsyncMock(**execute_kwargs)
    return controller


def test_health_without_job():
    with TestClient(create_app(environment="test", logger=DummyLogger())) as client:
        res = client.get("/health")

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["message"] == "SimNations backend is running"
    assert body["environment"] == "test"
    assert body["economic_job_status"] == "not_initialized"
    assert body["timestamp"].endswith("Z")


def test_endpoints_unavailable_without_job():
    with TestClient(create_app(environment="test", logger=DummyLogger())) as client:
        status_res = client.get("/admin/economic-job/status")
        execute_res = client.post("/admin/economic-job/execute")

    for res in (status_res, execute_res):
        assert res.status_code == 503
        assert res.json()["success"] is False
        assert res.json()["message"] == "Economic job not initialized"


def test_status_and_execute(controller_factory, states):
    controller = controller_factory(FakeStateRepository(states))
    app = create_app(controller=controller, environment="development", logger=DummyLogger())

    with TestClient(app) as client:
        health = client.get("/health").json()
        assert health["economic_job_status"]["state"] == "IDLE"

        res = client.post("/admin/economic-job/execute")
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["outcome"] == "SUCCESS"
        assert (data["processed_count"], data["failed_count"]) == (5, 0)

        res = client.get("/admin/economic-job/status")
        assert res.status_code == 200
        status = res.json()["data"]
        assert status["state"] == "IDLE"
        assert status["last_run_outcome"] == "SUCCESS"
        assert status["last_run_trigger"] == "manual"
        assert status["next_scheduled_at"] is not None

    assert controller.get_status().state is JobState.STOPPED


def test_partial_failure_is_still_200(controller_factory, states):
    repo = FakeStateRepository(states, persist_failures={"state-1": 99})
    app = create_app(controller=controller_factory(repo), environment="development", logger=DummyLogger())

    with TestClient(app) as client:
        res = client.post("/admin/economic-job/execute")

    assert res.status_code == 200
    data = res.json()["data"]
    assert data["outcome"] == "PARTIAL_FAILURE"
    assert data["failures"][0]["state_id"] == "state-1"


def test_execute_while_running_is_500():
    controller = stub_controller(side_effect=AlreadyRunningError())
    app = create_app(controller=controller, environment="development", logger=DummyLogger())

    with TestClient(app) as client:
        res = client.post("/admin/economic-job/execute")

    assert res.status_code == 500
    body = res.json()
    assert body["success"] is False
    assert body["message"] == "Failed to execute economic job manually"
    assert "already running" in body["error"]


def test_execute_fetch_failure_is_500(controller_factory, states):
    repo = FakeStateRepository(states, fetch_error=RepositoryError("db down"))
    app = create_app(controller=controller_factory(repo), environment="development", logger=DummyLogger())

    with TestClient(app) as client:
        res = client.post("/admin/economic-job/execute")
        status = client.get("/admin/economic-job/status").json()["data"]

    assert res.status_code == 500
    assert res.json()["error"] == "db down"
    assert status["last_run_outcome"] == "FAILURE"


def test_execute_when_stopped_is_503():
    controller = stub_controller(side_effect=JobStoppedError())
    app = create_app(controller=controller, environment="development", logger=DummyLogger())

    with TestClient(app) as client:
        res = client.post("/admin/economic-job/execute")

    assert res.status_code == 503
    assert res.json()["message"] == "Economic job is stopped"


def test_production_has_no_execute_route(controller_factory, states):
    controller = controller_factory(FakeStateRepository(states))
    app = create_app(controller=controller, environment="production", logger=DummyLogger())

    with TestClient(app) as client:
        assert client.post("/admin/economic-job/execute").status_code == 404
        assert client.get("/admin/economic-job/status").status_code == 200


def test_lifespan_bootstraps_and_closes(monkeypatch, controller_factory, states):
    monkeypatch.setattr(Env, "APP_ENV", "development")
    monkeypatch.setattr(Env, "MONGO_URI", "mongodb://localhost:27017")
    controller = controller_factory(FakeStateRepository(states))
    runtime = MagicMock(controller=controller, close=AsyncMock())
    bootstrap = AsyncMock(return_value=runtime)

    app = create_app(environment="development", logger=DummyLogger(), bootstrap=bootstrap)
    with TestClient(app) as client:
        assert client.get("/health").json()["economic_job_status"]["state"] == "IDLE"

    bootstrap.assert_awaited_once()
    runtime.close.assert_awaited_once()
    assert app.state.economic_job is None


def test_lifespan_fails_without_mongo_uri(monkeypatch):
    monkeypatch.setattr(Env, "APP_ENV", "development")
    monkeypatch.setattr(Env, "MONGO_URI", None)
    app = create_app(environment="development", logger=DummyLogger(), bootstrap=AsyncMock())

    with pytest.raises(ValueError, match="MONGO_URI"):
        with TestClient(app):
            pass


def test_websocket_streams_snapshot_and_runs(controller_factory, states):
    controller = controller_factory(FakeStateRepository(states))
    app = create_app(controller=controller, environment="development", logger=DummyLogger())

    with TestClient(app) as client:
        with client.websocket_connect("/ws/economic-job") as ws:
            snapshot = ws.receive_json()
            assert snapshot["type"] == "snapshot"
            assert snapshot["status"]["state"] == "IDLE"

            assert client.post("/admin/economic-job/execute").status_code == 200
            events = [ws.receive_json() for _ in range(3)]

    assert [e["type"] for e in events] == ["status", "status", "run"]
    assert events[0]["status"]["state"] == "RUNNING"
    assert events[2]["result"]["processed_count"] == 5
