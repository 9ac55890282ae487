import pytest
from fastapi.testclient import TestClient

from deployer.main import create_app
from deployer.settings import settings

from .conftest import OWNER

SECRET = "s3cret"

VALID_REQUEST = {
    "secret": SECRET,
    "email": "test@example.com",
    "task": "calc-app",
    "round": 1,
    "brief": "Create a calculator",
    "nonce": "abc",
    "evaluation_url": "https://example.com/eval",
    "checks": [],
}


@pytest.fixture
def client(monkeypatch, scheduler):
    monkeypatch.setattr(settings, "STUDENT_SECRET", SECRET)
    with TestClient(create_app(scheduler)) as c:
        yield c


def test_accepts_valid_request(client, scheduler):
    r = client.post("/api/task", json=VALID_REQUEST)
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "processing"
    assert data["taskId"] == "calc-app-round-1-abc"
    assert data["task"] == "calc-app"
    assert data["round"] == 1

    assert scheduler.wait_idle(timeout=5)
    status = client.get("/api/task-status", params={"taskId": data["taskId"]}).json()
    assert status["status"] == "completed"
    assert status["stage"] == "completed"
    assert status["progress"] == 100
    assert status["pagesUrl"] == f"https://{OWNER}.github.io/calc-app/"
    assert status["repositoryUrl"] == f"https://github.com/{OWNER}/calc-app"
    assert status["commitSha"]
    assert status["error"] is None


def test_extra_fields_like_checks_are_ignored(client):
    r = client.post("/api/task", json={**VALID_REQUEST, "nonce": "extra", "checks": "not-a-list", "note": 1})
    assert r.status_code == 200
    assert r.json()["taskId"] == "calc-app-round-1-extra"


def test_legacy_endpoint_alias(client):
    r = client.post("/api-endpoint", json={**VALID_REQUEST, "nonce": "alias"})
    assert r.status_code == 200
    assert r.json()["taskId"] == "calc-app-round-1-alias"


def test_same_request_maps_to_same_task_id(client):
    first = client.post("/api/task", json=VALID_REQUEST).json()["taskId"]
    second = client.post("/api/task", json=VALID_REQUEST).json()["taskId"]
    assert first == second


def test_rejects_invalid_secret(client):
    r = client.post("/api/task", json={**VALID_REQUEST, "secret": "wrong"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Unauthorized"


def test_rejects_missing_fields_and_bad_round(client):
    assert client.post("/api/task", json={"secret": SECRET, "email": "a@b.c"}).status_code == 422
    assert client.post("/api/task", json={**VALID_REQUEST, "round": 3}).status_code == 422


def test_task_status_errors(client):
    assert client.get("/api/task-status").status_code == 400
    r = client.get("/api/task-status", params={"taskId": "missing"})
    assert r.status_code == 404
    assert r.json()["detail"] == "Task not found"


def test_health_reports_queue_counts(client, scheduler):
    client.post("/api/task", json=VALID_REQUEST)
    assert scheduler.wait_idle(timeout=5)

    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["queue"] == {"waiting": 0, "active": 0, "completed": 1, "failed": 0}


def test_list_tasks(client, scheduler):
    client.post("/api/task", json=VALID_REQUEST)
    assert scheduler.wait_idle(timeout=5)
    body = client.get("/api/tasks").json()
    assert body["count"] == 1
    assert body["tasks"][0]["id"] == "calc-app-round-1-abc"
