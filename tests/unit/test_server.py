"""Unit tests for the HTTP event receiver."""
from __future__ import annotations

import pytest
from starlette.testclient import TestClient

from server import create_app, job_id_from_subject


class RecordingController:
    def __init__(self):
        self.jobs = []

    async def handle_incoming_job(self, job):
        self.jobs.append(job)


@pytest.fixture
def controller() -> RecordingController:
    return RecordingController()


@pytest.fixture
def client(controller, fake_store) -> TestClient:
    fake_store.jobs["job-9"] = {"authToken": "auth", "testPath": "tests/t", "testId": "t"}
    return TestClient(create_app(controller, fake_store))


class TestJobIdFromSubject:
    def test_last_segment(self):
        assert job_id_from_subject("documents/agent-jobs/job-9") == "job-9"

    def test_trailing_slash(self):
        assert job_id_from_subject("documents/agent-jobs/job-9/") == "job-9"

    @pytest.mark.parametrize("subject", [None, "", "/"])
    def test_missing(self, subject):
        with pytest.raises(ValueError):
            job_id_from_subject(subject)


class TestServer:
    def test_health(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.text == "OK"

    def test_event_dispatches_job(self, client, controller):
        response = client.post(
            "/",
            headers={
                "ce-type": "google.cloud.firestore.document.v1.created",
                "ce-subject": "documents/agent-jobs/job-9",
                "ce-id": "evt-1",
                "ce-time": "2024-01-01T00:00:00Z",
            },
        )
        assert response.status_code == 200
        assert response.text == "OK"
        assert controller.jobs == [{"authToken": "auth", "testPath": "tests/t", "testId": "t", "id": "job-9"}]

    def test_unknown_job_still_acknowledged(self, client, controller):
        response = client.post("/", headers={"ce-subject": "documents/agent-jobs/missing"})
        assert response.status_code == 200
        assert controller.jobs == []

    def test_missing_subject_still_acknowledged(self, client, controller):
        response = client.post("/")
        assert response.status_code == 200
        assert controller.jobs == []

    def test_unknown_route(self, client):
        response = client.get("/nope")
        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "EMUBENCH_AGENT_404"
        assert body["path"] == "/nope"
        assert body["method"] == "GET"
