"""
Unit tests for the pcap server HTTP API.

The job manager runs against the in-memory backend and the conversion
pipeline against in-memory storage; authentication is either bypassed or
driven through a mocked repository.
"""

import dataclasses
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from pcap_common.models import APIKey, JobState, User
from pcap_pdml.pipeline import ConversionPipeline
from pcap_server.app import (
    app,
    get_current_user,
    get_job_manager,
    get_pipeline,
    get_repository,
)
from pcap_server.auth import hash_api_key

from test_decoder import EXPECTED_DOCUMENT, SAMPLE_PDML

PAGE = "/final/output/path/job_1/part-00000.pcap"


@pytest.fixture
def user():
    return User(id="user-1", name="alice", created_at=datetime.now(UTC))


@pytest.fixture
def storage(make_storage):
    return make_storage({PAGE: SAMPLE_PDML})


@pytest.fixture
def decoder_script(tmp_path):
    script = tmp_path / "pcap_to_pdml.sh"
    script.write_text("#!/bin/sh\ncat\n")
    script.chmod(0o755)
    return script


@pytest.fixture
def client(user, manager, storage, settings, decoder_script):
    """Test client with authentication bypassed."""
    pipeline = ConversionPipeline(
        manager,
        storage,
        dataclasses.replace(settings, pdml_script_path=str(decoder_script)),
    )
    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_job_manager] = lambda: manager
    app.dependency_overrides[get_pipeline] = lambda: pipeline

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def finished_handle(backend, make_handle):
    """The next submitted job gets one page and can be finished by the test."""
    handle = make_handle("job_1", pages=[PAGE])
    backend.queued = [handle]
    return handle


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestSubmit:
    """Test suite for POST /api/v1/pcap/fixed."""

    def test_submit(self, client, backend):
        response = client.post(
            "/api/v1/pcap/fixed",
            json={
                "startTimeMs": 1,
                "endTimeMs": 2,
                "ipSrcAddr": "192.168.66.1",
                "ipSrcPort": "1000",
                "includeReverse": False,
            },
        )

        assert response.status_code == 200
        assert response.json() == {
            "jobId": "job_1",
            "jobStatus": "RUNNING",
            "description": "",
            "percentComplete": 0.0,
        }
        query_filter, config = backend.created[0]
        assert query_filter.to_fields() == {
            "ip_src_addr": "192.168.66.1",
            "ip_src_port": "1000",
            "include_reverse_traffic": "false",
        }
        assert config.owner == "alice"
        assert config.start_time_ns == 1_000_000

    def test_submit_without_body(self, client, backend):
        response = client.post("/api/v1/pcap/fixed")

        assert response.status_code == 200
        assert backend.created[0][0].is_match_all

    def test_unknown_field_is_bad_request(self, client, backend):
        response = client.post("/api/v1/pcap/fixed", json={"srcIp": "10.0.0.1"})

        assert response.status_code == 400
        assert response.json()["kind"] == "VALIDATION"
        assert backend.created == []

    def test_inverted_window_is_bad_request(self, client):
        response = client.post(
            "/api/v1/pcap/fixed", json={"startTimeMs": 5, "endTimeMs": 1}
        )

        assert response.status_code == 400
        assert response.json()["kind"] == "VALIDATION"

    def test_backend_rejection(self, client, backend):
        backend.error = IOError("some job exception")

        response = client.post("/api/v1/pcap/fixed", json={})

        assert response.status_code == 500
        assert response.json() == {
            "detail": "some job exception",
            "kind": "SUBMISSION",
        }


class TestStatusAndKill:
    """Test suite for status, list and kill endpoints."""

    def test_unknown_job(self, client):
        assert client.get("/api/v1/pcap/jobId").status_code == 404
        assert client.delete("/api/v1/pcap/kill/jobId").status_code == 404

    def test_status_of_finished_job(self, client, finished_handle):
        client.post("/api/v1/pcap/fixed", json={})
        finished_handle.finish(JobState.SUCCEEDED, "Job completed")

        response = client.get("/api/v1/pcap/job_1")

        assert response.status_code == 200
        assert response.json() == {
            "jobId": "job_1",
            "jobStatus": "SUCCEEDED",
            "description": "Job completed",
            "percentComplete": 100.0,
            "pageTotal": 1,
        }

    def test_status_lookup_failure(self, client, finished_handle):
        client.post("/api/v1/pcap/fixed", json={})
        finished_handle.status_error = IOError("some exception")

        response = client.get("/api/v1/pcap/job_1")

        assert response.status_code == 500
        assert response.json()["kind"] == "LOOKUP"

    def test_list_jobs(self, client):
        client.post("/api/v1/pcap/fixed", json={})
        client.post("/api/v1/pcap/fixed", json={})

        response = client.get("/api/v1/pcap")

        assert response.status_code == 200
        assert [s["jobId"] for s in response.json()] == ["job_1", "job_2"]

    def test_kill(self, client):
        client.post("/api/v1/pcap/fixed", json={})

        response = client.delete("/api/v1/pcap/kill/job_1")

        assert response.status_code == 200
        assert response.json()["jobStatus"] == "KILLED"


class TestPages:
    """Test suite for the pdml and raw page endpoints."""

    def test_pdml(self, client, finished_handle):
        client.post("/api/v1/pcap/fixed", json={})
        finished_handle.finish(JobState.SUCCEEDED)

        response = client.get("/api/v1/pcap/job_1/pdml", params={"page": 1})

        assert response.status_code == 200
        assert response.json() == EXPECTED_DOCUMENT

    @pytest.mark.parametrize("page", [0, 2])
    def test_pdml_page_out_of_range(self, client, finished_handle, page):
        client.post("/api/v1/pcap/fixed", json={})
        finished_handle.finish(JobState.SUCCEEDED)

        response = client.get("/api/v1/pcap/job_1/pdml", params={"page": page})

        assert response.status_code == 404

    def test_pdml_of_running_job(self, client, finished_handle):
        client.post("/api/v1/pcap/fixed", json={})

        response = client.get("/api/v1/pcap/job_1/pdml", params={"page": 1})

        assert response.status_code == 404

    def test_pdml_missing_file(self, client, finished_handle, storage):
        client.post("/api/v1/pcap/fixed", json={})
        finished_handle.finish(JobState.SUCCEEDED)
        storage.files.clear()

        response = client.get("/api/v1/pcap/job_1/pdml", params={"page": 1})

        assert response.status_code == 404

    def test_pdml_decoder_failure(
        self, client, finished_handle, decoder_script
    ):
        client.post("/api/v1/pcap/fixed", json={})
        finished_handle.finish(JobState.SUCCEEDED)
        decoder_script.write_text("#!/bin/sh\ncat >/dev/null\nexit 3\n")

        response = client.get("/api/v1/pcap/job_1/pdml", params={"page": 1})

        assert response.status_code == 500
        assert response.json()["kind"] == "EXECUTION"

    def test_raw(self, client, finished_handle):
        client.post("/api/v1/pcap/fixed", json={})
        finished_handle.finish(JobState.SUCCEEDED)

        response = client.get("/api/v1/pcap/job_1/raw", params={"page": 1})

        assert response.status_code == 200
        assert response.content == SAMPLE_PDML
        assert response.headers["content-type"] == "application/octet-stream"
        assert "pcap_job_1_1.pcap" in response.headers["content-disposition"]

    def test_raw_missing(self, client):
        response = client.get("/api/v1/pcap/job_1/raw", params={"page": 1})

        assert response.status_code == 404


class TestAuthentication:
    """Requests go through the real API key check against a mocked repository."""

    @pytest.fixture
    def auth_client(self, user, manager):
        repository = AsyncMock()
        repository.get_api_key_by_hash.side_effect = lambda key_hash: (
            APIKey(id="key-1", user_id="user-1", key_hash=key_hash)
            if key_hash == hash_api_key("pcap_valid")
            else None
        )
        repository.get_user.return_value = user
        app.dependency_overrides[get_repository] = lambda: repository
        app.dependency_overrides[get_job_manager] = lambda: manager

        yield TestClient(app)

        app.dependency_overrides.clear()

    def test_missing_credentials(self, auth_client):
        response = auth_client.get("/api/v1/pcap")

        assert response.status_code in (401, 403)

    def test_invalid_key(self, auth_client):
        response = auth_client.get(
            "/api/v1/pcap", headers={"Authorization": "Bearer pcap_invalid"}
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or revoked API key"

    def test_valid_key_owns_jobs(self, auth_client, backend):
        headers = {"Authorization": "Bearer pcap_valid"}

        submitted = auth_client.post("/api/v1/pcap/fixed", json={}, headers=headers)
        listed = auth_client.get("/api/v1/pcap", headers=headers)

        assert submitted.status_code == 200
        assert backend.created[0][1].owner == "alice"
        assert [s["jobId"] for s in listed.json()] == [submitted.json()["jobId"]]

    def test_health_needs_no_key(self, auth_client):
        assert auth_client.get("/health").status_code == 200
