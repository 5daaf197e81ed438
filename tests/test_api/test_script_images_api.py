"""
Tests for the Script Images API

Tests for scriptvision/api/main.py, scriptvision/api/routers/script_images.py
and scriptvision/api/auth.py
"""

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from scriptvision.api.auth import (
    authenticate,
    bearer_token,
    create_access_token,
    decode_access_token,
    resolve_stream_user,
)
from scriptvision.api.main import create_app
from scriptvision.core.exceptions import AuthenticationError, MissingConfigError
from scriptvision.streaming.store import InMemoryStateStore

BASE = "/api/v1/script-images"


def parse_sse(text: str):
    """Decode a text/event-stream body into event dicts."""
    events = []
    for frame in text.split("\n\n"):
        frame = frame.strip()
        if frame.startswith("data: "):
            events.append(json.loads(frame[len("data: "):]))
    return events


@pytest.fixture
def app(fast_config, image_client):
    return create_app(fast_config, image_client=image_client, store=InMemoryStateStore())


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def token():
    return create_access_token("user_1")


@pytest.fixture
def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def payload(sample_script):
    return {"script": sample_script, "duration": 60, "maxImagesPerMin": 4, "projectId": "p1"}


class TestAuth:
    """Tests for token handling."""

    def test_round_trip_user_id(self, token):
        assert authenticate(token) == "user_1"
        assert decode_access_token(token)["type"] == "access"

    def test_expired_token(self):
        expired = create_access_token("user_1", expires_minutes=-1)
        with pytest.raises(AuthenticationError, match="expired"):
            authenticate(expired)

    def test_wrong_secret(self, monkeypatch, token):
        monkeypatch.setenv("JWT_SECRET", "another-secret")
        with pytest.raises(AuthenticationError):
            authenticate(token)

    def test_missing_secret(self, monkeypatch):
        monkeypatch.delenv("JWT_SECRET")
        with pytest.raises(MissingConfigError):
            create_access_token("user_1")

    def test_alternate_user_claims(self):
        token = create_access_token("ignored", extra_claims={"userId": None, "sub": "user_9"})
        assert authenticate(token) == "user_9"

    def test_bearer_format(self):
        assert bearer_token(None) is None
        assert bearer_token("Bearer abc") == "abc"
        with pytest.raises(AuthenticationError):
            bearer_token("Token abc")

    def test_query_token_preferred(self, token):
        assert resolve_stream_user(token, "Bearer garbage") == "user_1"
        with pytest.raises(AuthenticationError):
            resolve_stream_user(None, None)


class TestHealth:
    """Tests for service endpoints."""

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["activeSessions"] == 0
        assert body["activeGenerations"] == 0

    def test_root(self, client):
        assert client.get("/").json()["message"] == "ScriptVision API"


class TestGenerateEndpoint:
    """Tests for POST /generate."""

    def test_requires_token(self, client, payload):
        response = client.post(f"{BASE}/generate", json=payload)
        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "No token provided"}

    def test_rejects_bad_token(self, client, payload):
        response = client.post(f"{BASE}/generate", json=payload, headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_invalid_parameters(self, client, auth_headers):
        response = client.post(f"{BASE}/generate", json={"script": "short", "duration": 5},
                               headers=auth_headers)

        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Invalid parameters"
        assert "Duration must be a number between 10 and 3600 seconds" in body["errors"]
        assert any(error.startswith("Project ID is required") for error in body["errors"])

    def test_invalid_planner(self, client, auth_headers, payload):
        payload["planner"] = "magic"
        response = client.post(f"{BASE}/generate", json=payload, headers=auth_headers)
        assert response.status_code == 400

    def test_generates_all_images(self, client, auth_headers, payload, image_client):
        response = client.post(f"{BASE}/generate", json=payload, headers=auth_headers)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["totalImages"] == 4
        assert [image["timestamp"] for image in data["images"]] == [0, 15, 30, 45]
        assert data["images"][0]["base64Data"] == image_client.b64_data
        assert data["estimates"]["expectedImages"] == 4
        assert len(image_client.calls) == 4

    def test_audio_duration_filters(self, client, auth_headers, payload):
        payload["audioDuration"] = 40
        response = client.post(f"{BASE}/generate", json=payload, headers=auth_headers)

        data = response.json()["data"]
        assert data["effectiveDuration"] == 40
        assert all(image["timestamp"] < 40 for image in data["images"])

    def test_nan_audio_duration_rejected(self, client, auth_headers, payload, image_client):
        body = json.dumps(payload)[:-1] + ', "audioDuration": NaN}'
        headers = {**auth_headers, "Content-Type": "application/json"}

        response = client.post(f"{BASE}/generate", content=body, headers=headers)

        assert response.status_code == 400
        assert "Audio duration must be a finite, non-negative number of seconds" in response.json()["errors"]
        assert image_client.calls == []

    def test_conflict(self, client, app, auth_headers, payload):
        asyncio.run(app.state.locks.acquire("p1", "someone_else"))

        response = client.post(f"{BASE}/generate", json=payload, headers=auth_headers)

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "GENERATION_IN_PROGRESS"
        assert body["projectId"] == "p1"

    def test_lock_released_after_run(self, client, auth_headers, payload):
        client.post(f"{BASE}/generate", json=payload, headers=auth_headers)
        status = client.get(f"{BASE}/status/p1", headers=auth_headers).json()
        assert status["isGenerating"] is False


class TestStreamEndpoints:
    """Tests for the two-step event stream."""

    def test_session_then_stream(self, client, auth_headers, payload, token):
        init = client.post(f"{BASE}/generate-stream", json=payload, headers=auth_headers)
        assert init.status_code == 200
        session_id = init.json()["sessionId"]
        assert session_id.startswith("session_")

        response = client.get(f"{BASE}/generate-stream", params={"sessionId": session_id, "token": token})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        events = parse_sse(response.text)
        types = [e["type"] for e in events if e["type"] != "heartbeat"]
        assert types[:2] == ["init", "estimates"]
        assert types[-1] == "complete"
        assert types.count("image") == 4
        assert events[0]["sessionId"] == session_id

    def test_session_single_use(self, client, auth_headers, payload, token):
        session_id = client.post(f"{BASE}/generate-stream", json=payload, headers=auth_headers).json()["sessionId"]
        client.get(f"{BASE}/generate-stream", params={"sessionId": session_id, "token": token})

        again = client.get(f"{BASE}/generate-stream", params={"sessionId": session_id, "token": token})

        assert parse_sse(again.text)[0]["code"] == "SESSION_NOT_FOUND"

    def test_stream_from_query_params(self, client, auth_headers, sample_script):
        params = {"script": sample_script, "duration": "60", "maxImagesPerMin": "4", "projectId": "p2"}

        response = client.get(f"{BASE}/generate-stream", params=params, headers=auth_headers)

        events = parse_sse(response.text)
        assert events[-1]["type"] == "complete"
        assert events[-1]["projectId"] == "p2"

    def test_stream_invalid_query_params(self, client, auth_headers):
        params = {"script": "short", "duration": "abc", "projectId": "p2"}

        events = parse_sse(client.get(f"{BASE}/generate-stream", params=params, headers=auth_headers).text)

        assert len(events) == 1
        assert events[0]["code"] == "INVALID_PARAMETERS"

    @pytest.mark.parametrize("audio_duration", ["nan", "inf", "-Infinity"])
    def test_stream_non_finite_audio_duration(self, client, auth_headers, sample_script, image_client, audio_duration):
        params = {"script": sample_script, "duration": "60", "projectId": "p2", "audioDuration": audio_duration}

        response = client.get(f"{BASE}/generate-stream", params=params, headers=auth_headers)

        assert "NaN" not in response.text
        assert "Infinity" not in response.text
        events = parse_sse(response.text)
        assert [event["code"] for event in events] == ["INVALID_PARAMETERS"]
        assert image_client.calls == []

    def test_stream_auth_failure_is_an_event(self, client):
        response = client.get(f"{BASE}/generate-stream", params={"sessionId": "x", "token": "bad"})

        assert response.status_code == 200
        events = parse_sse(response.text)
        assert events == [{"type": "error", "code": "AUTH_FAILED", "message": events[0]["message"], "fatal": True}]

    def test_unknown_session(self, client, token):
        response = client.get(f"{BASE}/generate-stream", params={"sessionId": "session_0_missing", "token": token})
        assert parse_sse(response.text)[0]["code"] == "SESSION_NOT_FOUND"

    def test_session_of_another_user(self, client, auth_headers, payload):
        session_id = client.post(f"{BASE}/generate-stream", json=payload, headers=auth_headers).json()["sessionId"]
        other = create_access_token("user_2")

        response = client.get(f"{BASE}/generate-stream", params={"sessionId": session_id, "token": other})

        assert parse_sse(response.text)[0]["code"] == "AUTH_FAILED"

    def test_stream_conflict(self, client, app, auth_headers, payload, token):
        session_id = client.post(f"{BASE}/generate-stream", json=payload, headers=auth_headers).json()["sessionId"]
        asyncio.run(app.state.locks.acquire("p1", "someone_else"))

        response = client.get(f"{BASE}/generate-stream", params={"sessionId": session_id, "token": token})

        assert response.status_code == 409
        assert response.json()["code"] == "GENERATION_IN_PROGRESS"

    def test_bootstrap_validates(self, client, auth_headers):
        response = client.post(f"{BASE}/generate-stream", json={"script": "short"}, headers=auth_headers)
        assert response.status_code == 400


class TestPlanningEndpoints:
    """Tests for estimate, validate and status."""

    def test_estimate(self, client, auth_headers, payload):
        response = client.post(f"{BASE}/estimate", json=payload, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["expectedImages"] == 4
        assert data["chunking"]["chunkDuration"] == 15
        assert data["estimatedProcessingTime"]["seconds"] == 18

    def test_validate_reports_without_failing(self, client, auth_headers):
        response = client.post(f"{BASE}/validate", json={"script": "short", "duration": 60, "projectId": "p1"},
                               headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["isValid"] is False
        assert data["errors"]

    def test_validate_warning(self, client, auth_headers, payload):
        payload.update(duration=900, maxImagesPerMin=6)
        data = client.post(f"{BASE}/validate", json=payload, headers=auth_headers).json()["data"]

        assert data["isValid"] is True
        assert len(data["warnings"]) == 1

    def test_status(self, client, app, auth_headers):
        assert client.get(f"{BASE}/status/p9", headers=auth_headers).json()["isGenerating"] is False
        asyncio.run(app.state.locks.acquire("p9", "user_1"))
        assert client.get(f"{BASE}/status/p9", headers=auth_headers).json()["isGenerating"] is True
