"""Tests for the Strava webhook endpoints."""

import pytest
from fastapi.testclient import TestClient

from coachsync.config.settings import settings
from coachsync.main import app
from coachsync.webhooks.strava import get_orchestrator


class RecordingOrchestrator:
    def __init__(self):
        self.events = []

    def handle_webhook_event(self, event):
        self.events.append(event)


@pytest.fixture
def orchestrator():
    return RecordingOrchestrator()


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


class TestVerification:
    """Subscription handshake (GET)."""

    def test_echoes_challenge(self, client, monkeypatch):
        monkeypatch.setattr(settings, "strava_webhook_verify_token", "verify-me")

        response = client.get(
            "/webhooks/strava",
            params={"hub.mode": "subscribe", "hub.challenge": "abc123", "hub.verify_token": "verify-me"},
        )

        assert response.status_code == 200
        assert response.json() == {"hub.challenge": "abc123"}

    def test_wrong_token_forbidden(self, client, monkeypatch):
        monkeypatch.setattr(settings, "strava_webhook_verify_token", "verify-me")

        response = client.get(
            "/webhooks/strava",
            params={"hub.mode": "subscribe", "hub.challenge": "abc123", "hub.verify_token": "nope"},
        )

        assert response.status_code == 403

    def test_unconfigured_token_forbidden(self, client, monkeypatch):
        monkeypatch.setattr(settings, "strava_webhook_verify_token", "")

        response = client.get(
            "/webhooks/strava",
            params={"hub.mode": "subscribe", "hub.challenge": "abc123", "hub.verify_token": ""},
        )

        assert response.status_code == 403

    def test_wrong_mode_rejected(self, client, monkeypatch):
        monkeypatch.setattr(settings, "strava_webhook_verify_token", "verify-me")

        response = client.get(
            "/webhooks/strava",
            params={"hub.mode": "unsubscribe", "hub.challenge": "abc123", "hub.verify_token": "verify-me"},
        )

        assert response.status_code == 400

    def test_missing_challenge_rejected(self, client, monkeypatch):
        monkeypatch.setattr(settings, "strava_webhook_verify_token", "verify-me")

        response = client.get("/webhooks/strava", params={"hub.mode": "subscribe", "hub.verify_token": "verify-me"})

        assert response.status_code == 400


class TestEvents:
    """Event delivery (POST) always answers 200."""

    def test_event_handed_to_orchestrator(self, client, orchestrator):
        event = {"aspect_type": "create", "object_type": "activity", "object_id": 999, "owner_id": 1001}

        response = client.post("/webhooks/strava", json=event)

        assert response.status_code == 200
        assert response.json() == {"status": "accepted"}
        assert orchestrator.events == [event]

    def test_invalid_json_still_ok(self, client, orchestrator):
        response = client.post("/webhooks/strava", content=b"{not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        assert orchestrator.events == []

    def test_non_object_payload_ignored(self, client, orchestrator):
        response = client.post("/webhooks/strava", json=[1, 2, 3])

        assert response.status_code == 200
        assert orchestrator.events == []


def test_health():
    assert TestClient(app).get("/health").json() == {"status": "ok"}
