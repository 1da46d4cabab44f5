"""Smoke tests for API routes."""

import json
import time

import pytest
from fastapi.testclient import TestClient

from vigil.api.main import app
from vigil.api.state import AppState, set_app_state
from vigil.storage import StateStore


@pytest.fixture
def state(app_config, transport, monkeypatch):
	monkeypatch.delenv("VIGIL_MOCK_SENSORS", raising=False)
	state = AppState(app_config, store=StateStore(), client=transport.client())
	set_app_state(state)
	yield state
	set_app_state(None)


@pytest.fixture
def client(state):
	with TestClient(app) as client:
		yield client


def wait_for_queue(client, length, timeout=2.0):
	deadline = time.monotonic() + timeout
	while time.monotonic() < deadline:
		data = client.get("/api/queue").json()
		if data["length"] == length:
			return data
		time.sleep(0.02)
	return client.get("/api/queue").json()


class TestHealthEndpoints:
	def test_root(self, client):
		resp = client.get("/")
		assert resp.status_code == 200
		data = resp.json()
		assert data["status"] == "ok"
		assert data["service"] == "vigil"

	def test_health(self, client):
		resp = client.get("/health")
		assert resp.status_code == 200
		data = resp.json()
		assert data["status"] == "healthy"
		assert data["tracking"] is False
		assert data["online"] is True
		assert data["queue_length"] == 0


class TestMonitorRoutes:
	def test_get_status(self, client):
		resp = client.get("/api/status")
		assert resp.status_code == 200
		data = resp.json()
		assert data["user_id_set"] is False
		assert data["detector_state"] == "idle"

	def test_tracking_requires_session(self, client):
		resp = client.post("/api/tracking/start")
		assert resp.status_code == 409
		assert resp.json()["error"] == "UserIdNotSet"

	def test_session_and_tracking(self, client):
		resp = client.post("/api/session", json={"user_id": 42})
		assert resp.status_code == 200
		assert resp.json()["user_id_set"] is True

		resp = client.post("/api/tracking/start")
		assert resp.status_code == 200
		data = resp.json()
		assert data["tracking_active"] is True
		assert data["fall_detection_active"] is True
		assert data["location_active"] is True

		resp = client.post("/api/tracking/stop")
		assert resp.status_code == 200
		assert resp.json()["tracking_active"] is False

	def test_invalid_session(self, client):
		resp = client.post("/api/session", json={"user_id": 0})
		assert resp.status_code == 422

	def test_background_permission_denied_degrades(self, client, state):
		state.location_provider.background_granted = False
		client.post("/api/session", json={"user_id": 42})
		resp = client.post("/api/tracking/start")
		assert resp.status_code == 200
		data = resp.json()
		assert data["fall_detection_active"] is True
		assert data["location_background_permission"] is False

		errors = [n for n in client.get("/api/notifications").json() if n["type"] == "error"]
		assert errors[-1]["payload"]["scope"] == "location-background"
		assert "Background location" in errors[-1]["payload"]["message"]
		client.post("/api/tracking/stop")

	def test_invalid_location(self, client):
		resp = client.post("/api/location", json={"latitude": 10.0, "longitude": 200.0})
		assert resp.status_code == 422

	def test_location_update(self, client, transport):
		client.post("/api/session", json={"user_id": 42})
		client.post("/api/tracking/start")
		resp = client.post("/api/location", json={"latitude": 47.0, "longitude": 8.0, "timestamp": 1000.0})
		assert resp.status_code == 200
		deadline = time.monotonic() + 2.0
		while not transport.requests and time.monotonic() < deadline:
			time.sleep(0.02)
		assert json.loads(transport.bodies[0])["type"] == "LOCATION_UPDATE"

	def test_notifications(self, client):
		client.post("/api/session", json={"user_id": 42})
		client.post("/api/emergency")
		resp = client.get("/api/notifications", params={"limit": 1})
		assert resp.status_code == 200
		entries = resp.json()
		assert len(entries) == 1
		assert entries[0]["type"] == "emergency_confirmed"


class TestDeliveryRoutes:
	def test_emergency_delivered(self, client, transport):
		client.post("/api/session", json={"user_id": 42})
		resp = client.post("/api/emergency")
		assert resp.status_code == 200
		assert resp.json()["status"] == "delivered"
		assert len(transport.requests) == 1

	def test_offline_emergency_queued_then_drained(self, client, transport):
		client.post("/api/session", json={"user_id": 42})
		client.post("/api/connectivity", json={"online": False})

		resp = client.post("/api/emergency")
		assert resp.status_code == 200
		assert resp.json()["status"] == "queued"

		queue = client.get("/api/queue").json()
		assert queue["length"] == 1
		assert queue["entries"][0]["event_type"] == "EMERGENCY_BUTTON_PRESSED"
		assert transport.requests == []

		resp = client.post("/api/connectivity", json={"online": True})
		assert resp.status_code == 200
		assert wait_for_queue(client, 0)["length"] == 0
		assert len(transport.requests) == 1

	def test_manual_flush(self, client):
		resp = client.post("/api/queue/flush")
		assert resp.status_code == 200
		data = resp.json()
		assert data["attempted"] == 0
		assert data["skipped"] is False

	def test_emergency_without_session(self, client):
		resp = client.post("/api/emergency")
		assert resp.status_code == 409
