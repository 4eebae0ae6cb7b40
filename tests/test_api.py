"""Local HTTP/WebSocket surface used by the camera process and the UI."""
import time

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import ENDPOINT, lookup_reply
from fieldscan.config import MemorySettingsStore
from fieldscan.controller import ScanController
from fieldscan.main import create_app

ORDER = {"id": "o1", "size": "M", "participantEmail": "a@b.com"}


@pytest.fixture
def build_client(make_settings, service):
    def _build(store, **settings_overrides):
        controller = ScanController(
            settings=make_settings(**settings_overrides), store=store, transport=service.transport
        )
        return TestClient(create_app(controller))

    return _build


def poll(client, path, predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while True:
        response = client.get(path)
        if predicate(response):
            return response
        assert time.monotonic() < deadline, f"{path} never reached expected state: {response.text}"
        time.sleep(0.01)


def test_healthz_reports_idle(build_client, complete_store):
    with build_client(complete_store) as client:
        body = client.get("/healthz").json()

    assert body["status"] == "idle"
    assert body["protocol"] == "two_step"
    assert body["config_complete"] is True
    assert body["version"] == "2.0.5"


def test_scan_confirm_flow_over_http(build_client, complete_store, service):
    service.route("/api/lookup", lookup_reply([ORDER]))
    service.route("/api/deliver", httpx.Response(200, json={}))

    with build_client(complete_store, revert_ms=500) as client:
        first = client.post("/scan", json={"text": "ABC123"}).json()
        assert first == {"admitted": True, "status": "loading"}
        assert client.post("/scan", json={"text": "ABC123"}).json()["admitted"] is False

        pending = poll(client, "/confirmation", lambda r: r.status_code == 200).json()
        assert pending == ORDER

        assert client.post("/confirmation", json={"decision": "confirm"}).status_code == 200
        poll(client, "/healthz", lambda r: r.json()["status"] == "success")
        poll(client, "/healthz", lambda r: r.json()["status"] == "idle")

    assert service.calls_to("/api/deliver") == [{"orderId": "o1", "volunteerCode": "4242"}]


def test_confirmation_endpoints_without_pending(build_client, complete_store):
    with build_client(complete_store) as client:
        assert client.get("/confirmation").status_code == 404
        assert client.post("/confirmation", json={"decision": "confirm"}).status_code == 409
        assert client.post("/confirmation", json={"decision": "maybe"}).status_code == 422


def test_settings_round_trip_hides_credential(build_client):
    store = MemorySettingsStore()
    with build_client(store) as client:
        saved = client.put(
            "/settings",
            json={"endpoint_url": ENDPOINT, "credential": "secret", "category": "101-G", "volunteer_code": "12"},
        ).json()
        fetched = client.get("/settings").json()
        health = client.get("/healthz").json()

    assert saved == fetched == {
        "endpoint_url": ENDPOINT,
        "category": "101-G",
        "volunteer_code": "12",
        "credential_set": True,
    }
    assert health["config_complete"] is True
    assert store.get("credential") == "secret"


def test_settings_can_clear_credential(build_client, complete_store):
    with build_client(complete_store) as client:
        kept = client.put("/settings", json={"endpoint_url": ENDPOINT, "volunteer_code": "4242"}).json()
        cleared = client.put(
            "/settings", json={"endpoint_url": ENDPOINT, "volunteer_code": "4242", "clear_credential": True}
        ).json()
        fetched = client.get("/settings").json()

    assert kept["credential_set"] is True
    assert cleared["credential_set"] is False
    assert fetched["credential_set"] is False
    assert complete_store.get("credential") is None


def test_reset_endpoint_returns_idle(build_client):
    store = MemorySettingsStore()
    with build_client(store, revert_ms=5000) as client:
        # Incomplete settings put the indicator into error without a transaction
        assert client.post("/scan", json={"text": "ABC123"}).json()["status"] == "error"
        assert client.post("/reset").json() == {"status": "idle"}
        assert client.get("/healthz").json()["last_admitted"] is None


def test_ui_socket_streams_status(build_client):
    store = MemorySettingsStore()
    with build_client(store, revert_ms=5000) as client:
        with client.websocket_connect("/ws/ui") as ws:
            assert ws.receive_json() == {"type": "status", "status": "idle", "data": {}}
            client.post("/scan", json={"text": "ABC123"})
            scan = ws.receive_json()
            status = ws.receive_json()

    assert scan["type"] == "scan"
    assert scan["data"] == {"text": "ABC123"}
    assert status["type"] == "status"
    assert status["status"] == "error"
    assert "volunteer_code" in status["error"]
