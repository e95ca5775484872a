import pytest
import requests

from drivermon.core.config import settings
from drivermon.services import inference_gateway

OFFER = {"offer": {"sdp": "v=0", "type": "offer"}}


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.exceptions.HTTPError(f"{self.status} error")

    def json(self):
        return self.payload


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setattr(settings, "roboflow_api_key", "rf-key")
    monkeypatch.setattr(settings, "roboflow_workspace", "fleet")
    monkeypatch.setattr(settings, "roboflow_workflow_id", "driver-monitor")


def test_turn_config_without_key_is_stun_only(client, headers):
    body = client.get("/api/turn-config", headers=headers).json()
    assert body == {"iceServers": [{"urls": [settings.stun_url], "username": None, "credential": None}]}


def test_turn_config_with_turn(client, headers, configured, monkeypatch):
    monkeypatch.setattr(
        inference_gateway.requests,
        "get",
        lambda *a, **kw: FakeResponse({"urls": "turn:relay.test:3478", "username": "u", "credential": "c"}),
    )
    servers = client.get("/api/turn-config", headers=headers).json()["iceServers"]
    assert servers[0] == {"urls": ["turn:relay.test:3478"], "username": "u", "credential": "c"}
    assert servers[1]["urls"] == [settings.stun_url]


def test_init_webrtc_requires_offer(client, headers, configured):
    assert client.post("/api/init-webrtc", json={}, headers=headers).status_code == 400


def test_init_webrtc_without_configuration(client, headers):
    response = client.post("/api/init-webrtc", json=OFFER, headers=headers)
    assert response.status_code == 500
    assert response.json()["detail"] == "Server configuration error"


def test_init_webrtc_forwards_offer(client, headers, configured, monkeypatch):
    sent = {}

    def fake_post(url, json, timeout):
        sent.update(json)
        return FakeResponse({"sdp": "answer", "type": "answer"})

    monkeypatch.setattr(inference_gateway.requests, "get", lambda *a, **kw: FakeResponse({}, status=500))
    monkeypatch.setattr(inference_gateway.requests, "post", fake_post)

    body = {**OFFER, "wrtcParams": {"streamOutputNames": ["label"], "dataOutputNames": ["*"]}}
    response = client.post("/api/init-webrtc", json=body, headers=headers)

    assert response.status_code == 200
    assert response.json() == {"sdp": "answer", "type": "answer"}
    assert sent["api_key"] == "rf-key"
    assert sent["workflow_configuration"]["workspace_name"] == "fleet"
    assert sent["workflow_configuration"]["image_input_name"] == "image"
    assert sent["stream_output"] == ["label"]
    assert sent["webrtc_turn_config"] == {"urls": settings.stun_url}


def test_init_webrtc_upstream_failure(client, headers, configured, monkeypatch):
    def fake_post(url, json, timeout):
        raise requests.exceptions.ConnectionError("refused")

    monkeypatch.setattr(inference_gateway.requests, "get", lambda *a, **kw: FakeResponse({}, status=500))
    monkeypatch.setattr(inference_gateway.requests, "post", fake_post)
    assert client.post("/api/init-webrtc", json=OFFER, headers=headers).status_code == 502


def test_init_webrtc_requires_auth(client):
    assert client.post("/api/init-webrtc", json=OFFER).status_code == 401
