"""
End-to-end tests through the FastAPI app: WebSocket join, command round
trip via the simulated device, and the HTTP status routes.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from scene_relay.core.config import Settings
from scene_relay.device.simulated import SimulatedDevice
from scene_relay.main import create_app


@pytest.fixture()
def device() -> SimulatedDevice:
    return SimulatedDevice(["Intro", "Verse", "Chorus"], num_tracks=2)


@pytest.fixture()
def client(device):
    settings = Settings(static_dir="", device_timeout_s=1.0, client_send_timeout_s=1.0)
    with TestClient(create_app(settings, device=device)) as client:
        yield client


def _receive_snapshot(ws) -> tuple[dict, dict]:
    scenes = ws.receive_json()
    active = ws.receive_json()
    assert scenes["msg"] == "scenes"
    assert active["msg"] == "activeSceneId"
    return scenes, active


def test_join_receives_current_scenes(client):
    with client.websocket_connect("/ws") as ws:
        scenes, active = _receive_snapshot(ws)

    assert [s["name"] for s in scenes["scenes"]] == ["Intro", "Verse", "Chorus"]
    assert [s["index"] for s in scenes["scenes"]] == [0, 1, 2]
    for scene in scenes["scenes"]:
        assert scene["isTriggered"] is False
        assert scene["isPlaying"] is False
        assert scene["length"] == 0
        assert scene["playingPosition"] == 0
    assert active["id"] == scenes["scenes"][0]["id"]


def test_trigger_scene_round_trip_reaches_all_clients(client, device):
    with client.websocket_connect("/ws") as first, client.websocket_connect("/ws") as second:
        _receive_snapshot(first)
        _receive_snapshot(second)

        first.send_json({"msg": "TriggerScene", "index": 1})

        # fire -> slot index notifications -> re-aggregation -> broadcast
        scenes, _ = _receive_snapshot(first)
        other, _ = _receive_snapshot(second)

    assert device.fired == ["Verse"]
    assert len(scenes["scenes"]) == 3
    assert other == scenes


def test_playing_clip_shows_up_after_trigger(client, device):
    device.set_clip(0, 2, length=16.0)

    with client.websocket_connect("/ws") as ws:
        _receive_snapshot(ws)
        ws.send_json({"msg": "TriggerScene", "index": 2})
        scenes, _ = _receive_snapshot(ws)

    chorus = scenes["scenes"][2]
    assert chorus["isPlaying"] is True
    assert chorus["length"] == 16.0


def test_bad_messages_keep_connection_open(client, device):
    with client.websocket_connect("/ws") as ws:
        _receive_snapshot(ws)

        ws.send_text("{nope")
        ws.send_json({"msg": "Explode"})
        ws.send_json({"msg": "TriggerScene", "index": 99})
        ws.send_json({"msg": "StopNow"})

        scenes, _ = _receive_snapshot(ws)

    assert scenes["msg"] == "scenes"
    assert device.fired == []
    assert device.stop_calls == ["stop_playing"]


def test_binary_frames_are_parsed_like_text(client, device):
    with client.websocket_connect("/ws") as ws:
        _receive_snapshot(ws)

        ws.send_bytes(b"\xff not json")
        ws.send_bytes(b'{"msg": "StopNow"}')
        _receive_snapshot(ws)

        assert client.get("/status").json()["clients"] == 1

    assert device.stop_calls == ["stop_playing"]


def test_startup_snapshot_is_ready_before_first_connection(client):
    assert client.get("/status").json()["version"] == 1


def test_status_and_health(client):
    status = client.get("/status").json()
    assert status["version"] >= 1
    assert status["sceneCount"] == 3
    assert status["device"] == "simulated"
    assert status["clients"] == 0

    scenes = client.get("/status/scenes").json()
    assert scenes["msg"] == "scenes"
    assert len(scenes["scenes"]) == 3

    assert client.get("/health").json()["ok"] is True
