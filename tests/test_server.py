"""
Server Tests — WebSocket command dispatch and frame messages.

The frame loop is not started (no lifespan); each test swaps in a fresh
controller on a frozen clock.
"""

import sys
import os
import json
import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import server
import kinematics as _kin
from controller import PitchController, SimClock
from pitch_data import load_pitch_data


@pytest.fixture
def ctrl(monkeypatch):
    fresh = PitchController(load_pitch_data(), clock=SimClock(time_fn=lambda: 0.0))
    monkeypatch.setattr(server, "ctrl", fresh)
    yield fresh
    for attr, dflt in server.PARAM_DEFAULTS.items():
        setattr(_kin, attr, dflt)


@pytest.fixture
def client(ctrl):
    return TestClient(server.app)


def _request(ws, payload: dict) -> dict:
    ws.send_text(json.dumps(payload))
    return json.loads(ws.receive_text())


class TestWebSocket:

    def test_init_message(self, client):
        with client.websocket_connect("/ws") as ws:
            init = json.loads(ws.receive_text())
        assert init["type"] == "init"
        types = [p["type"] for p in init["pitches"]]
        assert "FF" in types
        assert init["pitches"][types.index("FF")]["color"] == "#FF0000"
        assert init["plate_depth"] == _kin.PLATE_DEPTH
        assert init["playing"] is True

    def test_select_deselect_toggle(self, client, ctrl):
        with client.websocket_connect("/ws") as ws:
            ws.receive_text()
            ws.send_text(json.dumps({"cmd": "select", "type": "FF"}))
            ws.send_text(json.dumps({"cmd": "select", "type": "SL"}))
            ws.send_text(json.dumps({"cmd": "deselect", "type": "SL"}))
            ws.send_text(json.dumps({"cmd": "toggle"}))
            reply = _request(ws, {"cmd": "get_state"})
        state = json.loads(reply["data"])
        assert list(state["balls"]) == ["FF"]
        assert state["playing"] is False
        assert ctrl.registry.keys() == ["FF"]

    def test_garbage_is_skipped(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_text()
            ws.send_text("{not json")
            ws.send_text(json.dumps([1, 2]))
            ws.send_text(json.dumps({"cmd": "launch"}))
            reply = _request(ws, {"cmd": "get_params"})
        assert reply["type"] == "params"
        assert [p["attr"] for p in reply["data"]] == [a for a, *_ in server.KINEMATIC_PARAMS]

    def test_adjust_and_reset_params(self, client):
        idx = [a for a, *_ in server.KINEMATIC_PARAMS].index("PLATE_DEPTH")
        with client.websocket_connect("/ws") as ws:
            ws.receive_text()
            reply = _request(ws, {"cmd": "adjust_param", "index": idx, "direction": 1})
            assert reply["type"] == "param_update"
            assert reply["value"] == pytest.approx(-60.0)
            assert reply["plate_depth"] == pytest.approx(-60.0)
            assert _kin.PLATE_DEPTH == pytest.approx(-60.0)

            reply = _request(ws, {"cmd": "reset_params"})
        assert _kin.PLATE_DEPTH == -60.5
        assert reply["type"] == "params"

    def test_release_edit_reaches_active_ball(self, client, ctrl):
        idx = [a for a, *_ in server.KINEMATIC_PARAMS].index("RELEASE_DEPTH")
        ctrl.select("FF")
        with client.websocket_connect("/ws") as ws:
            ws.receive_text()
            reply = _request(ws, {"cmd": "adjust_param", "index": idx, "direction": -1})
            assert reply["value"] == pytest.approx(-2.08)
            ctrl.step()
            assert ctrl.registry.get("FF").current_position[2] == pytest.approx(-2.08)

            _request(ws, {"cmd": "reset_params"})
        ctrl.step()
        assert ctrl.registry.get("FF").current_position[2] == pytest.approx(_kin.RELEASE_DEPTH)
        assert ctrl.registry.keys() == ["FF"]

    @pytest.mark.parametrize("index", ['"abc"', "null", "[1]", "1e999"])
    def test_malformed_param_index_keeps_socket(self, client, index):
        with client.websocket_connect("/ws") as ws:
            ws.receive_text()
            ws.send_text('{"cmd": "adjust_param", "direction": 1, "index": %s}' % index)
            reply = _request(ws, {"cmd": "get_params"})
        assert reply["type"] == "params"
        assert _kin.PLATE_DEPTH == -60.5

    def test_get_flight(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_text()
            reply = _request(ws, {"cmd": "get_flight", "type": "CU"})
        assert reply["type"] == "flight"
        assert reply["data"]["type"] == "CU"
        assert reply["data"]["flight_time"] > 0.3


class TestFrameMessage:

    def test_frame_carries_balls_and_drains_events(self, ctrl):
        ctrl.select("FF")
        ctrl.step()
        frame = json.loads(server._build_frame_message())
        assert frame["type"] == "frame"
        assert frame["playing"] is True
        assert frame["plate_depth"] == _kin.PLATE_DEPTH
        assert [b["type"] for b in frame["balls"]] == ["FF"]
        assert len(frame["balls"][0]["quat"]) == 4
        spawn = frame["events"][0]
        assert spawn["type"] == "spawn_ball" and spawn["color"] == "#FF0000"

        again = json.loads(server._build_frame_message())
        assert again["events"] == []

    def test_frame_while_paused(self, ctrl):
        ctrl.select("SL")
        ctrl.toggle_play()
        frame = json.loads(server._build_frame_message())
        assert frame["playing"] is False
        assert [b["type"] for b in frame["balls"]] == ["SL"]


    def test_frame_reflects_other_client_selection(self, client, ctrl):
        """Checkbox state is driven by frame balls, so they must track every client."""
        ctrl.select("FF")
        ctrl.select("SL")
        with client.websocket_connect("/ws") as first, client.websocket_connect("/ws") as second:
            first.receive_text()
            init = json.loads(second.receive_text())
            assert init["active"] == ["FF", "SL"]
            first.send_text(json.dumps({"cmd": "deselect", "type": "SL"}))
            first.send_text(json.dumps({"cmd": "select", "type": "ZZ"}))
            _request(first, {"cmd": "get_params"})
        frame = json.loads(server._build_frame_message())
        assert [b["type"] for b in frame["balls"]] == ["FF"]


class TestHttp:

    def test_pitch_table(self, client):
        res = client.get("/api/pitches")
        assert res.status_code == 200
        body = res.json()
        assert body["FF"]["vy0"] < 0
        assert body["FF"]["color"] == "#FF0000"

    def test_index(self, client):
        res = client.get("/")
        assert res.status_code == 200
        assert "three-canvas" in res.text
