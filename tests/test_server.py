"""
Frame server tests: message building and key handling, without a running loop.
"""

import sys
import os
import json
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import server
import physics as _phys
from controller import PlinkoController, PHYSICS_PARAMS, PARAM_BOUNDS


@pytest.fixture(autouse=True)
def fresh_controller(monkeypatch):
    monkeypatch.setattr(server, "ctrl", PlinkoController(seed=0))
    yield
    for attr, dflt in server.PARAM_DEFAULTS.items():
        setattr(_phys, attr, dflt)


class TestInitData:

    def test_board_description(self):
        data = server._init_data()
        assert data["type"] == "init"
        assert len(data["pins"]) == 207
        assert len(data["bin_centers"]) == 21
        assert len(data["multipliers"]) == 21
        assert data["drop_y"] == 160.0
        assert data["bin_top"] == 1130.0
        assert data["bet_amounts"][0] == 1

    def test_json_serializable(self):
        json.dumps(server._init_data())


class TestFrame:

    def test_idle_frame(self):
        msg = json.loads(server._build_frame_message())
        assert msg["type"] == "frame"
        assert msg["balls"] == []
        assert msg["balance"] == 1000
        assert msg["bet"] == 10
        assert msg["result"]["visible"] is False

    def test_spawn_event_serialized(self):
        server._handle_key_down("space")
        msg = json.loads(server._build_frame_message())
        spawn = [ev for ev in msg["events"] if ev["type"] == "spawn_ball"]
        assert len(spawn) == 1
        assert spawn[0]["ball"]["wager"] == 10
        assert len(msg["balls"]) == 1
        assert msg["balance"] == 990

    def test_events_drained(self):
        server._handle_key_down("click")
        server._build_frame_message()
        msg = json.loads(server._build_frame_message())
        assert msg["events"] == []

    def test_contact_sounds(self):
        server.ctrl.place_wager(10, target_bin=3)
        for _ in range(80):
            server.ctrl.advance(server.FRAME_DT)
            frame = server._frame_data()
            if frame["sounds"]:
                break
        assert frame["sounds"][0]["type"] in ("pin_hit", "wall_hit")


class TestKeys:

    def test_bet_keys(self):
        server._handle_key_down("up")
        assert server.ctrl.current_bet == 25
        server._handle_key_down("down")
        server._handle_key_down("down")
        assert server.ctrl.current_bet == 5

    def test_unknown_key_ignored(self):
        server._handle_key_down("q")
        assert server.ctrl.balls == []
        assert server.ctrl.current_bet == 10


class TestParams:

    def test_params_listed(self):
        params = server._get_params_data()
        assert [p["attr"] for p in params] == [p[0] for p in server.PHYSICS_PARAMS]
        gravity = params[0]
        assert gravity["value"] == pytest.approx(_phys.GRAVITY)
        assert gravity["min"] < gravity["value"] < gravity["max"]

    def test_adjust_steps_and_clamps(self):
        base = _phys.GRAVITY
        assert server._adjust_param(0, +1) == pytest.approx(base + 0.01)
        assert server._adjust_param(0, -1, fine=True) == pytest.approx(base + 0.009)
        for _ in range(200):
            server._adjust_param(0, +1)
        assert _phys.GRAVITY == 1.0

    def test_adjust_bad_index(self):
        assert server._adjust_param(99, +1) is None
        assert server._adjust_param(-1, +1) is None

    def test_reset(self):
        server._adjust_param(3, +1)
        assert _phys.GUIDANCE_STRENGTH != server.PARAM_DEFAULTS["GUIDANCE_STRENGTH"]
        server._reset_params()
        assert _phys.GUIDANCE_STRENGTH == server.PARAM_DEFAULTS["GUIDANCE_STRENGTH"]

    def test_adjust_shares_controller_bounds(self):
        lo, _hi = PARAM_BOUNDS["GRAVITY"]
        for _ in range(200):
            server._adjust_param(0, -1)
        assert _phys.GRAVITY == lo
        assert server.PHYSICS_PARAMS is PHYSICS_PARAMS
