"""
Plinko Frame Server — Layer 3 boundary (FastAPI + WebSocket)

Runs the fixed-rate game loop and streams board state to browser
clients over WebSocket; client key presses come back as drop / bet
requests. Drawing happens entirely on the client.
"""

import asyncio
import json
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from board import BOARD_WIDTH, BOARD_HEIGHT, PIN_RADIUS, PIN_SPACING_Y, BIN_WIDTH
from controller import PlinkoController, BET_AMOUNTS, PHYSICS_PARAMS, clamp_param
from physics import Ball, BALL_RADIUS
import physics as _phys

# ── Controller ──────────────────────────────────────────────────────────────

ctrl = PlinkoController()


# ── Lifespan (startup/shutdown) ─────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    print("[SERVER] game loop starting")
    loop_task = asyncio.create_task(game_loop())
    yield
    loop_task.cancel()
    print("[SERVER] game loop stopped")


app = FastAPI(lifespan=lifespan)

clients: list[WebSocket] = []

# ── Physics params (live tuning) ────────────────────────────────────────────
PARAM_DEFAULTS = {attr: getattr(_phys, attr) for attr, *_ in PHYSICS_PARAMS}

# ── Async game loop ─────────────────────────────────────────────────────────

TARGET_FPS = 60
FRAME_DT = 1.0 / TARGET_FPS
MAX_FRAME_DT = 0.05


async def _broadcast(text: str) -> None:
    """Send to every client; drop the ones whose socket has gone away."""
    gone = []
    for ws in list(clients):
        try:
            await ws.send_text(text)
        except Exception:
            gone.append(ws)
    for ws in gone:
        if ws in clients:
            clients.remove(ws)


async def game_loop():
    """Advance the round once per frame and push the frame to clients."""
    prev = time.perf_counter()
    while True:
        frame_start = time.perf_counter()
        dt = min(frame_start - prev, MAX_FRAME_DT)
        prev = frame_start

        ctrl.advance(dt)
        if clients:
            await _broadcast(_build_frame_message())

        remaining = FRAME_DT - (time.perf_counter() - frame_start)
        await asyncio.sleep(max(remaining, 0.0))


# ── Serialization ───────────────────────────────────────────────────────────

def _pos(ball: Ball) -> list:
    return [round(float(ball.position[0]), 2), round(float(ball.position[1]), 2)]


def _serialize_event(ev: dict) -> dict:
    """Ball objects in spawn events become plain dicts."""
    ball = ev.get("ball")
    if ev.get("type") == "spawn_ball" and isinstance(ball, Ball):
        return {
            "type": "spawn_ball",
            "ball": {"name": ball.name, "pos": _pos(ball), "wager": ball.wager},
        }
    return ev


def _frame_data() -> dict:
    """Snapshot of everything the renderer draws, draining the event queues."""
    events = [_serialize_event(ev) for ev in ctrl.drain_events()]

    sounds = [
        {"type": ev.get("type", ""), "speed": round(float(ev.get("speed", 0.0)), 3)}
        for ev in ctrl.physics_events
    ]
    ctrl.physics_events.clear()

    res = ctrl.result
    return {
        "type": "frame",
        "balls": [{"name": b.name, "pos": _pos(b), "active": b.active} for b in ctrl.balls],
        "events": events,
        "sounds": sounds,
        "balance": ctrl.balance,
        "bet": ctrl.current_bet,
        "can_afford": ctrl.can_afford,
        "result": {
            "amount_won": res.amount_won,
            "wager": res.wager,
            "bin": res.bin_index,
            "fraction": round(res.fraction, 4),
            "outcome": res.outcome,
            "visible": res.visible,
        },
        "status": ctrl.status_msg,
        "info": ctrl.info_msg,
    }


def _build_frame_message() -> str:
    return json.dumps(_frame_data(), separators=(',', ':'))


def _init_data() -> dict:
    """Static board description sent once per connection."""
    layout = ctrl.layout
    return {
        "type": "init",
        "board_width": BOARD_WIDTH,
        "board_height": BOARD_HEIGHT,
        "pin_radius": PIN_RADIUS,
        "ball_radius": BALL_RADIUS,
        "bin_width": BIN_WIDTH,
        "pins": layout.pin_positions.tolist(),
        "bin_centers": layout.bin_centers,
        "multipliers": list(layout.multipliers),
        "bin_top": layout.last_row_y + PIN_SPACING_Y,
        "drop_y": layout.drop_top_y,
        "bet_amounts": list(BET_AMOUNTS),
        "frame_dt": FRAME_DT,
    }


# ── Input ───────────────────────────────────────────────────────────────────

KEY_ACTIONS = {
    "space": lambda: ctrl.request_drop(),
    "click": lambda: ctrl.request_drop(),
    "up":    lambda: ctrl.increase_bet(),
    "down":  lambda: ctrl.decrease_bet(),
}


def _handle_key_down(key: str):
    action = KEY_ACTIONS.get(key)
    if action is not None:
        action()


# ── Physics params helpers ──────────────────────────────────────────────────

def _get_params_data() -> list:
    """Return all physics params with current values."""
    return [
        {"attr": attr, "label": label, "value": round(getattr(_phys, attr), 6),
         "min": mn, "max": mx, "step": step}
        for attr, label, mn, mx, step in PHYSICS_PARAMS
    ]


def _adjust_param(index: int, direction: int, fine: bool = False) -> Optional[float]:
    """Step one param up or down, clamped to its range. None for a bad index."""
    if not 0 <= index < len(PHYSICS_PARAMS):
        return None
    attr, _label, _lo, _hi, step = PHYSICS_PARAMS[index]
    if fine:
        step /= 10.0
    value = clamp_param(attr, getattr(_phys, attr) + direction * step)
    setattr(_phys, attr, value)
    return value


def _reset_params() -> None:
    for attr, value in PARAM_DEFAULTS.items():
        setattr(_phys, attr, value)


# ── WebSocket endpoint ──────────────────────────────────────────────────────

async def _dispatch(ws: WebSocket, msg: dict) -> None:
    cmd = msg.get("cmd", "")
    if cmd == "key_down":
        _handle_key_down(msg.get("key", ""))
    elif cmd == "drop":
        ctrl.request_drop()
    elif cmd == "bet":
        try:
            ctrl.change_bet(int(msg.get("direction", 0)))
        except (TypeError, ValueError):
            return
    elif cmd == "execute":
        ctrl.execute_command(msg.get("text", ""))
    elif cmd == "get_state":
        await ws.send_text(json.dumps({"type": "state_json", "data": ctrl.get_state_json()}))
    elif cmd == "get_params":
        await ws.send_text(json.dumps({"type": "params", "data": _get_params_data()}))
    elif cmd == "adjust_param":
        try:
            index = int(msg.get("index", 0))
            direction = int(msg.get("direction", 0))
        except (TypeError, ValueError):
            return
        value = _adjust_param(index, direction, bool(msg.get("fine", False)))
        if value is not None:
            await ws.send_text(json.dumps({
                "type": "param_update", "index": index, "value": round(value, 6),
            }))
    elif cmd == "reset_params":
        _reset_params()
        await ws.send_text(json.dumps({"type": "params", "data": _get_params_data()}))


@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    clients.append(ws)
    print(f"[SERVER] client connected ({len(clients)} total)")
    await ws.send_text(json.dumps(_init_data()))

    try:
        while True:
            raw = await ws.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if isinstance(msg, dict):
                await _dispatch(ws, msg)
    except WebSocketDisconnect:
        pass
    finally:
        if ws in clients:
            clients.remove(ws)
        print(f"[SERVER] client disconnected ({len(clients)} left)")


# ── HTTP routes ─────────────────────────────────────────────────────────────

@app.get("/")
async def root():
    return _init_data()


@app.get("/state")
async def state():
    return json.loads(ctrl.get_state_json())


# ── Run with uvicorn ────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=False)
