"""
PlinkoController — Layer 2 (Game Logic)

Owns the round state (balance, bet ladder, active balls), the result
display, and the physics engine. Communicates with Layer 3 (server.py /
any renderer) via two queues:
  - pending_events  : rendering commands (spawn_ball, settle_ball, show_result, …)
  - physics_events  : pin/wall contact events for sound playback

Layer 3 calls:
  ctrl.request_drop()          — wager the current bet
  ctrl.increase_bet() / decrease_bet()
  ctrl.advance(elapsed)        — decay the result display, step every ball once
  ctrl.pending_events          — list of dicts to consume and act on
  ctrl.physics_events          — list of contact dicts for sounds
  ctrl.<state properties>      — read-only balance, current_bet, balls, result
"""

import math
import json
import numpy as np
from dataclasses import dataclass, field
from typing import List, Optional

from board import BoardLayout, BOARD_WIDTH
from outcome import OutcomeSelector, bin_probabilities, expected_return
from physics import PlinkoPhysics, Ball, BallState, MAX_TICKS
import physics as _phys


# ── Stake ladder ───────────────────────────────────────────────────────────────
BET_AMOUNTS = (1, 5, 10, 25, 50, 100, 250, 500)

# ── Default info-bar message ───────────────────────────────────────────────────
DEFAULT_INFO_MSG = "[Space] Drop ball  [Up/Down] Change bet"

# ── Physics params settable at runtime ─────────────────────────────────────────
# (module attr, label, min, max, step). Gravity stays positive so every ball
# still reaches the exit line.
PHYSICS_PARAMS = [
    ("GRAVITY",            "Gravity",          0.05,  1.0,   0.01),
    ("BOUNCE_DAMPING",     "Bounce Damp.",     0.1,   1.0,   0.01),
    ("FRICTION",           "Friction",         0.9,   1.0,   0.001),
    ("GUIDANCE_STRENGTH",  "Guidance",         0.0,   0.1,   0.002),
    ("GUIDANCE_DAMPING",   "Guidance Damp.",   0.0,   2.0,   0.05),
    ("GUIDANCE_DEADZONE",  "Dead Zone",        0.0,  25.0,   0.5),
    ("MAX_GUIDANCE_NUDGE", "Max Nudge",        0.5,  10.0,   0.25),
]
PARAM_BOUNDS = {attr: (lo, hi) for attr, _label, lo, hi, _step in PHYSICS_PARAMS}
TUNABLE_PARAMS = tuple(PARAM_BOUNDS)


def clamp_param(attr: str, value) -> float:
    """Coerce value into attr's range. Raises ValueError for NaN/inf or an unknown name."""
    if attr not in PARAM_BOUNDS:
        raise ValueError(f"unknown param {attr!r}")
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"{attr} must be finite, got {value}")
    lo, hi = PARAM_BOUNDS[attr]
    return max(lo, min(hi, value))


@dataclass
class RoundState:
    """Process-wide mutable state. Never persisted."""
    balance: int = 1000
    bet_index: int = 2
    ladder: tuple = BET_AMOUNTS
    balls: List[Ball] = field(default_factory=list)
    total_wagered: int = 0
    total_paid: int = 0
    balls_settled: int = 0

    @property
    def current_bet(self) -> int:
        return self.ladder[self.bet_index]


@dataclass
class ResultDisplay:
    """Last settled outcome plus a fade timer, read by the renderer."""
    duration: float = 2.5
    amount_won: int = 0
    wager: int = 0
    bin_index: Optional[int] = None
    timer: float = 0.0

    def show(self, ball: Ball) -> None:
        self.amount_won = ball.payout
        self.wager = ball.wager
        self.bin_index = ball.target_bin
        self.timer = self.duration

    def decay(self, elapsed: float) -> None:
        """Count down; at zero drop the bin highlight but keep the amounts."""
        if self.timer > 0.0:
            self.timer = max(0.0, self.timer - elapsed)
        if self.timer <= 0.0:
            self.bin_index = None

    @property
    def visible(self) -> bool:
        return self.timer > 0.0

    @property
    def fraction(self) -> float:
        if self.duration <= 0.0:
            return 0.0
        return max(0.0, min(1.0, self.timer / self.duration))

    @property
    def outcome(self) -> str:
        if self.amount_won > self.wager:
            return "win"
        if self.amount_won == self.wager:
            return "push"
        return "loss"


class PlinkoController:
    """Layer 2: round bookkeeping + physics orchestration."""

    # ── Class-level constants ─────────────────────────────────────────────────
    START_BALANCE        = 1000
    DEFAULT_BET_INDEX    = 2
    WIN_DISPLAY_DURATION = 2.5
    SPAWN_JITTER         = 2.5
    FRAME_DT             = 1.0 / 60.0

    # ── Constructor ───────────────────────────────────────────────────────────

    def __init__(self, seed: Optional[int] = None, rng: np.random.Generator = None,
                 balance: int = START_BALANCE, layout: BoardLayout = None):
        self.layout = layout if layout is not None else BoardLayout()
        self.engine = PlinkoPhysics(self.layout)
        self._sim_engine = PlinkoPhysics(self.layout)   # reused for headless simulate_drop()

        # One random source for outcome draws and spawn jitter
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.selector = OutcomeSelector(self.rng)

        self.state = RoundState(balance=int(balance), bet_index=self.DEFAULT_BET_INDEX)
        self.result = ResultDisplay(duration=self.WIN_DISPLAY_DURATION)
        self._ball_counter = 0

        # Status / info messages (L3 reads these to update text)
        self.status_msg = ""
        self.info_msg   = DEFAULT_INFO_MSG

        # Event queues
        self.pending_events: list[dict] = []   # L3 rendering commands
        self.physics_events: list[dict] = []   # contact sounds

    # ── Read-only views ───────────────────────────────────────────────────────

    @property
    def balance(self) -> int:
        return self.state.balance

    @property
    def current_bet(self) -> int:
        return self.state.current_bet

    @property
    def balls(self) -> List[Ball]:
        return self.state.balls

    @property
    def can_afford(self) -> bool:
        return self.state.balance >= self.state.current_bet

    def drain_events(self) -> List[dict]:
        """Hand over and clear pending_events. Headless callers should call this
        every frame too, or the queue keeps every spawned Ball alive."""
        events, self.pending_events = self.pending_events, []
        return events

    # ──────────────────────────────────────────────────────────────────────────
    # Main loop
    # ──────────────────────────────────────────────────────────────────────────

    def advance(self, elapsed: float) -> List[Ball]:
        """Per-frame entry point: decay the result timer, then one physics tick."""
        self.result.decay(elapsed)
        return self.tick()

    def tick(self) -> List[Ball]:
        """Step every in-flight ball once and settle the ones that exited."""
        self.physics_events.clear()
        settled = self.engine.update(self.state.balls)
        self.physics_events.extend(self.engine.events)

        for ball in settled:
            self._settle(ball)
        if settled:
            self.state.balls = [b for b in self.state.balls if b.active]
        return settled

    def _settle(self, ball: Ball) -> None:
        self.state.balance += ball.payout
        self.state.total_paid += ball.payout
        self.state.balls_settled += 1
        self.result.show(ball)

        self.pending_events.append({"type": "settle_ball", "ball": ball.name, "bin": ball.target_bin})
        outcome = self.result.outcome
        if outcome == "win":
            msg = f"WIN! +${ball.payout}"
        elif outcome == "push":
            msg = "PUSH"
        else:
            msg = f"+${ball.payout}"
        self.pending_events.append({
            "type": "show_result", "msg": msg, "outcome": outcome,
            "amount_won": ball.payout, "wager": ball.wager, "bin": ball.target_bin,
        })
        self.status_msg = f"Bin {ball.target_bin} x{self.layout.multiplier(ball.target_bin):g}: {msg}"

    # ──────────────────────────────────────────────────────────────────────────
    # Wagering
    # ──────────────────────────────────────────────────────────────────────────

    def place_wager(self, amount: int, target_bin: Optional[int] = None) -> Optional[Ball]:
        """
        Debit amount, fix the outcome, spawn a ball.

        A wager above the balance (or non-positive) is a silent no-op and
        returns None. target_bin forces the outcome instead of drawing it.
        """
        amount = int(amount)
        if amount <= 0 or amount > self.state.balance:
            return None
        if target_bin is None:
            target_bin = self.selector.select_bin(self.layout.bin_count)
        elif not 0 <= target_bin < self.layout.bin_count:
            raise ValueError(f"target_bin {target_bin} outside 0..{self.layout.bin_count - 1}")

        self.state.balance -= amount
        self.state.total_wagered += amount
        payout = int(math.floor(amount * self.layout.multiplier(target_bin)))

        jitter = float(self.rng.uniform(-self.SPAWN_JITTER, self.SPAWN_JITTER))
        self._ball_counter += 1
        ball = Ball(
            f"ball{self._ball_counter}",
            position=[BOARD_WIDTH / 2.0 + jitter, self.layout.drop_top_y],
            target_bin=int(target_bin),
            wager=amount,
            payout=payout,
        )
        self.state.balls.append(ball)
        self.pending_events.append({"type": "spawn_ball", "ball": ball})
        return ball

    def request_drop(self) -> Optional[Ball]:
        """Wager the current bet. Insufficient balance only raises a UI hint."""
        ball = self.place_wager(self.state.current_bet)
        if ball is None:
            self.pending_events.append({
                "type": "insufficient_balance",
                "balance": self.state.balance, "bet": self.state.current_bet,
            })
            self.status_msg = f"Balance ${self.state.balance} is below bet ${self.state.current_bet}."
        return ball

    # ──────────────────────────────────────────────────────────────────────────
    # Bet ladder
    # ──────────────────────────────────────────────────────────────────────────

    def change_bet(self, direction: int) -> int:
        """Move one step along the ladder, clamped at both ends. Returns the bet."""
        step = int(np.sign(direction))
        last = len(self.state.ladder) - 1
        new_index = max(0, min(last, self.state.bet_index + step))
        if new_index != self.state.bet_index:
            self.state.bet_index = new_index
            self.pending_events.append({"type": "bet_changed", "bet": self.state.current_bet})
        return self.state.current_bet

    def increase_bet(self) -> int:
        return self.change_bet(+1)

    def decrease_bet(self) -> int:
        return self.change_bet(-1)

    # ──────────────────────────────────────────────────────────────────────────
    # Command channel
    # ──────────────────────────────────────────────────────────────────────────

    def get_state_json(self) -> str:
        """Return balance, bet and ball state as compact single-line JSON."""
        balls = {}
        for b in self.state.balls:
            balls[b.name] = {
                "pos": [round(float(b.position[0]), 2), round(float(b.position[1]), 2)],
                "vel": [round(float(b.velocity[0]), 3), round(float(b.velocity[1]), 3)],
                "bin": b.target_bin,
                "wager": b.wager,
            }
        return json.dumps({
            "balance": self.state.balance,
            "bet": self.state.current_bet,
            "balls": balls,
        }, separators=(',', ':'))

    def execute_command(self, text: str) -> None:
        """Parse a JSON command string and dispatch to handlers."""
        if not text:
            print("[CMD] execute_command: empty text")
            return
        text = text.replace('\r', '')
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            print(f"[CMD] JSON parse error: {exc}")
            self.status_msg = f"JSON error: {exc}"
            return
        if not isinstance(data, dict):
            self.status_msg = "Command must be a JSON object."
            return
        cmd = str(data.get("cmd", "")).lower().strip()
        print(f"[CMD] cmd={cmd}")
        if cmd == "drop":
            self._cmd_drop(data)
        elif cmd == "bet":
            self._cmd_bet(data)
        elif cmd == "set":
            self._cmd_params(data.get("params", {}))
        elif cmd == "state":
            self.status_msg = self.get_state_json()
        else:
            self.status_msg = f"Unknown cmd '{cmd}'. Use drop/bet/set/state."

    def _cmd_drop(self, data: dict) -> None:
        """drop: wager the current bet, optionally forcing the landing bin."""
        target = data.get("bin")
        if target is None:
            self.request_drop()
            return
        try:
            ball = self.place_wager(self.state.current_bet, target_bin=int(target))
        except (TypeError, ValueError) as exc:
            self.status_msg = f"drop: {exc}"
            return
        if ball is None:
            self.status_msg = f"drop: balance ${self.state.balance} is below bet ${self.state.current_bet}."
        else:
            self.status_msg = f"drop: {ball.name} -> bin {ball.target_bin}"

    def _cmd_bet(self, data: dict) -> None:
        try:
            direction = int(data.get("direction", 0))
        except (TypeError, ValueError):
            self.status_msg = "bet: 'direction' must be an integer."
            return
        self.status_msg = f"bet: ${self.change_bet(direction)}"

    def _cmd_params(self, params: dict) -> None:
        """set params: update physics module constants by name, clamped to their ranges."""
        if not isinstance(params, dict) or not params:
            self.status_msg = "set: 'params' object required."
            return
        updated, skipped, rejected = [], [], []
        for k, v in params.items():
            if k not in TUNABLE_PARAMS:
                skipped.append(k)
                continue
            try:
                value = clamp_param(k, v)
            except (TypeError, ValueError) as e:
                print(f"[CMD] set {k} rejected: {e}")
                rejected.append(k)
                continue
            setattr(_phys, k, value)
            updated.append(f"{k}={value:.4g}")

        self.pending_events.append({"type": "refresh_params", "params": list(params.keys())})
        msg = f"params: set {updated}"
        if skipped:
            msg += f"  (unknown: {skipped})"
        if rejected:
            msg += f"  (rejected: {rejected})"
        print(f"[CMD] {msg}")
        self.status_msg = msg

    # ──────────────────────────────────────────────────────────────────────────
    # Headless API
    # ──────────────────────────────────────────────────────────────────────────

    def simulate_drop(self, target_bin: int, jitter: float = 0.0,
                      max_ticks: int = MAX_TICKS) -> dict:
        """Run one guided drop without touching balance, balls or the rng.

        Args:
            target_bin: Bin to steer toward (out-of-range means free fall).
            jitter:     Horizontal spawn offset from the board center.
            max_ticks:  Tick cutoff.

        Returns:
            dict with keys:
              ``ball``        – the simulated Ball
              ``settled``     – True if it crossed the exit line
              ``ticks``       – ticks simulated
              ``exit_x``      – final x
              ``landed_bin``  – slot under exit_x (None outside the bins)
              ``pin_hits``    – pin contacts
              ``trajectory``  – (ticks + 1, 2) array of positions
        """
        ball = Ball(
            "sim",
            position=[BOARD_WIDTH / 2.0 + jitter, self.layout.drop_top_y],
            target_bin=int(target_bin),
        )
        engine = self._sim_engine
        engine.events.clear()
        trajectory = [ball.position.copy()]
        ticks = 0
        while ticks < max_ticks and ball.state == BallState.IN_FLIGHT:
            engine.step(ball)
            trajectory.append(ball.position.copy())
            ticks += 1
        engine.events.clear()

        exit_x = float(ball.position[0])
        return {
            "ball": ball,
            "settled": ball.state == BallState.SETTLED,
            "ticks": ticks,
            "exit_x": exit_x,
            "landed_bin": self.layout.bin_index_at(exit_x),
            "pin_hits": ball.pin_hits,
            "trajectory": np.array(trajectory),
        }

    def estimate_rtp(self, n_drops: int = 100_000, wager: Optional[int] = None,
                     seed: Optional[int] = None) -> dict:
        """Monte-Carlo return-to-player over outcome draws and the payout rule.

        Uses its own generator so the live random stream is untouched.
        Raises ValueError for a non-positive wager.
        """
        wager = int(wager if wager is not None else self.state.current_bet)
        if wager <= 0:
            raise ValueError(f"wager must be positive, got {wager}")
        rng = np.random.default_rng(seed)
        n_bins = self.layout.bin_count
        mult = np.asarray(self.layout.multipliers, dtype=float)
        probs = bin_probabilities(n_bins, self.selector.decay_rate)

        bins = rng.choice(n_bins, size=int(n_drops), p=probs)
        payouts = np.floor(wager * mult[bins]).astype(np.int64)
        wagered = wager * int(n_drops)
        paid = int(payouts.sum())
        return {
            "drops": int(n_drops),
            "wager": wager,
            "wagered": wagered,
            "paid": paid,
            "rtp": paid / wagered if wagered else 0.0,
            "expected_rtp": expected_return(mult, self.selector.decay_rate, wager=wager),
            "hit_rate": float(np.mean(payouts > wager)),
            "bin_counts": np.bincount(bins, minlength=n_bins).tolist(),
        }
