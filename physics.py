"""
Plinko Ball Physics
Guided bouncing-ball model: gravity, bin guidance, pin collision, walls.

Units are pixels and ticks: one step() is one rendered frame at a fixed
timestep, so accelerations are pixels/tick^2.
"""

import enum
import math
import numpy as np
from dataclasses import dataclass, field
from typing import List

from board import BoardLayout, BOARD_WIDTH, PIN_RADIUS

# ──────────────────────────────────────────────
# Constants (pixels, ticks)
# ──────────────────────────────────────────────
BALL_RADIUS: float = 8.0
MAX_TICKS: int = 2000  # headless simulate() cutoff
GUIDANCE_TIMEOUT: int = 1500  # ticks after which a ball falls unguided

# ── Runtime-editable behavior constants ───────────────────────────────────────
# These are read by name every call, so the server can mutate them live via:
#   import physics as _phys;  _phys.GRAVITY = 0.35
GRAVITY: float = 0.3              # vertical acceleration per tick
BOUNCE_DAMPING: float = 0.7       # whole-velocity scale after a pin or wall contact
FRICTION: float = 0.995           # horizontal velocity scale every tick

GUIDANCE_STRENGTH: float = 0.04   # steering stiffness at full progress (scaled by progress^3)
GUIDANCE_DAMPING: float = 1.0     # fraction of critical damping on the steering spring
GUIDANCE_DEADZONE: float = 8.0    # no positional pull this close to the target x
MAX_GUIDANCE_NUDGE: float = 4.0   # |delta vx| per tick from guidance
APEX_TILT: float = 0.05           # min |normal.x| for a contact on top of a pin


class BallState(enum.Enum):
    IN_FLIGHT = 0
    SETTLED = 1


@dataclass
class Ball:
    """Plinko ball. target_bin, wager and payout are fixed at spawn."""
    name: str
    position: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0]))
    velocity: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0]))
    target_bin: int = -1
    wager: int = 0
    payout: int = 0
    state: BallState = BallState.IN_FLIGHT
    radius: float = BALL_RADIUS
    pin_hits: int = 0
    ticks: int = 0

    _FIXED = ("target_bin", "wager", "payout")

    def __post_init__(self):
        self.position = np.array(self.position, dtype=float)
        self.velocity = np.array(self.velocity, dtype=float)

    def __setattr__(self, name, value):
        if name in Ball._FIXED and name in self.__dict__:
            raise AttributeError(f"Ball.{name} is fixed at spawn")
        super().__setattr__(name, value)

    @property
    def active(self) -> bool:
        return self.state == BallState.IN_FLIGHT

    @property
    def speed(self) -> float:
        return float(np.linalg.norm(self.velocity))


class PlinkoPhysics:
    """Per-tick ball simulator over a fixed board layout."""

    def __init__(self, layout: BoardLayout = None):
        self.layout = layout if layout is not None else BoardLayout()
        self.x_min = BALL_RADIUS
        self.x_max = BOARD_WIDTH - BALL_RADIUS
        self.events: list = []

    # ──────────────────────────────────────────
    # Guidance
    # ──────────────────────────────────────────
    def guidance_progress(self, y: float) -> float:
        """0 at the drop line, 1 at the last pin row, clamped."""
        progress = (y - self.layout.drop_top_y) / self.layout.drop_span
        return max(0.0, min(1.0, progress))

    def _has_valid_target(self, ball: Ball) -> bool:
        return 0 <= ball.target_bin < self.layout.bin_count

    def _apply_guidance(self, ball: Ball) -> None:
        """
        Steer vx toward the target bin center.

        strength = GUIDANCE_STRENGTH * progress^3, negligible through the
        upper rows. The pull is a damped spring on the horizontal offset,
        with a dead zone so a ball resting on the pin directly above its
        target is not held there. Past GUIDANCE_TIMEOUT ticks the ball is
        left to fall freely, which always reaches the exit line.
        """
        if not self._has_valid_target(ball) or ball.ticks >= GUIDANCE_TIMEOUT:
            return
        progress = self.guidance_progress(ball.position[1])
        strength = GUIDANCE_STRENGTH * progress ** 3
        if strength <= 0.0:
            return

        offset = self.layout.bin_centers[ball.target_bin] - ball.position[0]
        if abs(offset) <= GUIDANCE_DEADZONE:
            offset = 0.0
        else:
            offset -= math.copysign(GUIDANCE_DEADZONE, offset)

        nudge = offset * strength - ball.velocity[0] * GUIDANCE_DAMPING * math.sqrt(strength)
        nudge = max(-MAX_GUIDANCE_NUDGE, min(MAX_GUIDANCE_NUDGE, nudge))
        ball.velocity[0] += nudge

    # ──────────────────────────────────────────
    # Pin Collision
    # ──────────────────────────────────────────
    def _contact_normal(self, ball: Ball, pin_x: float, diff: np.ndarray,
                        dist: float) -> np.ndarray:
        """Unit normal from pin to ball, tilted off the apex."""
        if dist > 1e-9:
            normal = diff / dist
        else:
            normal = np.array([0.0, -1.0])

        if normal[1] < 0.0 and abs(normal[0]) < APEX_TILT:
            side = 1.0
            if self._has_valid_target(ball) and self.layout.bin_centers[ball.target_bin] < pin_x:
                side = -1.0
            normal = np.array([side * APEX_TILT, -math.sqrt(1.0 - APEX_TILT ** 2)])
        return normal

    def _resolve_pin_collisions(self, ball: Ball) -> None:
        """
        Push out of every overlapping pin, reflect, damp.

        Pins are tested in row-major order and resolved one after another,
        each against the position left by the previous correction. The
        broad phase radius covers one prior push-out.
        """
        contact = ball.radius + PIN_RADIUS
        for idx in self.layout.pins_near(ball.position, 2.0 * contact):
            pin = self.layout.pin_positions[idx]
            diff = ball.position - pin
            dist = float(np.linalg.norm(diff))
            if dist >= contact:
                continue

            normal = self._contact_normal(ball, float(pin[0]), diff, dist)
            ball.position = pin + normal * contact

            vel_along_normal = float(np.dot(ball.velocity, normal))
            if vel_along_normal < 0.0:
                ball.velocity = ball.velocity - 2.0 * vel_along_normal * normal
            ball.velocity = ball.velocity * BOUNCE_DAMPING

            ball.pin_hits += 1
            self.events.append({
                "type": "pin_hit", "ball": ball.name, "pin": int(idx),
                "speed": abs(vel_along_normal),
            })

    # ──────────────────────────────────────────
    # Walls
    # ──────────────────────────────────────────
    def _check_walls(self, ball: Ball) -> None:
        if ball.position[0] < self.x_min:
            impact_speed = abs(ball.velocity[0])
            ball.position[0] = self.x_min
            ball.velocity[0] = -ball.velocity[0] * BOUNCE_DAMPING
            self.events.append({"type": "wall_hit", "ball": ball.name, "speed": float(impact_speed)})
        elif ball.position[0] > self.x_max:
            impact_speed = abs(ball.velocity[0])
            ball.position[0] = self.x_max
            ball.velocity[0] = -ball.velocity[0] * BOUNCE_DAMPING
            self.events.append({"type": "wall_hit", "ball": ball.name, "speed": float(impact_speed)})

    # ──────────────────────────────────────────
    # Main Update Loop
    # ──────────────────────────────────────────
    def step(self, ball: Ball) -> BallState:
        """
        Advance one ball by one tick. Order matters:
        gravity, guidance, friction, integrate, pins, walls, exit check.
        """
        if ball.state == BallState.SETTLED:
            return ball.state

        ball.velocity[1] += GRAVITY
        self._apply_guidance(ball)
        ball.velocity[0] *= FRICTION

        ball.position = ball.position + ball.velocity

        self._resolve_pin_collisions(ball)
        self._check_walls(ball)
        ball.ticks += 1

        if ball.position[1] > self.layout.exit_y:
            ball.state = BallState.SETTLED
        return ball.state

    def update(self, balls: List[Ball]) -> List[Ball]:
        """Step every in-flight ball once. Returns the balls that settled this tick."""
        self.events.clear()
        settled = []
        for ball in balls:
            if ball.state != BallState.IN_FLIGHT:
                continue
            if self.step(ball) == BallState.SETTLED:
                settled.append(ball)
        return settled

    def simulate(self, ball: Ball, max_ticks: int = MAX_TICKS) -> int:
        """
        Run one ball until it settles or max_ticks is reached.

        Returns:
            Ticks taken.
        """
        ticks = 0
        while ticks < max_ticks and ball.state == BallState.IN_FLIGHT:
            self.step(ball)
            ticks += 1
        return ticks
