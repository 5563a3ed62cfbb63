"""
Drop Preset System
Headless round scenarios with forced landing bins: set up a controller,
place the wager, advance frames until every ball settles, return a result dict.
"""

from board import NUM_BINS
from controller import PlinkoController
from physics import MAX_TICKS

# Fixed virtual timestep (one frame at 60 fps)
_DT = PlinkoController.FRAME_DT


def _run_until_settled(ctrl: PlinkoController, max_ticks: int = MAX_TICKS) -> int:
    """Advance until no ball is in flight. Returns frames advanced."""
    frames = 0
    while ctrl.balls and frames < max_ticks:
        ctrl.advance(_DT)
        ctrl.drain_events()
        frames += 1
    return frames


class DropPreset:
    """Each preset: controller setup → forced wager → advance → result dict."""

    @staticmethod
    def edge_jackpot(run=True, seed=0) -> dict:
        """Wager 10 at balance 1000 into the leftmost bin (x1000)."""
        ctrl = PlinkoController(seed=seed, balance=1000)
        ball = ctrl.place_wager(10, target_bin=0)
        elapsed = _run_until_settled(ctrl) if run else 0
        return {"ctrl": ctrl, "ball": ball, "elapsed": elapsed,
                "balance": ctrl.balance, "result": ctrl.result}

    @staticmethod
    def center_loss(run=True, seed=0) -> dict:
        """Wager 10 into the exact center bin (x0.2): pays less than the stake."""
        ctrl = PlinkoController(seed=seed, balance=1000)
        center = (ctrl.layout.bin_count - 1) // 2
        ball = ctrl.place_wager(10, target_bin=center)
        elapsed = _run_until_settled(ctrl) if run else 0
        return {"ctrl": ctrl, "ball": ball, "elapsed": elapsed,
                "balance": ctrl.balance, "result": ctrl.result}

    @staticmethod
    def insufficient_balance(seed=0) -> dict:
        """Wager 100 at balance 50: no ball, no debit."""
        ctrl = PlinkoController(seed=seed, balance=50)
        ball = ctrl.place_wager(100)
        return {"ctrl": ctrl, "ball": ball, "elapsed": 0,
                "balance": ctrl.balance, "result": ctrl.result}

    @staticmethod
    def full_sweep(run=True, seed=0, wager=10) -> dict:
        """One ball per bin, all in flight together."""
        ctrl = PlinkoController(seed=seed, balance=wager * NUM_BINS)
        balls = [ctrl.place_wager(wager, target_bin=i) for i in range(ctrl.layout.bin_count)]

        landed = {}
        elapsed = 0
        if run:
            while ctrl.balls and elapsed < MAX_TICKS:
                for ball in ctrl.advance(_DT):
                    landed[ball.target_bin] = ctrl.layout.bin_index_at(ball.position[0])
                ctrl.drain_events()
                elapsed += 1
        return {"ctrl": ctrl, "balls": balls, "landed": landed, "elapsed": elapsed,
                "balance": ctrl.balance, "result": ctrl.result}
